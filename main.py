"""
AI File Analyzer - Command Line Front End

Upload a PDF, spreadsheet or image, extract its table with Gemini, then ask
follow-up questions about the data.

Usage:
    python main.py <FILE>
    python main.py <FILE> --mime application/pdf
    python main.py <FILE> --ask "Which row has the highest total?"
    python main.py <FILE> --delete-row 0 --chat
    python main.py <FILE> --no-cache --show-raw
"""
import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from file_analyzer.config import CACHE_FILE, OUTPUT_DIR
from file_analyzer.errors import FileAnalyzerError
from file_analyzer.llm import GeminiClient
from file_analyzer.session import Session
from file_analyzer.storage import JsonFileCache, MemoryCache

# Suppress noisy client logs
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("google_genai").setLevel(logging.WARNING)


def generate_run_id(file_path: Path) -> str:
    return f"{file_path.stem}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"


def format_table(table: List[Dict[str, str]], columns: List[str]) -> str:
    """Plain-text grid over the header columns (first row's keys)."""
    if not table:
        return "(no rows)"

    widths = {col: len(col) for col in columns}
    for row in table:
        for col in columns:
            widths[col] = max(widths[col], len(row.get(col, "")))

    lines = [
        "  #  " + " | ".join(col.ljust(widths[col]) for col in columns),
        "     " + "-+-".join("-" * widths[col] for col in columns),
    ]
    for i, row in enumerate(table):
        lines.append(f"{i:>3}  " + " | ".join(row.get(col, "").ljust(widths[col]) for col in columns))
    return "\n".join(lines)


def save_run(session: Session, file_path: Path) -> Path:
    run_dir = Path(OUTPUT_DIR) / generate_run_id(file_path)
    run_dir.mkdir(parents=True, exist_ok=True)

    data: Dict[str, Any] = {
        "file": file_path.name,
        "format": session.format_kind.value,
        "columns": session.tables.columns,
        "table": session.table,
        "grounding_metadata": (
            session.grounding_metadata.model_dump(by_alias=True)
            if session.grounding_metadata else None
        ),
        "conversation": [msg.model_dump(mode="json") for msg in session.messages],
    }
    with open(run_dir / "data.json", "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return run_dir


async def ask(session: Session, question: str) -> None:
    print(f"\nUser: {question}")
    try:
        reply = await session.send_message(question)
    except FileAnalyzerError as e:
        print(f"AI: {session.messages[-1].text}")
        print(f"   ❌ {e}")
        return
    if reply:
        print(f"AI: {reply.text}")


async def chat_loop(session: Session) -> None:
    print("\nChat mode - empty line or Ctrl-D to quit")
    while True:
        try:
            question = input("\nUser: ")
        except EOFError:
            break
        if not question.strip():
            break
        try:
            reply = await session.send_message(question)
        except FileAnalyzerError as e:
            print(f"   ❌ {e}")
            continue
        if reply:
            print(f"AI: {reply.text}")


async def run(args: argparse.Namespace) -> int:
    file_path = Path(args.file)
    cache = MemoryCache() if args.no_cache else JsonFileCache(CACHE_FILE)

    try:
        session = Session(client=GeminiClient(), cache=cache)
    except FileAnalyzerError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"\n{'='*60}")
    print(f"File: {file_path}")
    print(f"{'='*60}")

    try:
        await session.upload_path(file_path, args.mime)
    except FileAnalyzerError as e:
        print(f"   ❌ {e}")
        if not (session.payload and args.show_raw):
            return 1

    print(f"   → Format: {session.format_kind.value}")
    if args.show_raw and session.payload and not session.payload.is_binary:
        print(f"\n--- Raw content ---\n{session.payload.content}\n-------------------")

    if session.notice:
        print(f"   ⚠️  {session.notice}")

    for row_index in sorted(args.delete_row or [], reverse=True):
        session.delete_row(row_index)

    print(f"\n{format_table(session.table, session.tables.columns)}")

    if session.grounding_metadata:
        sources = session.grounding_metadata.sources()
        if sources:
            print("\nSources:")
            for source in sources:
                print(f"   - {source.title or source.uri}: {source.uri}")

    if session.can_chat:
        for question in args.ask or []:
            await ask(session, question)
        if args.chat:
            await chat_loop(session)

    run_dir = save_run(session, file_path)
    print(f"\n   ✓ Saved to {run_dir / 'data.json'}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="AI File Analyzer")
    parser.add_argument("file")
    parser.add_argument("--mime", help="Declared media type (guessed from the file name if omitted)")
    parser.add_argument("--ask", action="append", metavar="QUESTION")
    parser.add_argument("--chat", action="store_true", help="Interactive chat after extraction")
    parser.add_argument("--delete-row", action="append", type=int, metavar="N")
    parser.add_argument("--no-cache", action="store_true")
    parser.add_argument("--show-raw", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
