"""Per-user session: upload → extract → edit → chat, with explicit state.

Operations are awaited one at a time by the caller. A newer upload or chat send
supersedes an in-flight one: each takes a generation number, and a response
that comes back under an outdated generation is dropped instead of applied.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set, Union

from .chat import chat_with_ai
from .errors import AIRequestError, ContentExtractionError, FileAnalyzerError
from .extractor import extract_table
from .file_parser import extract_content, guess_mime_type
from .llm import AIClient
from .schemas import ChatMessage, ExtractionResult, FormatKind, GroundingMetadata, RawPayload, Table
from .storage import KeyValueCache, MemoryCache, load_table, save_table
from .table_state import TableStateManager


logger = logging.getLogger(__name__)

NO_TABLE_NOTICE = (
    "AI could not extract structured data. The file might not contain a clear table, "
    "or the content is ambiguous. You can still try chatting with the AI about the raw "
    "content if available."
)


@dataclass
class Session:
    client: AIClient
    cache: KeyValueCache = field(default_factory=MemoryCache)
    file_name: Optional[str] = None
    payload: Optional[RawPayload] = None
    grounding_metadata: Optional[GroundingMetadata] = None
    messages: List[ChatMessage] = field(default_factory=list)
    notice: Optional[str] = None
    error: Optional[str] = None
    upload_generation: int = 0
    chat_generation: int = 0
    tables: TableStateManager = field(init=False)

    def __post_init__(self):
        self.tables = TableStateManager(load_table(self.cache))

    # --- State views ---

    @property
    def table(self) -> Table:
        return self.tables.table

    @property
    def format_kind(self) -> FormatKind:
        return self.payload.format_kind if self.payload else FormatKind.UNKNOWN

    @property
    def can_chat(self) -> bool:
        return len(self.tables) > 0 or (self.payload is not None and self.format_kind != FormatKind.UNKNOWN)

    def _persist(self) -> Table:
        table = self.tables.table
        save_table(self.cache, table)
        return table

    def _reset(self) -> None:
        self.file_name = None
        self.payload = None
        self.grounding_metadata = None
        self.messages = []
        self.notice = None
        self.error = None
        self.tables.clear()
        self._persist()

    # --- Upload ---

    def clear(self) -> None:
        """Forget the current file, table and conversation."""
        self.upload_generation += 1
        self.chat_generation += 1
        self._reset()

    async def upload(self, data: bytes, mime_type: str, file_name: str) -> Optional[ExtractionResult]:
        """
        Replace the session's file with a new upload and extract its table.

        Returns None when a newer upload superseded this one while it waited
        on the AI. Errors are recorded on the session and re-raised.
        """
        self.upload_generation += 1
        self.chat_generation += 1
        generation = self.upload_generation
        self._reset()
        self.file_name = file_name

        try:
            self.payload = extract_content(data, mime_type, file_name)
            result = await extract_table(self.client, self.payload, file_name)
        except FileAnalyzerError as e:
            if generation == self.upload_generation:
                logger.error("Error processing %s: %s", file_name, e)
                self.error = str(e)
            raise

        if generation != self.upload_generation:
            logger.warning("Dropping stale extraction result for %s", file_name)
            return None

        self.tables.load(result.table)
        self.grounding_metadata = result.grounding_metadata
        if len(self.tables) == 0 and result.grounding_metadata is None:
            self.notice = NO_TABLE_NOTICE
        self._persist()
        return result

    async def upload_path(self, path: Union[str, Path], mime_type: Optional[str] = None) -> Optional[ExtractionResult]:
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            self.error = f"Failed to read {path.name}: {e}"
            raise ContentExtractionError(self.error) from e
        return await self.upload(data, mime_type or guess_mime_type(path), path.name)

    # --- Table edits ---

    def edit_cell(self, row_index: int, column_key: str, new_value: str) -> Table:
        self.tables.edit_cell(row_index, column_key, new_value)
        return self._persist()

    def delete_row(self, row_index: int) -> Table:
        self.tables.delete_row(row_index)
        return self._persist()

    def delete_selected(self) -> Table:
        self.tables.delete_selected()
        return self._persist()

    def add_row(self) -> Table:
        self.tables.add_row()
        return self._persist()

    def toggle_select_all(self) -> Set[int]:
        return self.tables.toggle_select_all()

    def toggle_row_selection(self, row_index: int) -> Set[int]:
        return self.tables.toggle_row_selection(row_index)

    # --- Chat ---

    async def send_message(self, text: str) -> Optional[ChatMessage]:
        """
        Ask a follow-up question and append the answer to the conversation.

        On failure a synthetic AI message describing the error is appended
        before the AIRequestError propagates. Returns None for blank input or
        when the answer was superseded by a newer send or upload.
        """
        if not text.strip():
            return None

        history = list(self.messages)
        self.messages.append(ChatMessage.create("user", text))
        self.chat_generation += 1
        generation = self.chat_generation
        self.error = None

        try:
            answer = await chat_with_ai(self.client, self.tables.table, history, text, self.payload)
        except AIRequestError as e:
            if generation != self.chat_generation:
                raise
            logger.error("Error in chat: %s", e)
            self.error = f"Chat AI error: {e}"
            self.messages.append(ChatMessage.create("ai", f"Sorry, I encountered an error: {e}"))
            raise

        if generation != self.chat_generation:
            logger.warning("Dropping stale chat answer")
            return None

        reply = ChatMessage.create("ai", answer)
        self.messages.append(reply)
        return reply
