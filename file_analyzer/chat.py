"""Follow-up questions about the extracted data, with bounded context."""
import json
import logging
from typing import Optional, Sequence

from .config import CHAT_HISTORY_LIMIT, CHAT_TEMPERATURE, MODEL_NAME, RAW_CONTEXT_CHAR_LIMIT
from .errors import AIRequestError
from .llm import AIClient, AIRequest, ContentPart, call_with_timeout
from .schemas import ChatMessage, FormatKind, RawPayload, Table


logger = logging.getLogger(__name__)

CHAT_ACTION = "AI chat"


TABLE_CONTEXT = """Based *only* on the following JSON data representing a table, answer the user's question. Do not use any external knowledge. If the answer cannot be found in the data, state that clearly.
Table Data:
{table_json}

"""

IMAGE_CONTEXT = """The user uploaded an image. The AI was unable to extract a structured table from it. The user's question might be about the general content of the image. Answer to the best of your ability based on the user's question, acknowledging you don't have structured data. The image itself is not provided here again for brevity, assume you have 'seen' it.

"""

TEXT_CONTEXT = """The user uploaded a {file_kind} file. The AI was unable to extract a structured table from it. The user's question might be about the general content of the file. Answer based on the following text extracted from the file. Do not use any external knowledge. If the answer cannot be found in the text, state that clearly.
File Content:
```
{content}...
```
(Content might be truncated for brevity)

"""

NO_CONTEXT = "There is no file data available. Answer generally or state that you lack context.\n\n"


def build_context(table: Table, payload: Optional[RawPayload]) -> str:
    """Table snapshot, else raw content (text only, truncated), else a no-context note."""
    if table:
        return TABLE_CONTEXT.format(table_json=json.dumps(table, indent=2, ensure_ascii=False))

    if payload is not None and payload.content:
        if payload.format_kind == FormatKind.IMAGE:
            return IMAGE_CONTEXT
        return TEXT_CONTEXT.format(
            file_kind=payload.format_kind.value,
            content=payload.content[:RAW_CONTEXT_CHAR_LIMIT],
        )

    return NO_CONTEXT


def format_history(history: Sequence[ChatMessage], limit: int = CHAT_HISTORY_LIMIT) -> str:
    """Last `limit` messages, oldest first, one 'User:'/'AI:' line each."""
    recent = list(history)[-limit:] if limit > 0 else []
    return "\n".join(
        f"{'User' if msg.sender == 'user' else 'AI'}: {msg.text}"
        for msg in recent
    )


def build_chat_prompt(
    table: Table,
    payload: Optional[RawPayload],
    history: Sequence[ChatMessage],
    user_message: str
) -> str:
    context = build_context(table, payload)
    return (
        f"{context}Chat History (for context):\n{format_history(history)}\n\n"
        f"User: {user_message}\nAI:"
    )


async def chat_with_ai(
    client: AIClient,
    table: Table,
    history: Sequence[ChatMessage],
    user_message: str,
    payload: Optional[RawPayload] = None
) -> str:
    """Answer one chat turn. Raises AIRequestError on failure or an empty answer."""
    request = AIRequest(
        model=MODEL_NAME,
        parts=[ContentPart.from_text(build_chat_prompt(table, payload, history, user_message))],
        temperature=CHAT_TEMPERATURE,
    )
    response = await call_with_timeout(client, request, CHAT_ACTION)

    if not response.text:
        logger.error("AI returned an empty chat response")
        raise AIRequestError("AI returned an empty response.")
    return response.text
