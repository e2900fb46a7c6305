"""Tolerant recovery of a table from AI output that is not guaranteed to be clean JSON."""
import json
import logging
import re
from typing import Any

from .errors import MalformedAIResponseError
from .schemas import Table, TableRow


logger = logging.getLogger(__name__)

# Opening fence (optionally labelled json), interior, first closing fence.
# Anchored at the start only so trailing prose after the fence is tolerated.
FENCE_PATTERN = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL | re.IGNORECASE)


def strip_code_fence(text: str) -> str:
    match = FENCE_PATTERN.match(text)
    if match and match.group(1):
        return match.group(1).strip()
    return text


def truncate_trailing_prose(text: str) -> str:
    """Cut everything after the last closing bracket or brace."""
    last_bracket = max(text.rfind("]"), text.rfind("}"))
    if last_bracket == -1:
        return text
    return text[:last_bracket + 1]


def cell_to_text(value: Any) -> str:
    """String form of a decoded JSON value."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return json.dumps(value)


def parse_table_response(raw_text: str) -> Table:
    """
    Recover a table (list of string-valued rows) from raw AI output.

    Steps:
    1. Trim and strip a leading ```json fence
    2. Drop anything after the last ] or }
    3. Parse JSON; failure raises MalformedAIResponseError
    4. Anything other than an array of objects is "no table": []
    5. Stringify every cell
    """
    json_str = truncate_trailing_prose(strip_code_fence(raw_text.strip()))

    try:
        parsed = json.loads(json_str)
    except (json.JSONDecodeError, RecursionError) as e:
        logger.error("Failed to parse JSON response from AI: %s. Raw response: %r", e, raw_text[:500])
        raise MalformedAIResponseError(
            "AI response was not valid JSON. The AI might have failed to structure the data correctly.",
            raw_text=raw_text,
        ) from e

    if not isinstance(parsed, list) or not all(isinstance(item, dict) for item in parsed):
        logger.warning("Parsed data from AI is not an array of objects: %s", type(parsed).__name__)
        return []

    table = []
    for item in parsed:
        row: TableRow = {str(key): cell_to_text(value) for key, value in item.items()}
        table.append(row)

    return table
