"""AI table extraction: build the request, call the model once, recover the table."""
import base64
import logging
from typing import List

from .config import EXTRACTION_TEMPERATURE, MODEL_NAME
from .errors import MalformedAIResponseError
from .llm import AIClient, AIRequest, ContentPart, call_with_timeout
from .response_parser import parse_table_response
from .schemas import ExtractionResult, FormatKind, RawPayload


logger = logging.getLogger(__name__)

EXTRACTION_ACTION = "AI data extraction"


IMAGE_EXTRACTION_PROMPT = """Analyze the provided image named "{file_name}". It may contain a table or structured data.

Perform OCR if necessary to extract text from the image. Then identify any tabular data from the
extracted text or directly from the image structure.

Return a JSON array of objects:
- Each object is one row
- Keys are the column headers; if there are no clear headers, infer them
- Focus on names, numbers and dates

If no table is found, return an empty array."""


TEXT_EXTRACTION_PROMPT = """Analyze the following text content extracted from a {file_kind} named "{file_name}".

Identify any tabular data within this text and return it as a JSON array of objects:
- Each object is one row
- Keys are the column headers; if they are not explicit, infer them from the data
- Focus on meaningful entities like names, numbers, dates and emails

If no clear table structure is found, return an empty array.

Text Content:

{content}"""


def build_extraction_parts(payload: RawPayload, file_name: str) -> List[ContentPart]:
    """Instruction text, plus the image itself for image payloads."""
    if payload.format_kind == FormatKind.IMAGE:
        return [
            ContentPart.from_text(IMAGE_EXTRACTION_PROMPT.format(file_name=file_name)),
            ContentPart.from_bytes(base64.b64decode(payload.content), payload.mime_type),
        ]

    file_kind = "file" if payload.format_kind == FormatKind.UNKNOWN else payload.format_kind.value
    prompt = TEXT_EXTRACTION_PROMPT.format(
        file_kind=file_kind,
        file_name=file_name,
        content=payload.content,
    )
    return [ContentPart.from_text(prompt)]


def build_extraction_request(payload: RawPayload, file_name: str) -> AIRequest:
    return AIRequest(
        model=MODEL_NAME,
        parts=build_extraction_parts(payload, file_name),
        response_mime_type="application/json",
        temperature=EXTRACTION_TEMPERATURE,
    )


async def extract_table(client: AIClient, payload: RawPayload, file_name: str) -> ExtractionResult:
    """
    Extract a table from a payload with a single AI call.

    A response with no text but with grounding chunks is "no structured data":
    an empty table and no grounding, not an error. Transport and auth failures raise
    AIRequestError; unparseable output raises MalformedAIResponseError.
    """
    request = build_extraction_request(payload, file_name)
    response = await call_with_timeout(client, request, EXTRACTION_ACTION)

    grounding = response.grounding_metadata
    if not response.text:
        if grounding is not None and grounding.has_chunks:
            logger.info("No text for %s, only grounding metadata; treating as no table", file_name)
            return ExtractionResult(table=[], grounding_metadata=None)
        raise MalformedAIResponseError("AI returned no text. Unable to extract data.", raw_text="")

    table = parse_table_response(response.text)
    logger.info("Extracted %d rows from %s", len(table), file_name)
    return ExtractionResult(table=table, grounding_metadata=grounding)
