"""AI collaborator interface and the Google Gemini adapter behind it."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

from google import genai
from google.genai import types

from .config import GEMINI_API_KEY, LLM_TIMEOUT_SECONDS
from .errors import AIRequestError
from .schemas import GroundingChunk, GroundingMetadata, GroundingSource


logger = logging.getLogger(__name__)

# Substring the provider puts in authentication failures
AUTH_ERROR_MARKER = "API key not valid"


# ============================================================
# REQUEST / RESPONSE CONTRACT
# ============================================================

@dataclass
class ContentPart:
    """Text, or inline binary data with its MIME type."""
    text: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_text(cls, text: str) -> "ContentPart":
        return cls(text=text)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> "ContentPart":
        return cls(data=data, mime_type=mime_type)


@dataclass
class AIRequest:
    model: str
    parts: List[ContentPart]
    response_mime_type: Optional[str] = None
    temperature: Optional[float] = None


@dataclass
class AIResponse:
    text: Optional[str]
    grounding_metadata: Optional[GroundingMetadata] = None


class AIClient(Protocol):
    """Single-shot remote call: one request in, one response out."""

    async def generate(self, request: AIRequest) -> AIResponse:
        ...


# ============================================================
# GEMINI ADAPTER
# ============================================================

def _to_genai_part(part: ContentPart) -> types.Part:
    if part.data is not None:
        return types.Part.from_bytes(data=part.data, mime_type=part.mime_type)
    return types.Part.from_text(text=part.text or "")


def _to_source(source: Any) -> Optional[GroundingSource]:
    if source is None:
        return None
    return GroundingSource(uri=getattr(source, "uri", None), title=getattr(source, "title", None))


def grounding_from_response(response: Any) -> Optional[GroundingMetadata]:
    """Convert the first candidate's grounding metadata, if any."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    metadata = getattr(candidates[0], "grounding_metadata", None)
    if metadata is None:
        return None

    chunks = [
        GroundingChunk(
            web=_to_source(getattr(chunk, "web", None)),
            retrieved_context=_to_source(getattr(chunk, "retrieved_context", None)),
        )
        for chunk in (getattr(metadata, "grounding_chunks", None) or [])
    ]
    return GroundingMetadata(
        web_search_queries=list(getattr(metadata, "web_search_queries", None) or []),
        grounding_chunks=chunks,
    )


class GeminiClient:
    """AIClient backed by google-genai's async models API."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[genai.Client] = None):
        if client is None:
            api_key = api_key or GEMINI_API_KEY
            if not api_key:
                raise AIRequestError(
                    "GEMINI_API_KEY environment variable is not set. Please set it in your .env file."
                )
            client = genai.Client(api_key=api_key)
        self._client = client

    async def generate(self, request: AIRequest) -> AIResponse:
        contents = [
            types.Content(
                role="user",
                parts=[_to_genai_part(part) for part in request.parts],
            ),
        ]

        config = types.GenerateContentConfig(
            response_mime_type=request.response_mime_type,
            temperature=request.temperature,
        )

        response = await self._client.aio.models.generate_content(
            model=request.model,
            contents=contents,
            config=config,
        )

        return AIResponse(
            text=response.text,
            grounding_metadata=grounding_from_response(response),
        )


# ============================================================
# CALLING
# ============================================================

def to_request_error(error: Exception, action: str) -> AIRequestError:
    """Rewrite a raw failure into a user-facing AIRequestError."""
    message = str(error)
    if AUTH_ERROR_MARKER in message:
        return AIRequestError("Invalid Gemini API Key. Please check your GEMINI_API_KEY environment variable.")
    return AIRequestError(f"{action} failed: {message}")


async def call_with_timeout(
    client: AIClient,
    request: AIRequest,
    action: str,
    timeout_seconds: float = LLM_TIMEOUT_SECONDS
) -> AIResponse:
    """Invoke the AI client once; never retried. Failures become AIRequestError."""
    try:
        return await asyncio.wait_for(client.generate(request), timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.error("%s timed out after %ss", action, timeout_seconds)
        raise AIRequestError(f"{action} failed: LLM timeout after {timeout_seconds:g}s") from e
    except Exception as e:
        logger.error("Error calling Gemini API (%s): %s", action, e)
        raise to_request_error(e, action) from e
