import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- 1. Table Types ---
# Cells are always text; the response parser coerces everything else.

TableRow = Dict[str, str]
Table = List[TableRow]


class FormatKind(str, Enum):
    """Kind of uploaded file, derived once from its declared media type."""
    PDF = "pdf"
    SPREADSHEET = "excel"
    IMAGE = "image"
    UNKNOWN = "unknown"


class RawPayload(BaseModel):
    """Content extracted from an upload: plain text, or base64 for images."""
    model_config = ConfigDict(frozen=True)

    format_kind: FormatKind
    content: str
    # Used for the inline attachment when format_kind is IMAGE
    mime_type: str = "text/plain"
    file_name: str = ""

    @property
    def is_binary(self) -> bool:
        return self.format_kind == FormatKind.IMAGE


# --- 2. Grounding Metadata ---
# Mirrors the provider's camelCase shape so it round-trips unmodified.

class GroundingSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uri: Optional[str] = None
    title: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def _default_title(cls, value):
        return value or ""


class GroundingChunk(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    web: Optional[GroundingSource] = None
    retrieved_context: Optional[GroundingSource] = Field(default=None, alias="retrievedContext")


class GroundingMetadata(BaseModel):
    """Citation data optionally attached to an AI response. Never feeds the table."""
    model_config = ConfigDict(populate_by_name=True)

    web_search_queries: List[str] = Field(default_factory=list, alias="webSearchQueries")
    grounding_chunks: List[GroundingChunk] = Field(default_factory=list, alias="groundingChunks")

    @property
    def has_chunks(self) -> bool:
        return len(self.grounding_chunks) > 0

    def sources(self) -> List[GroundingSource]:
        """Sources with a URI, preferring the web reference of each chunk."""
        found = []
        for chunk in self.grounding_chunks:
            source = chunk.web or chunk.retrieved_context
            if source and source.uri:
                found.append(source)
        return found


# --- 3. Conversation ---

class ChatMessage(BaseModel):
    """One conversation entry. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: str
    sender: Literal["user", "ai"]
    text: str
    timestamp: datetime

    @classmethod
    def create(cls, sender: str, text: str) -> "ChatMessage":
        return cls(
            id=uuid.uuid4().hex,
            sender=sender,
            text=text,
            timestamp=datetime.now(timezone.utc),
        )


# --- 4. Extraction Output ---

class ExtractionResult(BaseModel):
    table: List[Dict[str, str]]
    grounding_metadata: Optional[GroundingMetadata] = None
