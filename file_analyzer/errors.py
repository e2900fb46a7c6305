"""Error taxonomy for the extraction pipeline."""


class FileAnalyzerError(Exception):
    """Base class for every error surfaced to the caller."""
    pass


class ContentExtractionError(FileAnalyzerError):
    """Raised when a source file is malformed or unreadable."""
    pass


class UnsupportedFormatError(FileAnalyzerError):
    """Raised when a file is neither an accepted type nor decodable as text."""
    pass


class MalformedAIResponseError(FileAnalyzerError):
    """Raised when AI output cannot be coerced to JSON."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class AIRequestError(FileAnalyzerError):
    """Raised on transport, timeout or authentication failures from the AI service."""
    pass
