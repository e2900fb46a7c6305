"""Per-format content extraction for uploaded files.

Every upload becomes a RawPayload tagged with its FormatKind:
1. PDF → page text (words joined by spaces, pages by newlines)
2. Spreadsheet → "Sheet: <name>" blocks of tab-separated rows
3. Image → base64 text for an inline AI attachment
4. Anything else → best-effort UTF-8 text
"""
import base64
import csv
import io
import logging
import mimetypes
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import openpyxl
import pdfplumber
import xlrd
from PIL import Image

from .config import ACCEPTED_FILE_TYPES
from .errors import ContentExtractionError, UnsupportedFormatError
from .schemas import FormatKind, RawPayload


logger = logging.getLogger(__name__)

# Workbook file signatures
ZIP_SIGNATURE = b"PK\x03\x04"  # OOXML (.xlsx)
OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"  # BIFF (.xls)

SheetRows = List[List[Any]]


def format_kind_for(mime_type: Optional[str]) -> FormatKind:
    """Map a declared media type to its FormatKind (UNKNOWN if not accepted)."""
    if not mime_type:
        return FormatKind.UNKNOWN
    return FormatKind(ACCEPTED_FILE_TYPES.get(mime_type.lower(), FormatKind.UNKNOWN.value))


# ============================================================
# PDF
# ============================================================

def extract_text_from_pdf(data: bytes) -> str:
    """Extract text page by page; any failing page aborts the whole parse."""
    pages = []
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page_num, page in enumerate(pdf.pages, start=1):
                try:
                    words = page.extract_words()
                except Exception as e:
                    raise ContentExtractionError(f"Failed to read PDF page {page_num}: {e}") from e
                pages.append(" ".join(word["text"] for word in words))
    except ContentExtractionError:
        raise
    except Exception as e:
        raise ContentExtractionError(f"Failed to open PDF: {e}") from e

    return "\n".join(pages)


# ============================================================
# SPREADSHEETS
# ============================================================

def _cell_to_text(value: Any) -> str:
    """Render one cell the way it reads in the sheet."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _trim_row(row: List[Any]) -> List[Any]:
    """Drop trailing blank cells; readers pad short rows to the sheet width."""
    end = len(row)
    while end and (row[end - 1] is None or row[end - 1] == ""):
        end -= 1
    return row[:end]


def _read_xlsx(data: bytes) -> List[Tuple[str, SheetRows]]:
    wb = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        return [
            (sheet_name, [list(row) for row in wb[sheet_name].iter_rows(values_only=True)])
            for sheet_name in wb.sheetnames
        ]
    finally:
        wb.close()


def _read_xls(data: bytes) -> List[Tuple[str, SheetRows]]:
    book = xlrd.open_workbook(file_contents=data)
    return [
        (sheet.name, [sheet.row_values(i) for i in range(sheet.nrows)])
        for sheet in book.sheets()
    ]


def _read_csv(data: bytes) -> List[Tuple[str, SheetRows]]:
    # Some platforms label plain .csv uploads as application/vnd.ms-excel
    text = data.decode("utf-8-sig")
    return [("Sheet1", [row for row in csv.reader(io.StringIO(text))])]


def read_workbook(data: bytes) -> List[Tuple[str, SheetRows]]:
    """Read every sheet as (name, rows), choosing the reader from the file signature."""
    try:
        if data.startswith(ZIP_SIGNATURE):
            return _read_xlsx(data)
        if data.startswith(OLE2_SIGNATURE):
            return _read_xls(data)
        return _read_csv(data)
    except Exception as e:
        raise ContentExtractionError(f"Failed to read spreadsheet: {e}") from e


def extract_text_from_spreadsheet(data: bytes) -> str:
    """Project every non-empty sheet to a 'Sheet: <name>' block of tab-separated rows."""
    blocks = []
    for sheet_name, rows in read_workbook(data):
        if not rows:
            continue
        lines = [f"Sheet: {sheet_name}"]
        lines.extend("\t".join(_cell_to_text(cell) for cell in _trim_row(row)) for row in rows)
        blocks.append("\n".join(lines))

    return "\n\n".join(blocks)


# ============================================================
# IMAGES
# ============================================================

def _normalize_image_mime(mime_type: str) -> str:
    mime_type = mime_type.lower()
    return "image/jpeg" if mime_type == "image/jpg" else mime_type


# Image types the AI accepts inline
IMAGE_MIME_TYPES = {
    _normalize_image_mime(mime) for mime, kind in ACCEPTED_FILE_TYPES.items()
    if kind == FormatKind.IMAGE.value
}

# Pillow formats that are a variant of an accepted one (multi-picture camera JPEGs)
IMAGE_FORMAT_ALIASES = {"MPO": "JPEG"}


def detect_image_mime(data: bytes, declared: str) -> str:
    """Verify the image decodes and return its real MIME type, if it is one the AI accepts."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format or ""
            img.verify()
    except Exception as e:
        raise ContentExtractionError(f"Failed to read image: {e}") from e

    mime_type = Image.MIME.get(IMAGE_FORMAT_ALIASES.get(image_format, image_format))
    if mime_type in IMAGE_MIME_TYPES:
        return mime_type
    return _normalize_image_mime(declared)


def encode_image(data: bytes) -> str:
    """Base64 text with no data-URI prefix."""
    return base64.b64encode(data).decode("ascii")


# ============================================================
# DISPATCH
# ============================================================

def extract_content(data: bytes, mime_type: str, file_name: str = "") -> RawPayload:
    """
    Extract a RawPayload from raw upload bytes and their declared media type.

    Raises ContentExtractionError for unreadable PDFs, workbooks and images, and
    UnsupportedFormatError for unknown types that are not valid text.
    """
    format_kind = format_kind_for(mime_type)

    if format_kind == FormatKind.PDF:
        content = extract_text_from_pdf(data)
        payload_mime = "text/plain"
    elif format_kind == FormatKind.SPREADSHEET:
        content = extract_text_from_spreadsheet(data)
        payload_mime = "text/plain"
    elif format_kind == FormatKind.IMAGE:
        payload_mime = detect_image_mime(data, mime_type)
        content = encode_image(data)
    else:
        try:
            content = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise UnsupportedFormatError("Unsupported file type or unable to read file.") from e
        payload_mime = "text/plain"

    logger.info("Extracted %d chars from %s (%s)", len(content), file_name or "upload", format_kind.value)
    return RawPayload(
        format_kind=format_kind,
        content=content,
        mime_type=payload_mime,
        file_name=file_name,
    )


def guess_mime_type(path: Union[str, Path]) -> str:
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or "application/octet-stream"


def extract_content_from_path(path: Union[str, Path], mime_type: Optional[str] = None) -> RawPayload:
    """Read a file from disk and extract it; the media type is guessed from the name if absent."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ContentExtractionError(f"Failed to read {path.name}: {e}") from e

    return extract_content(data, mime_type or guess_mime_type(path), file_name=path.name)
