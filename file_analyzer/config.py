"""Configuration settings for the AI file analyzer."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# --- API Keys ---
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY")

# --- Model Configuration ---
MODEL_NAME = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
EXTRACTION_TEMPERATURE = 0.1
CHAT_TEMPERATURE = 0.5  # More factual for Q&A
LLM_TIMEOUT_SECONDS = float(os.environ.get("LLM_TIMEOUT_SECONDS", "90"))

# --- Accepted Uploads ---
# Declared media type -> FormatKind value. Anything else is tried as plain text.
ACCEPTED_FILE_TYPES = {
    "application/pdf": "pdf",
    "application/vnd.ms-excel": "excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "excel",
    "image/png": "image",
    "image/jpeg": "image",
    "image/jpg": "image",
}

# --- Chat Context Bounds ---
RAW_CONTEXT_CHAR_LIMIT = 2000
CHAT_HISTORY_LIMIT = 4

# --- Table Editing ---
DEFAULT_COLUMN_NAME = "Column 1"

# --- Persistence ---
TABLE_CACHE_KEY = "extractedData"
OUTPUT_DIR = os.environ.get("OUTPUT_DIR", "output")
CACHE_FILE = os.path.join(OUTPUT_DIR, "cache.json")
