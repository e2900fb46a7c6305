"""Key-value cache that round-trips the table as JSON."""
import json
import logging
import os
from typing import Dict, Optional, Protocol

from .config import CACHE_FILE, TABLE_CACHE_KEY
from .schemas import Table
from .table_state import normalize_table


logger = logging.getLogger(__name__)


class KeyValueCache(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryCache:
    """In-process cache; lost when the process exits."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value


class JsonFileCache:
    """All keys kept in a single JSON object on disk."""

    def __init__(self, path: str = CACHE_FILE):
        self.path = path

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)


def save_table(cache: KeyValueCache, table: Table, key: str = TABLE_CACHE_KEY) -> None:
    cache.set(key, json.dumps(table, ensure_ascii=False))


def load_table(cache: KeyValueCache, key: str = TABLE_CACHE_KEY) -> Table:
    """Cached table, or [] when absent, invalid JSON, or not a list of objects."""
    saved = cache.get(key)
    if not saved:
        return []

    try:
        data = json.loads(saved)
    except json.JSONDecodeError as e:
        logger.warning("Cached table is not valid JSON: %s", e)
        return []

    if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
        logger.warning("Cached table is not a list of objects; starting empty")
        return []
    return normalize_table(data)
