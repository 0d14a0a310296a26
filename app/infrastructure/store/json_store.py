from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from app.application.ports.clock import ClockPort
from app.infrastructure.store.memory_store import MemoryDocumentStore

_DATETIME_KEY = "$datetime"


class JsonDocumentStore(MemoryDocumentStore):
    """MemoryDocumentStore that writes every commit through to a JSON file."""

    def __init__(self, data_dir: str = "./data", clock: ClockPort | None = None) -> None:
        super().__init__(clock=clock)
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._file_path = self._data_dir / "documents.json"
        self._logger = logging.getLogger(__name__)
        self._load()

    def _load(self) -> None:
        """Load documents from disk; a missing or corrupted file starts empty."""
        if not self._file_path.exists():
            return
        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                data = json.load(f, object_hook=_decode_datetime)
        except (json.JSONDecodeError, IOError) as e:
            self._logger.error("Could not read document file, starting empty", extra={"error": str(e)})
            return

        with self._lock:
            self._documents = dict(data.get("documents", {}))
            self._versions = {path: int(v) for path, v in data.get("versions", {}).items()}
            self._counter = max(self._versions.values(), default=0)

    def _persist(self) -> None:
        """Save documents to JSON file atomically."""
        temp_path = self._file_path.with_suffix(".json.tmp")
        payload = {"documents": self._documents, "versions": self._versions, "version": 1}
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False, default=_encode_datetime)
            temp_path.replace(self._file_path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)
            raise


def _encode_datetime(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_KEY: value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode_datetime(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _DATETIME_KEY in obj:
        try:
            return datetime.fromisoformat(obj[_DATETIME_KEY])
        except (ValueError, TypeError):
            return None
    return obj
