from __future__ import annotations
import json
import logging
from collections.abc import Iterator, MutableMapping
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LAST_ACTIVE_NOTE_KEY = "lastActiveNoteID"


class JsonPreferences(MutableMapping):
    """String preferences kept in a small JSON file, rewritten on every change."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: Optional[dict[str, str]] = None

    def _load(self) -> dict[str, str]:
        if self._data is None:
            self._data = {}
            if self.path.exists():
                try:
                    raw = json.loads(self.path.read_text(encoding="utf-8"))
                except (OSError, ValueError):
                    logger.warning("Ignoring unreadable preferences file %s", self.path)
                    raw = {}
                if isinstance(raw, dict):
                    self._data = {str(k): str(v) for k, v in raw.items()}
        return self._data

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._load(), indent=2), encoding="utf-8")

    def __getitem__(self, key: str) -> str:
        return self._load()[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()

    def __delitem__(self, key: str) -> None:
        del self._load()[key]
        self._flush()

    def __iter__(self) -> Iterator[str]:
        return iter(self._load())

    def __len__(self) -> int:
        return len(self._load())
