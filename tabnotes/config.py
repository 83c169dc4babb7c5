from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path

_TRUTHY = {"1", "true", "yes", "on"}


def _data_dir() -> Path:
    return Path.home() / ".tabnotes"


def db_path() -> Path:
    env_path = os.getenv("TABNOTES_DB_PATH")
    path = Path(env_path) if env_path else _data_dir() / "tabnotes.db"
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def prefs_path() -> Path:
    env_path = os.getenv("TABNOTES_PREFS_PATH")
    path = Path(env_path) if env_path else _data_dir() / "preferences.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


@dataclass(frozen=True)
class Settings:
    db_path: Path
    prefs_path: Path
    strict: bool = False
    log_level: str = "WARNING"


def load_settings() -> Settings:
    """Read settings from the TABNOTES_* environment variables."""
    return Settings(
        db_path=db_path(),
        prefs_path=prefs_path(),
        strict=os.getenv("TABNOTES_STRICT", "").strip().lower() in _TRUTHY,
        log_level=os.getenv("TABNOTES_LOG_LEVEL", "WARNING").upper(),
    )
