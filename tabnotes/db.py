from pathlib import Path
from typing import Optional
from sqlmodel import SQLModel, Session, create_engine

from .config import db_path

_ENGINE = None
_ENGINE_URL = None  # track current engine's URL so we can switch when env changes

def _compute_url(path: Optional[Path] = None) -> str:
    if path is None:
        path = db_path()
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"

def get_engine(path: Optional[Path] = None):
    global _ENGINE, _ENGINE_URL
    url = _compute_url(path)
    if _ENGINE is None or _ENGINE_URL != url:
        # swap engine if URL changed (common in tests)
        if _ENGINE is not None:
            _ENGINE.dispose()
        _ENGINE = create_engine(url, echo=False)
        _ENGINE_URL = url
    return _ENGINE

def reset_engine():
    """For tests: drop the cached engine so a new TABNOTES_DB_PATH is picked up."""
    global _ENGINE, _ENGINE_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None

def init_db(path: Optional[Path] = None):
    engine = get_engine(path)
    SQLModel.metadata.create_all(engine)
    return engine

def get_session(path: Optional[Path] = None):
    # keep objects alive after commit so tab state survives a save
    return Session(get_engine(path), expire_on_commit=False)

