import pytest

from tabnotes.db import reset_engine
from tabnotes.services import NoteCollection
from tabnotes.store import MemoryNoteStore


@pytest.fixture
def tabs():
    return NoteCollection(MemoryNoteStore())


@pytest.fixture
def sqlite_path(tmp_path, monkeypatch):
    path = tmp_path / "tabs.sqlite"
    monkeypatch.setenv("TABNOTES_DB_PATH", str(path))
    monkeypatch.setenv("TABNOTES_PREFS_PATH", str(tmp_path / "prefs.json"))
    reset_engine()
    yield path
    reset_engine()
