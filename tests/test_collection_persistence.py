import uuid

import pytest
from sqlalchemy import text

from tabnotes.db import get_engine
from tabnotes.exceptions import (
    PersistenceFailed, PersistenceReadFailure, PersistenceWriteFailure,
)
from tabnotes.preferences import JsonPreferences
from tabnotes.services import NoteCollection
from tabnotes.store import MemoryNoteStore, SQLNoteStore


class FlakyStore(MemoryNoteStore):
    """Memory store that can be told to fail reads or writes."""

    def __init__(self):
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False

    def save(self):
        if self.fail_writes:
            raise PersistenceWriteFailure("disk full")
        super().save()

    def fetch_all_sorted_by_order(self):
        if self.fail_reads:
            raise PersistenceReadFailure("database is locked")
        return super().fetch_all_sorted_by_order()


def test_existing_notes_load_sorted_by_order():
    store = MemoryNoteStore()
    tabs = NoteCollection(store)
    tabs.create()
    tabs.create()
    tabs.move(2, 0)
    expected = [n.id for n in tabs.notes]

    reopened = NoteCollection(store)

    assert [n.id for n in reopened.notes] == expected
    assert reopened.selection == expected[0]


def test_remembered_selection_is_restored():
    store = MemoryNoteStore()
    prefs = {}
    tabs = NoteCollection(store, prefs)
    tabs.create()
    tabs.create()
    tabs.select_by_index(1)
    remembered = tabs.selection

    reopened = NoteCollection(store, prefs)

    assert reopened.selection == remembered
    assert prefs["lastActiveNoteID"] == str(remembered)


@pytest.mark.parametrize("stale", [str(uuid.uuid4()), "garbage", ""])
def test_stale_remembered_selection_falls_back_to_first(stale):
    store = MemoryNoteStore()
    NoteCollection(store).create()

    reopened = NoteCollection(store, {"lastActiveNoteID": stale})

    assert reopened.selection == reopened.notes[0].id


def test_sqlite_restart_keeps_tabs_and_selection(sqlite_path, tmp_path):
    prefs_path = tmp_path / "prefs.json"
    store = SQLNoteStore(sqlite_path)
    tabs = NoteCollection(store, JsonPreferences(prefs_path))
    tabs.create()
    tabs.create()
    tabs.update_title(tabs.notes[0], "first")
    tabs.update_content(tabs.notes[1], "emoji 🙂 ñ\ttab\r\nline")
    tabs.move(0, 2)
    tabs.select_by_index(0)
    expected = [(n.id, n.title, n.content, n.order) for n in tabs.notes]
    selected = tabs.selection
    store.close()

    store = SQLNoteStore(sqlite_path)
    reopened = NoteCollection(store, JsonPreferences(prefs_path))

    assert [(n.id, n.title, n.content, n.order) for n in reopened.notes] == expected
    assert reopened.selection == selected
    store.close()


def test_sqlite_delete_and_duplicate(sqlite_path):
    store = SQLNoteStore(sqlite_path)
    tabs = NoteCollection(store)
    tabs.update_content(tabs.notes[0], "body")
    copy = tabs.duplicate(tabs.notes[0])
    tabs.delete(tabs.notes[0])
    store.close()

    store = SQLNoteStore(sqlite_path)
    reopened = NoteCollection(store)
    assert [(n.id, n.title, n.content) for n in reopened.notes] == [
        (copy.id, "Untitled 1 (Copy)", "body")
    ]
    store.close()


def test_read_failure_on_start_heals_with_default_tab():
    store = FlakyStore()
    store.fail_reads = True

    tabs = NoteCollection(store)

    assert len(tabs) == 1
    assert tabs.selected_note is not None


def test_refresh_read_failure_is_swallowed_and_healed():
    store = FlakyStore()
    tabs = NoteCollection(store)
    tabs.create()
    store.fail_reads = True

    tabs.refresh()

    assert len(tabs) >= 1
    assert tabs.selected_note in tabs.notes


def test_write_failure_keeps_in_memory_changes():
    store = FlakyStore()
    tabs = NoteCollection(store)
    store.fail_writes = True

    created = tabs.create()
    tabs.update_title(created, "kept")
    tabs.move(1, 0)

    assert [n.title for n in tabs.notes] == ["kept", "Untitled 1"]
    assert [n.order for n in tabs.notes] == [0, 1]
    assert tabs.selection == created.id


def test_write_failure_on_delete_still_removes_tab():
    store = FlakyStore()
    tabs = NoteCollection(store)
    tabs.create()
    store.fail_writes = True

    tabs.delete(tabs.notes[1])

    assert len(tabs) == 1


def test_strict_mode_raises_after_applying_change():
    store = FlakyStore()
    tabs = NoteCollection(store, strict=True)
    calls = []
    tabs.subscribe(calls.append)
    store.fail_writes = True

    with pytest.raises(PersistenceWriteFailure):
        tabs.create()

    assert len(tabs) == 2
    assert tabs.selection == tabs.notes[-1].id
    assert len(calls) == 1


def test_strict_mode_read_failure_on_refresh():
    store = FlakyStore()
    tabs = NoteCollection(store, strict=True)
    store.fail_reads = True

    with pytest.raises(PersistenceFailed):
        tabs.refresh()

    assert len(tabs) >= 1


def _fail_on(path, event):
    with get_engine(path).begin() as conn:
        conn.execute(text(
            f"CREATE TRIGGER fail_{event.lower()} BEFORE {event} ON note "
            "BEGIN SELECT RAISE(ABORT, 'disk full'); END"
        ))


def _heal(path, event):
    with get_engine(path).begin() as conn:
        conn.execute(text(f"DROP TRIGGER fail_{event.lower()}"))


def _reopen(path):
    store = SQLNoteStore(path)
    tabs = NoteCollection(store)
    store.close()
    return tabs


def test_sqlite_failed_update_keeps_edits_and_retries(sqlite_path):
    store = SQLNoteStore(sqlite_path)
    tabs = NoteCollection(store)
    note = tabs.notes[0]
    _fail_on(sqlite_path, "UPDATE")

    tabs.update_content(note, "new text")
    tabs.update_title(note, "renamed")

    assert tabs.selected_note is note
    assert (note.title, note.content) == ("renamed", "new text")

    _heal(sqlite_path, "UPDATE")
    tabs.update_content(note, "final")
    store.close()

    assert [(n.title, n.content) for n in _reopen(sqlite_path).notes] == [("renamed", "final")]


def test_sqlite_failed_move_keeps_new_order(sqlite_path):
    store = SQLNoteStore(sqlite_path)
    tabs = NoteCollection(store)
    tabs.create()
    tabs.create()
    _fail_on(sqlite_path, "UPDATE")

    tabs.move(0, 2)

    assert [n.title for n in tabs.notes] == ["Untitled 2", "Untitled 3", "Untitled 1"]
    assert [n.order for n in tabs.notes] == [0, 1, 2]

    _heal(sqlite_path, "UPDATE")
    tabs.update_title(tabs.notes[0], "B")
    store.close()

    assert [n.title for n in _reopen(sqlite_path).notes] == ["B", "Untitled 3", "Untitled 1"]


def test_sqlite_failed_insert_and_delete_are_retried(sqlite_path):
    store = SQLNoteStore(sqlite_path)
    tabs = NoteCollection(store)
    _fail_on(sqlite_path, "INSERT")

    created = tabs.create()
    assert len(tabs) == 2
    assert tabs.selection == created.id

    _heal(sqlite_path, "INSERT")
    tabs.update_content(created, "kept")
    _fail_on(sqlite_path, "DELETE")

    tabs.delete(tabs.notes[0])
    assert [n.id for n in tabs.notes] == [created.id]

    _heal(sqlite_path, "DELETE")
    tabs.update_title(created, "survivor")
    store.close()

    assert [(n.title, n.content) for n in _reopen(sqlite_path).notes] == [("survivor", "kept")]


def test_sqlite_deleting_unsaved_tab_never_reaches_database(sqlite_path):
    store = SQLNoteStore(sqlite_path)
    tabs = NoteCollection(store)
    first = tabs.notes[0]
    _fail_on(sqlite_path, "INSERT")

    created = tabs.create()
    tabs.delete(created)

    assert [n.id for n in tabs.notes] == [first.id]
    _heal(sqlite_path, "INSERT")
    tabs.update_title(first, "only")
    store.close()

    assert [n.title for n in _reopen(sqlite_path).notes] == ["only"]
