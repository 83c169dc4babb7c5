"""The tab collection: ordered notes, the selected tab and every mutation.

``NoteCollection`` is the only writer to its store. Presentation code reads
``notes``/``selection`` and calls the operations below; each completed
mutation notifies subscribers exactly once.
"""
from __future__ import annotations
import logging
import threading
import uuid
from collections.abc import Callable, MutableMapping
from typing import Optional, Union

from .exceptions import PersistenceFailed, PersistenceReadFailure
from .models import DEFAULT_TITLE, Note
from .preferences import LAST_ACTIVE_NOTE_KEY
from .store import NoteStore

logger = logging.getLogger(__name__)

Listener = Callable[["NoteCollection"], None]
NoteRef = Union[Note, uuid.UUID, str]


def _parse_id(value: NoteRef | None) -> Optional[uuid.UUID]:
    if value is None:
        return None
    if isinstance(value, Note):
        return value.id
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class NoteCollection:
    def __init__(
        self,
        store: NoteStore,
        preferences: Optional[MutableMapping[str, str]] = None,
        *,
        strict: bool = False,
    ):
        self._store = store
        self._prefs: MutableMapping[str, str] = {} if preferences is None else preferences
        self.strict = strict

        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._notes: list[Note] = []
        self._selection: Optional[uuid.UUID] = None
        # (opened note, selection before it) for the latest create/duplicate
        self._opened_from: Optional[tuple[uuid.UUID, Optional[uuid.UUID]]] = None
        self._failure: Optional[PersistenceFailed] = None

        with self._lock:
            remembered = self._remembered_selection()
            self._fetch()
            self._ensure_at_least_one()
            if self._find(remembered) is not None:
                self._set_selection(remembered)
            self._finish(notify=False)

    # ---------- state ----------
    @property
    def notes(self) -> list[Note]:
        with self._lock:
            return list(self._notes)

    @property
    def selection(self) -> Optional[uuid.UUID]:
        return self._selection

    @property
    def selected_note(self) -> Optional[Note]:
        with self._lock:
            return self._find(self._selection)

    def __len__(self) -> int:
        return len(self._notes)

    def index_of(self, note: Optional[NoteRef]) -> Optional[int]:
        note_id = _parse_id(note)
        with self._lock:
            for i, n in enumerate(self._notes):
                if n.id == note_id:
                    return i
        return None

    def get(self, note: NoteRef) -> Optional[Note]:
        with self._lock:
            return self._find(_parse_id(note))

    # ---------- observers ----------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ---------- fetch ----------
    def refresh(self) -> None:
        with self._lock:
            self._fetch()
            self._finish()

    # ---------- create ----------
    def create(self) -> Note:
        with self._lock:
            note = self._create()
            logger.info("Created tab %s (%s)", note.id, note.title)
            self._finish()
            return note

    # ---------- delete ----------
    def delete(self, note: NoteRef) -> None:
        with self._lock:
            target = self._find(_parse_id(note))
            if target is None:
                return
            was_selected = self._selection == target.id
            return_to = None
            if was_selected and self._opened_from and self._opened_from[0] == target.id:
                return_to = self._opened_from[1]

            self._notes = [n for n in self._notes if n.id != target.id]
            self._persist(lambda: self._store.delete(target))
            logger.info("Deleted tab %s (%s)", target.id, target.title)
            self._ensure_at_least_one()

            if was_selected:
                fallback = self._find(return_to)
                self._set_selection(fallback.id if fallback else self._first_id())
            self._finish()

    # ---------- update ----------
    def update_content(self, note: NoteRef, content: str) -> None:
        with self._lock:
            target = self._find(_parse_id(note))
            if target is None:
                return
            target.content = content
            target.touch()
            self._persist()
            logger.debug("Updated content of tab %s (%d chars)", target.id, len(content))
            self._finish()

    def update_title(self, note: NoteRef, title: str) -> None:
        """Rename a tab. Only the empty string is replaced; trimming is up to the caller."""
        with self._lock:
            target = self._find(_parse_id(note))
            if target is None:
                return
            target.title = title if title else DEFAULT_TITLE
            target.touch()
            self._persist()
            logger.debug("Renamed tab %s to %r", target.id, target.title)
            self._finish()

    # ---------- reorder ----------
    def move(self, from_index: int, to_index: int) -> None:
        with self._lock:
            count = len(self._notes)
            if from_index == to_index:
                return
            if not (0 <= from_index < count and 0 <= to_index < count):
                return

            notes = list(self._notes)
            moved = notes.pop(from_index)
            notes.insert(to_index, moved)
            for position, n in enumerate(notes):
                n.order = position
            self._notes = notes

            self._persist()
            logger.info("Moved tab %s from %d to %d", moved.id, from_index, to_index)
            self._finish()

    # ---------- duplicate ----------
    def duplicate(self, note: NoteRef) -> Optional[Note]:
        with self._lock:
            source = self._find(_parse_id(note))
            if source is None:
                return None
            copy = Note(
                title=f"{source.title} (Copy)",
                content=source.content,
                order=self._next_order(),
            )
            self._add(copy)
            logger.info("Duplicated tab %s as %s", source.id, copy.id)
            self._finish()
            return copy

    # ---------- navigation ----------
    def select(self, note: NoteRef) -> None:
        with self._lock:
            target = self._find(_parse_id(note))
            if target is None:
                return
            self._set_selection(target.id)
            self._finish()

    def select_by_index(self, index: int) -> None:
        with self._lock:
            if not 0 <= index < len(self._notes):
                return
            self._set_selection(self._notes[index].id)
            self._finish()

    def select_next(self) -> None:
        with self._lock:
            if not self._notes:
                return
            current = self.index_of(self._selection)
            if current is None:
                self._set_selection(self._notes[0].id)
            else:
                self._set_selection(self._notes[(current + 1) % len(self._notes)].id)
            self._finish()

    def select_previous(self) -> None:
        with self._lock:
            if not self._notes:
                return
            current = self.index_of(self._selection)
            if current is None:
                self._set_selection(self._notes[-1].id)
            else:
                # index -1 wraps to the last tab
                self._set_selection(self._notes[current - 1].id)
            self._finish()

    # ---------- internals ----------
    def _find(self, note_id: Optional[uuid.UUID]) -> Optional[Note]:
        if note_id is None:
            return None
        for n in self._notes:
            if n.id == note_id:
                return n
        return None

    def _first_id(self) -> Optional[uuid.UUID]:
        return self._notes[0].id if self._notes else None

    def _next_order(self) -> int:
        return max((n.order for n in self._notes), default=-1) + 1

    def _create(self) -> Note:
        note = Note(title=f"{DEFAULT_TITLE} {len(self._notes) + 1}", order=self._next_order())
        self._add(note)
        return note

    def _add(self, note: Note) -> None:
        previous = self._selection
        self._notes.append(note)
        self._persist(lambda: self._store.insert(note))
        self._set_selection(note.id)
        self._opened_from = (note.id, previous)

    def _fetch(self) -> None:
        try:
            self._notes = list(self._store.fetch_all_sorted_by_order())
        except PersistenceReadFailure as exc:
            logger.warning("Could not load notes, starting from an empty list: %s", exc)
            self._record_failure(exc)
            self._notes = []

    def _persist(self, change: Optional[Callable[[], None]] = None) -> None:
        """Apply ``change`` to the store and save; reload on success.

        On failure the locally computed sequence stays authoritative.
        """
        try:
            if change is not None:
                change()
            self._store.save()
        except PersistenceFailed as exc:
            logger.warning("Could not save notes, keeping in-memory state: %s", exc)
            self._record_failure(exc)
            self._notes.sort(key=lambda n: n.order)
            return
        try:
            self._notes = list(self._store.fetch_all_sorted_by_order())
        except PersistenceReadFailure as exc:
            logger.warning("Could not reload notes after saving: %s", exc)
            self._record_failure(exc)
            self._notes.sort(key=lambda n: n.order)

    def _record_failure(self, exc: PersistenceFailed) -> None:
        if self._failure is None:
            self._failure = exc

    def _ensure_at_least_one(self) -> None:
        if not self._notes:
            self._create()
        if self._selection is None:
            self._set_selection(self._first_id())

    def _repair_selection(self) -> None:
        if self._selection is not None and self._find(self._selection) is None:
            self._set_selection(self._first_id())

    def _remembered_selection(self) -> Optional[uuid.UUID]:
        return _parse_id(self._prefs.get(LAST_ACTIVE_NOTE_KEY))

    def _set_selection(self, note_id: Optional[uuid.UUID]) -> None:
        self._selection = note_id
        self._opened_from = None
        if note_id is None:
            return
        try:
            self._prefs[LAST_ACTIVE_NOTE_KEY] = str(note_id)
        except OSError as exc:
            logger.warning("Could not remember the active tab: %s", exc)
        logger.debug("Selected tab %s", note_id)

    def _finish(self, notify: bool = True) -> None:
        self._ensure_at_least_one()
        self._repair_selection()
        failure, self._failure = self._failure, None
        if notify:
            for listener in list(self._listeners):
                try:
                    listener(self)
                except Exception:
                    logger.exception("Note collection listener %r failed", listener)
        if failure is not None and self.strict:
            raise failure
