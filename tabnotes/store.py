"""Note stores: the durable side of a tab collection.

A store tracks note objects handed to ``insert`` and any attribute changes
made to notes it returned; ``save`` makes all of that durable in one step.
"""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional, Protocol
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import Session, select

from .db import get_session, init_db
from .exceptions import PersistenceReadFailure, PersistenceWriteFailure
from .models import Note

logger = logging.getLogger(__name__)


class NoteStore(Protocol):
    def insert(self, note: Note) -> None: ...

    def delete(self, note: Note) -> None: ...

    def save(self) -> None: ...

    def fetch_all_sorted_by_order(self) -> list[Note]: ...


class SQLNoteStore:
    """SQLite-backed store holding one long-lived session."""

    def __init__(self, path: Optional[Path] = None, session: Optional[Session] = None):
        if session is None:
            init_db(path)
            session = get_session(path)
        self._session = session

    def insert(self, note: Note) -> None:
        self._session.add(note)

    def delete(self, note: Note) -> None:
        if note in self._session.new:
            # never reached the database
            self._session.expunge(note)
            return
        try:
            self._session.delete(note)
        except SQLAlchemyError as exc:
            raise PersistenceWriteFailure(str(exc)) from exc

    def save(self) -> None:
        snapshot = self._snapshot()
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            self._rollback(snapshot)
            raise PersistenceWriteFailure(str(exc)) from exc

    def fetch_all_sorted_by_order(self) -> list[Note]:
        stmt = select(Note).order_by(Note.order.asc(), Note.created_at.asc())
        snapshot = self._snapshot()
        try:
            return list(self._session.exec(stmt))
        except SQLAlchemyError as exc:
            self._rollback(snapshot)
            raise PersistenceReadFailure(str(exc)) from exc

    def close(self) -> None:
        self._session.close()

    def _snapshot(self):
        session = self._session
        modified = {id(obj) for obj in [*session.dirty, *session.new]}
        notes = [
            (obj, _column_values(obj), id(obj) in modified)
            for obj in [*session.identity_map.values(), *session.new]
        ]
        return notes, list(session.new), list(session.deleted)

    def _rollback(self, snapshot) -> None:
        """Roll back the transaction but keep unsaved note changes queued.

        Rollback expires every note in the session. Untouched notes get their
        loaded values back as committed state; changed notes get their new
        values re-applied so the next ``save`` retries them.
        """
        notes, pending, doomed = snapshot
        self._session.rollback()
        for obj, values, modified in notes:
            for key, value in values.items():
                if modified and key != "id":
                    setattr(obj, key, value)
                else:
                    set_committed_value(obj, key, value)
        for obj in pending:
            self._session.add(obj)
        for obj in doomed:
            self._session.delete(obj)


def _column_values(obj: Note) -> dict:
    state = inspect(obj)
    columns = state.mapper.column_attrs.keys()
    return {k: v for k, v in state.dict.items() if k in columns}


class MemoryNoteStore:
    """Process-local store; nothing survives the instance."""

    def __init__(self) -> None:
        self._saved: list[Note] = []
        self._pending: list[Note] = []
        self._deleted: list[Note] = []

    def insert(self, note: Note) -> None:
        self._pending.append(note)

    def delete(self, note: Note) -> None:
        self._deleted.append(note)

    def save(self) -> None:
        known = {n.id for n in self._saved}
        rows = self._saved + [n for n in self._pending if n.id not in known]
        gone = {n.id for n in self._deleted}
        self._saved = [n for n in rows if n.id not in gone]
        self._pending.clear()
        self._deleted.clear()
        logger.debug("memory store saved %d notes", len(self._saved))

    def fetch_all_sorted_by_order(self) -> list[Note]:
        # sorted() is stable, so equal orders keep insertion order
        return sorted(self._saved, key=lambda n: n.order)

    def close(self) -> None:
        pass
