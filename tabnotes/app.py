# tabnotes/app.py
from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Optional
from datetime import datetime
import uuid

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tabnotes.config import load_settings
from tabnotes.exceptions import PersistenceFailed
from tabnotes.logging_setup import setup_logging
from tabnotes.models import Note
from tabnotes.preferences import JsonPreferences
from tabnotes.services import NoteCollection
from tabnotes.store import SQLNoteStore

# ---------- Schemas ----------
class NoteEdit(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None

class MoveRequest(BaseModel):
    from_index: int
    to_index: int

class NoteOut(BaseModel):
    id: uuid.UUID
    title: str
    content: str
    order: int
    created_at: datetime
    updated_at: datetime

class StateOut(BaseModel):
    notes: list[NoteOut]
    selection: Optional[uuid.UUID]

def _to_out(n: Note) -> NoteOut:
    return NoteOut(
        id=n.id, title=n.title, content=n.content, order=n.order,
        created_at=n.created_at, updated_at=n.updated_at,
    )

def _state(tabs: NoteCollection) -> StateOut:
    return StateOut(notes=[_to_out(n) for n in tabs.notes], selection=tabs.selection)

def get_collection(request: Request) -> NoteCollection:
    return request.app.state.collection

def _note_or_404(tabs: NoteCollection, note_id: uuid.UUID) -> Note:
    note = tabs.get(note_id)
    if note is None:
        raise HTTPException(status_code=404, detail="Not found")
    return note


def create_app(collection: Optional[NoteCollection] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = None
        if getattr(app.state, "collection", None) is None:
            settings = load_settings()
            setup_logging(settings.log_level)
            store = SQLNoteStore(settings.db_path)
            app.state.collection = NoteCollection(
                store, JsonPreferences(settings.prefs_path), strict=settings.strict
            )
        yield
        if store is not None:
            store.close()

    app = FastAPI(title="tabnotes API", lifespan=lifespan)
    app.state.collection = collection

    @app.exception_handler(PersistenceFailed)
    async def _storage_failed(request: Request, exc: PersistenceFailed):
        return JSONResponse(status_code=503, content={"detail": f"Storage error: {exc}"})

    # ---------- API ----------
    @app.get("/api/notes", response_model=list[NoteOut])
    def api_list_notes(tabs: NoteCollection = Depends(get_collection)):
        return [_to_out(n) for n in tabs.notes]

    @app.get("/api/state", response_model=StateOut)
    def api_state(tabs: NoteCollection = Depends(get_collection)):
        return _state(tabs)

    @app.post("/api/notes", response_model=NoteOut, status_code=201)
    def api_create_note(tabs: NoteCollection = Depends(get_collection)):
        return _to_out(tabs.create())

    @app.get("/api/notes/{note_id}", response_model=NoteOut)
    def api_get_note(note_id: uuid.UUID, tabs: NoteCollection = Depends(get_collection)):
        return _to_out(_note_or_404(tabs, note_id))

    @app.patch("/api/notes/{note_id}", response_model=NoteOut)
    def api_edit_note(note_id: uuid.UUID, payload: NoteEdit, tabs: NoteCollection = Depends(get_collection)):
        note = _note_or_404(tabs, note_id)
        if payload.title is not None:
            tabs.update_title(note, payload.title.strip())
        if payload.content is not None:
            tabs.update_content(note, payload.content)
        return _to_out(note)

    @app.delete("/api/notes/{note_id}", response_model=StateOut)
    def api_delete_note(note_id: uuid.UUID, tabs: NoteCollection = Depends(get_collection)):
        tabs.delete(_note_or_404(tabs, note_id))
        return _state(tabs)

    @app.post("/api/notes/{note_id}/duplicate", response_model=NoteOut, status_code=201)
    def api_duplicate(note_id: uuid.UUID, tabs: NoteCollection = Depends(get_collection)):
        return _to_out(tabs.duplicate(_note_or_404(tabs, note_id)))

    @app.post("/api/notes/move", response_model=StateOut)
    def api_move(payload: MoveRequest, tabs: NoteCollection = Depends(get_collection)):
        tabs.move(payload.from_index, payload.to_index)
        return _state(tabs)

    @app.post("/api/selection/next", response_model=StateOut)
    def api_select_next(tabs: NoteCollection = Depends(get_collection)):
        tabs.select_next()
        return _state(tabs)

    @app.post("/api/selection/previous", response_model=StateOut)
    def api_select_previous(tabs: NoteCollection = Depends(get_collection)):
        tabs.select_previous()
        return _state(tabs)

    @app.post("/api/selection/index/{index}", response_model=StateOut)
    def api_select_index(index: int, tabs: NoteCollection = Depends(get_collection)):
        tabs.select_by_index(index)
        return _state(tabs)

    @app.post("/api/selection/{note_id}", response_model=StateOut)
    def api_select(note_id: uuid.UUID, tabs: NoteCollection = Depends(get_collection)):
        tabs.select(_note_or_404(tabs, note_id))
        return _state(tabs)

    return app


app = create_app()
