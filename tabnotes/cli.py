from __future__ import annotations
from pathlib import Path
from typing import Optional
import json
import sys
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import load_settings
from .exceptions import PersistenceFailed
from .logging_setup import setup_logging
from .models import Note
from .preferences import JsonPreferences
from .services import NoteCollection
from .store import MemoryNoteStore, SQLNoteStore

app = typer.Typer(help="tabnotes: tabbed scratch notes")
console = Console()


def _collection(ctx: typer.Context) -> NoteCollection:
    return ctx.obj


def _note_at(tabs: NoteCollection, number: Optional[int]) -> Note:
    """Resolve a 1-based tab number, or the selected tab when omitted."""
    if number is None:
        note = tabs.selected_note
    else:
        notes = tabs.notes
        note = notes[number - 1] if 1 <= number <= len(notes) else None
    if note is None:
        console.print(f"[red]No such tab[/]: {number}")
        raise typer.Exit(1)
    return note


def _check_range(tabs: NoteCollection, *numbers: int) -> None:
    for number in numbers:
        if not 1 <= number <= len(tabs):
            console.print(f"[red]No such tab[/]: {number}")
            raise typer.Exit(1)


@app.callback()
def _boot(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite file (default: TABNOTES_DB_PATH)"),
    memory: bool = typer.Option(False, "--memory", help="keep tabs in memory only"),
    strict: Optional[bool] = typer.Option(None, "--strict/--lenient", help="fail on storage errors"),
):
    settings = load_settings()
    setup_logging(settings.log_level)
    store = MemoryNoteStore() if memory else SQLNoteStore(db or settings.db_path)
    prefs = {} if memory else JsonPreferences(settings.prefs_path)
    try:
        ctx.obj = NoteCollection(store, prefs, strict=settings.strict if strict is None else strict)
    except PersistenceFailed as e:
        console.print(f"[red]Storage error[/]: {e}")
        raise typer.Exit(1)
    ctx.call_on_close(store.close)


def _run(action) -> None:
    try:
        action()
    except PersistenceFailed as e:
        console.print(f"[red]Storage error[/]: {e}")
        raise typer.Exit(1)


@app.command()
def tabs(ctx: typer.Context):
    t = _collection(ctx)
    table = Table(title="Tabs")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("", width=1)
    table.add_column("Title", style="bold")
    table.add_column("Updated")
    for i, n in enumerate(t.notes, start=1):
        table.add_row(
            str(i), "●" if n.id == t.selection else "", escape(n.title),
            n.updated_at.isoformat(timespec="minutes"),
        )
    console.print(table)


@app.command()
def new(ctx: typer.Context):
    t = _collection(ctx)
    _run(t.create)
    n = t.selected_note
    console.print(f"[green]Opened[/] tab {t.index_of(n) + 1}: {escape(n.title)}")


@app.command()
def dup(ctx: typer.Context, number: Optional[int] = typer.Argument(None)):
    t = _collection(ctx)
    source = _note_at(t, number)
    _run(lambda: t.duplicate(source))
    n = t.selected_note
    console.print(f"[green]Duplicated[/] into tab {t.index_of(n) + 1}: {escape(n.title)}")


@app.command()
def close(ctx: typer.Context, number: Optional[int] = typer.Argument(None)):
    t = _collection(ctx)
    note = _note_at(t, number)
    _run(lambda: t.delete(note))
    console.print(f"[yellow]Closed[/] {escape(note.title)}")


@app.command()
def rename(ctx: typer.Context, number: int, title: str):
    t = _collection(ctx)
    note = _note_at(t, number)
    # the collection keeps whitespace as given, trimming belongs here
    _run(lambda: t.update_title(note, title.strip()))
    console.print(f"[green]Renamed[/] tab {number}: {escape(note.title)}")


@app.command()
def write(
    ctx: typer.Context,
    number: Optional[int] = typer.Argument(None),
    content: Optional[str] = typer.Option(None, "--content", "-c"),
    from_: Optional[Path] = typer.Option(None, "--from"),
):
    t = _collection(ctx)
    note = _note_at(t, number)
    if content is None:
        content = from_.read_text(encoding="utf-8") if from_ else sys.stdin.read()
    _run(lambda: t.update_content(note, content))
    console.print(f"[green]Saved[/] {escape(note.title)} ({len(content)} chars)")


@app.command()
def show(ctx: typer.Context, number: Optional[int] = typer.Argument(None)):
    t = _collection(ctx)
    note = _note_at(t, number)
    console.rule(escape(note.title))
    if note.content:
        console.print(note.content, markup=False, highlight=False)
    else:
        console.print("[dim]<empty>[/]")


@app.command()
def move(ctx: typer.Context, source: int, target: int):
    t = _collection(ctx)
    _check_range(t, source, target)
    _run(lambda: t.move(source - 1, target - 1))
    console.print(f"[green]Moved[/] tab {source} → {target}")


@app.command("next")
def next_(ctx: typer.Context):
    t = _collection(ctx)
    _run(t.select_next)
    console.print(f"[cyan]Now on[/] {escape(t.selected_note.title)}")


@app.command()
def prev(ctx: typer.Context):
    t = _collection(ctx)
    _run(t.select_previous)
    console.print(f"[cyan]Now on[/] {escape(t.selected_note.title)}")


@app.command()
def select(ctx: typer.Context, number: int):
    t = _collection(ctx)
    _check_range(t, number)
    _run(lambda: t.select_by_index(number - 1))
    console.print(f"[cyan]Now on[/] {escape(t.selected_note.title)}")


@app.command()
def export(ctx: typer.Context, to: Path = typer.Option(..., "--to")):
    notes = _collection(ctx).notes
    payload = [
        {
            "id": str(n.id),
            "title": n.title,
            "content": n.content,
            "order": n.order,
            "created_at": n.created_at.isoformat(),
            "updated_at": n.updated_at.isoformat(),
        }
        for n in notes
    ]
    to.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    console.print(f"[green]Exported[/] {len(payload)} tabs → {to}")


@app.command("import")
def import_(ctx: typer.Context, from_: Path = typer.Option(..., "--from")):
    t = _collection(ctx)
    try:
        data = json.loads(from_.read_text(encoding="utf-8"))
    except ValueError as e:
        console.print(f"[red]Not a tabs export[/]: {escape(str(e))}")
        raise typer.Exit(1)
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        console.print("[red]Not a tabs export[/]: expected a list of objects")
        raise typer.Exit(1)
    for item in data:
        def _load(item=item):
            note = t.create()
            t.update_title(note, item.get("title", ""))
            t.update_content(note, item.get("content", ""))
        _run(_load)
    console.print(f"[green]Imported[/] {len(data)} tabs")


def main():
    app()

if __name__ == "__main__":
    main()
