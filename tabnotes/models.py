from __future__ import annotations
import uuid
from datetime import datetime, UTC
from sqlmodel import Field, SQLModel

DEFAULT_TITLE = "Untitled"


class Note(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    title: str = DEFAULT_TITLE
    content: str = ""
    # tab position, contiguous 0..n-1 once an operation completes
    order: int = Field(default=0, index=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        self.updated_at = datetime.now(UTC)
