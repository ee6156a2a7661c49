"""
VoiceNotes Backend — Note SQLAlchemy Model
============================================

What:  ORM model for the `notes` table and its `note_tags` link table.
How:   Notes belong to exactly one user; tags are attached through a
       many-to-many association with composite primary key, so a note can
       never carry the same tag twice.

Table Design:
    - Integer primary key: matches the numeric ids the web client routes on
      (/edit-note/42)
    - content: editor HTML, stored verbatim
    - recording: public URL of the audio file in the recordings bucket
    - created_at: exposed to clients as `date`; drives dashboard grouping
    - updated_at: refreshed on every PATCH (autosave)

Indexes:
    (user_id, created_at) serves the dashboard listing, which is always
    scoped to one user and ordered newest first.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voicenotes.database import Base
from voicenotes.models.tag import Tag
from voicenotes.models.user import User  # noqa: F401  (registers the users table)

NOTE_TITLE_MAX_LENGTH = 255


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", Integer, ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Note(Base):
    """
    A user's rich-text note with optional recording and tags.

    Lifecycle:
        1. Created by POST /api/note/create (first autosave of a new note)
        2. Mutated by PATCH /api/note/{id} and PATCH /api/note/pin/{id}
        3. Deleted by DELETE /api/note/{id}; link rows go with it, tags stay
    """

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(
        String(NOTE_TITLE_MAX_LENGTH),
        nullable=False,
        default="",
        server_default=text("''"),
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default=text("''"),
        comment="Editor HTML",
    )

    recording: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        default=None,
        comment="Public URL of the attached voice recording",
    )

    is_pinned: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # selectin: tags arrive with every SELECT of notes, no lazy IO under asyncio
    tags: Mapped[List[Tag]] = relationship(
        Tag,
        secondary=note_tags,
        lazy="selectin",
        order_by=Tag.id,
    )

    __table_args__ = (
        Index("idx_notes_user_created_at", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, user_id='{self.user_id}', "
            f"pinned={self.is_pinned}, created_at='{self.created_at}')>"
        )
