"""
VoiceNotes Backend — Tag SQLAlchemy Model
===========================================

What:  User-scoped label attachable to many notes (`tags` table).
How:   UNIQUE (name, user_id) makes the tag upsert in NoteService a simple
       "select existing names, insert the rest".
"""

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from voicenotes.database import Base
from voicenotes.models.user import User  # noqa: F401  (registers the users table)

TAG_NAME_MAX_LENGTH = 50


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(
        String(TAG_NAME_MAX_LENGTH),
        nullable=False,
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("name", "user_id", name="uq_tags_name_user_id"),
    )

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}', user_id='{self.user_id}')>"
