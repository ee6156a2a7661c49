"""
VoiceNotes Backend — User SQLAlchemy Model
============================================

What:  Local mirror of an identity-provider user (`users` table).
How:   The primary key IS the provider's user id (e.g. "user_2abc..."), so the
       `sub` claim of a session token maps straight onto a row.

Lifecycle:
    Created lazily. The first note write inserts a bare row (id only) and
    POST /api/auth fills in email and full name from the provider.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, text
from sqlalchemy.orm import Mapped, mapped_column

from voicenotes.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Identity-provider user id",
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(320),
        nullable=True,
        default=None,
        comment="Primary email address reported by the identity provider",
    )

    full_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        default=None,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<User(id='{self.id}', email='{self.email}')>"
