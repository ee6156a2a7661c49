"""
VoiceNotes Backend — Local User Rows
======================================

Notes and tags reference users.id, so a row must exist before the first
write. Two entry points create it:

    ensure_user()  → placeholder (id only) on the first note/tag write
    sync_user()    → POST /api/auth after sign-in; inserts or fills in
                     email and full name from the identity provider
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voicenotes.exceptions import DatabaseError
from voicenotes.models.user import User
from voicenotes.schemas.auth import IdentityUser

logger = logging.getLogger(__name__)


class UserService:

    async def ensure_user(self, db: AsyncSession, user_id: str) -> User:
        """Return the user's row, inserting an id-only placeholder if missing."""
        try:
            user = await db.get(User, user_id)
            if user is None:
                user = User(id=user_id)
                db.add(user)
                await db.flush()
                logger.info("Created placeholder user row for %s", user_id)
            return user
        except SQLAlchemyError as e:
            logger.error("Database error ensuring user %s: %s", user_id, str(e))
            raise DatabaseError(context={"user_id": user_id}) from e

    async def sync_user(self, db: AsyncSession, identity: IdentityUser) -> User:
        """
        Upsert the local row from the provider profile.

        Existing email/name values are only overwritten by non-empty ones so a
        provider hiccup returning partial data never blanks them.
        """
        try:
            result = await db.execute(select(User).where(User.id == identity.id))
            user = result.scalar_one_or_none()

            if user is None:
                user = User(id=identity.id, email=identity.email, full_name=identity.full_name)
                db.add(user)
                logger.info("Created user %s", identity.id)
            else:
                if identity.email:
                    user.email = identity.email
                if identity.full_name:
                    user.full_name = identity.full_name

            await db.flush()
            return user
        except SQLAlchemyError as e:
            logger.error("Database error syncing user %s: %s", identity.id, str(e))
            raise DatabaseError(context={"user_id": identity.id}) from e


user_service = UserService()
