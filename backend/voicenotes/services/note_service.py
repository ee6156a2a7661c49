"""
VoiceNotes Backend — Note Service (Business Logic)
====================================================

What:  Note and tag CRUD scoped to the authenticated user.
How:   Stateless service; every method receives the request's AsyncSession
       and the caller's user id. Routes never touch ORM objects.

Ownership:
    Every single-note operation goes through _get_owned_note():
        row missing            → NotFoundError (404)
        row.user_id != caller  → PermissionDeniedError (403)

Tags:
    Names are normalized by the request schemas. _resolve_tags() selects the
    caller's existing tags by name and inserts the rest, so (name, user_id)
    stays unique and a note links each tag once.

Error Handling Strategy:
    SQLAlchemy failures are logged and wrapped in DatabaseError (500) with a
    generic message. Our own exceptions propagate untouched.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voicenotes.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from voicenotes.models.note import Note
from voicenotes.models.tag import Tag
from voicenotes.schemas.note import (
    NoteCreate,
    NoteGroup,
    NoteListItem,
    NoteResponse,
    NoteUpdate,
    TagResponse,
)
from voicenotes.services.dashboard import group_notes_by_date, html_to_preview
from voicenotes.services.user_service import user_service

logger = logging.getLogger(__name__)

SORT_DATE = "date"
SORT_TITLE = "title"


def _tag_list(note: Note) -> List[TagResponse]:
    return [TagResponse(id=tag.id, name=tag.name) for tag in note.tags]


def to_note_response(note: Note) -> NoteResponse:
    return NoteResponse(
        id=note.id,
        title=note.title,
        content=note.content,
        recording=note.recording,
        is_pinned=note.is_pinned,
        created_at=note.created_at,
        updated_at=note.updated_at,
        user_id=note.user_id,
        tags=_tag_list(note),
    )


def to_list_item(note: Note) -> NoteListItem:
    return NoteListItem(
        id=note.id,
        title=note.title,
        content=note.content,
        recording=note.recording,
        is_pinned=note.is_pinned,
        created_at=note.created_at,
        updated_at=note.updated_at,
        user_id=note.user_id,
        tags=_tag_list(note),
        preview=html_to_preview(note.content),
    )


def resolve_timezone(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(
            message=f"Unknown timezone '{name}'",
            field="tz",
        ) from e


class NoteService:
    """
    Business logic layer for notes and tags.

    Responsibilities:
        - list_notes() / list_grouped(): dashboard queries
        - create_note(), get_note(), update_note(), delete_note(), set_pinned()
        - list_tags(): the caller's tag strip
    """

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _get_owned_note(self, db: AsyncSession, user_id: str, note_id: int) -> Note:
        note = await db.get(Note, note_id)
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        if note.user_id != user_id:
            logger.warning("User %s denied access to note %s", user_id, note_id)
            raise PermissionDeniedError(
                message="You do not have access to this note",
                context={"note_id": note_id},
            )
        return note

    async def _resolve_tags(self, db: AsyncSession, user_id: str, names: List[str]) -> List[Tag]:
        """Return Tag rows for `names` in request order, creating missing ones."""
        if not names:
            return []

        result = await db.execute(
            select(Tag).where(Tag.user_id == user_id, Tag.name.in_(names))
        )
        existing = {tag.name: tag for tag in result.scalars().all()}

        created = [Tag(name=name, user_id=user_id) for name in names if name not in existing]
        if created:
            db.add_all(created)
            await db.flush()
            logger.info("Created %d tag(s) for user %s", len(created), user_id)
            existing.update({tag.name: tag for tag in created})

        return [existing[name] for name in names]

    def _listing_query(
        self,
        user_id: str,
        search: Optional[str],
        tag: Optional[str],
        sort: str,
    ):
        query = select(Note).where(Note.user_id == user_id)

        if search:
            query = query.where(Note.title.icontains(search, autoescape=True))
        if tag:
            query = query.where(Note.tags.any(Tag.name == tag))

        # Pinned first; the sort key applies within each partition
        if sort == SORT_TITLE:
            return query.order_by(
                Note.is_pinned.desc(),
                func.lower(Note.title).asc(),
                Note.created_at.desc(),
            )
        return query.order_by(Note.is_pinned.desc(), Note.created_at.desc(), Note.id.desc())

    # ── Queries ───────────────────────────────────────────────────────────

    async def _fetch_listing(
        self,
        db: AsyncSession,
        user_id: str,
        search: Optional[str],
        tag: Optional[str],
        sort: str,
    ) -> List[Note]:
        try:
            result = await db.execute(self._listing_query(user_id, search, tag, sort))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing notes for %s: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

    async def list_notes(
        self,
        db: AsyncSession,
        user_id: str,
        search: Optional[str] = None,
        tag: Optional[str] = None,
        sort: str = SORT_DATE,
    ) -> List[NoteListItem]:
        notes = await self._fetch_listing(db, user_id, search, tag, sort)
        return [to_list_item(note) for note in notes]

    async def list_grouped(
        self,
        db: AsyncSession,
        user_id: str,
        search: Optional[str] = None,
        tag: Optional[str] = None,
        sort: str = SORT_DATE,
        tz_name: str = "UTC",
        now: Optional[datetime] = None,
    ) -> List[NoteGroup]:
        """
        Dashboard sections relative to "today" in the caller's timezone.

        `now` is injectable for tests; defaults to the current UTC time.
        """
        tz = resolve_timezone(tz_name)
        notes = await self._fetch_listing(db, user_id, search, tag, sort)

        groups = group_notes_by_date(
            [to_list_item(note) for note in notes],
            [note.created_at for note in notes],
            now or datetime.now(timezone.utc),
            tz,
        )
        return [NoteGroup(label=label, notes=items) for label, items in groups]

    async def list_tags(self, db: AsyncSession, user_id: str) -> List[TagResponse]:
        try:
            result = await db.execute(
                select(Tag).where(Tag.user_id == user_id).order_by(Tag.name)
            )
            return [TagResponse(id=tag.id, name=tag.name) for tag in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("Database error listing tags for %s: %s", user_id, str(e))
            raise DatabaseError(
                message="Could not retrieve tags. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

    # ── Commands ──────────────────────────────────────────────────────────

    async def create_note(self, db: AsyncSession, user_id: str, payload: NoteCreate) -> NoteResponse:
        """
        Insert a note (first autosave of the editor) with its tags.

        Steps:
            1. Make sure the users row exists (placeholder if needed)
            2. Resolve tag names to rows, inserting new ones
            3. Insert the note linked to those tags
        """
        await user_service.ensure_user(db, user_id)

        try:
            tags = await self._resolve_tags(db, user_id, payload.tags)
            note = Note(
                title=payload.title,
                content=payload.content,
                recording=payload.recording,
                user_id=user_id,
                tags=tags,
            )
            db.add(note)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating note for %s: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not save the note. Please try again.",
                context={"error_type": type(e).__name__},
            ) from e

        logger.info("Note %s created for user %s with %d tag(s)", note.id, user_id, len(tags))
        return to_note_response(note)

    async def get_note(self, db: AsyncSession, user_id: str, note_id: int) -> NoteResponse:
        try:
            note = await self._get_owned_note(db, user_id, note_id)
        except SQLAlchemyError as e:
            logger.error("Database error fetching note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": note_id},
            ) from e
        return to_note_response(note)

    async def update_note(
        self,
        db: AsyncSession,
        user_id: str,
        note_id: int,
        payload: NoteUpdate,
    ) -> NoteResponse:
        """
        Partial update used by autosave.

        Only fields present in the body are touched. `tags`, when present,
        replaces the whole set; `recording: null` detaches the recording.
        """
        changes = payload.model_dump(exclude_unset=True)

        try:
            note = await self._get_owned_note(db, user_id, note_id)

            if changes.get("title") is not None:
                note.title = changes["title"]
            if changes.get("content") is not None:
                note.content = changes["content"]
            if "recording" in changes:
                note.recording = changes["recording"]
            if changes.get("tags") is not None:
                note.tags = await self._resolve_tags(db, user_id, changes["tags"])

            # A tags-only change issues no UPDATE on notes, so bump explicitly
            note.updated_at = datetime.now(timezone.utc)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error updating note %s: %s", note_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not update the note. Please try again.",
                context={"note_id": note_id},
            ) from e

        logger.debug("Note %s updated (%s)", note_id, ", ".join(sorted(changes)) or "no fields")
        return to_note_response(note)

    async def set_pinned(
        self,
        db: AsyncSession,
        user_id: str,
        note_id: int,
        is_pinned: bool,
    ) -> NoteResponse:
        try:
            note = await self._get_owned_note(db, user_id, note_id)
            note.is_pinned = is_pinned
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error pinning note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not update the note. Please try again.",
                context={"note_id": note_id},
            ) from e

        logger.info("Note %s %s", note_id, "pinned" if is_pinned else "unpinned")
        return to_note_response(note)

    async def delete_note(self, db: AsyncSession, user_id: str, note_id: int) -> None:
        """Delete the note; its note_tags rows go with it, tags remain."""
        try:
            note = await self._get_owned_note(db, user_id, note_id)
            await db.delete(note)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not delete the note. Please try again.",
                context={"note_id": note_id},
            ) from e

        logger.info("Note %s deleted by user %s", note_id, user_id)


# ── Singleton Instance ────────────────────────────────────────────────────
note_service = NoteService()
