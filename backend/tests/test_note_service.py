"""
VoiceNotes Backend — Note Service Unit Tests
==============================================

Ownership and error translation with a mocked session; tag resolution and
grouping against the in-memory database.

What we test:
    ✅ Missing note → NotFoundError, foreign note → PermissionDeniedError
    ✅ SQLAlchemy failures → DatabaseError
    ✅ Tag upsert reuses existing rows and keeps request order
    ✅ Grouped listing relative to an injected "now" and timezone
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from voicenotes.exceptions import (
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from voicenotes.models.note import Note
from voicenotes.models.tag import Tag
from voicenotes.schemas.note import NoteCreate, NoteUpdate
from voicenotes.services.note_service import NoteService

ALICE = "user_alice"
BOB = "user_bob"


def _note(**overrides):
    now = datetime.now(timezone.utc)
    note = MagicMock(spec=Note)
    note.id = overrides.get("id", 1)
    note.title = overrides.get("title", "Groceries")
    note.content = overrides.get("content", "<p>eggs</p>")
    note.recording = None
    note.is_pinned = False
    note.created_at = now
    note.updated_at = now
    note.user_id = overrides.get("user_id", ALICE)
    note.tags = []
    return note


class TestOwnership:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_get_note_found(self, mock_db_session):
        mock_db_session.get.return_value = _note(id=7)

        result = await self.service.get_note(mock_db_session, ALICE, 7)

        assert result.id == 7
        assert result.user_id == ALICE
        assert result.model_dump(by_alias=True)["userId"] == ALICE

    @pytest.mark.asyncio
    async def test_get_note_not_found(self, mock_db_session):
        mock_db_session.get.return_value = None

        with pytest.raises(NotFoundError):
            await self.service.get_note(mock_db_session, ALICE, 99)

    @pytest.mark.asyncio
    async def test_get_note_of_other_user(self, mock_db_session):
        mock_db_session.get.return_value = _note(user_id=BOB)

        with pytest.raises(PermissionDeniedError):
            await self.service.get_note(mock_db_session, ALICE, 1)

    @pytest.mark.asyncio
    async def test_pin_other_users_note_leaves_it_untouched(self, mock_db_session):
        note = _note(user_id=BOB)
        mock_db_session.get.return_value = note

        with pytest.raises(PermissionDeniedError):
            await self.service.set_pinned(mock_db_session, ALICE, 1, True)
        assert note.is_pinned is False
        mock_db_session.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_other_users_note(self, mock_db_session):
        mock_db_session.get.return_value = _note(user_id=BOB)

        with pytest.raises(PermissionDeniedError):
            await self.service.delete_note(mock_db_session, ALICE, 1)
        mock_db_session.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_failure_is_wrapped(self, mock_db_session):
        mock_db_session.get.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(DatabaseError):
            await self.service.get_note(mock_db_session, ALICE, 1)

    @pytest.mark.asyncio
    async def test_list_failure_is_wrapped(self, mock_db_session):
        mock_db_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))

        with pytest.raises(DatabaseError):
            await self.service.list_notes(mock_db_session, ALICE)


class TestTagsAndListing:

    def setup_method(self):
        self.service = NoteService()

    @pytest.mark.asyncio
    async def test_create_reuses_existing_tags(self, session_factory):
        async with session_factory() as db:
            first = await self.service.create_note(
                db, ALICE, NoteCreate(title="One", tags=["work", "ideas"])
            )
            second = await self.service.create_note(
                db, ALICE, NoteCreate(title="Two", tags=["ideas", "later"])
            )
            await db.commit()

            assert [t.name for t in second.tags] == ["ideas", "later"]
            ideas_first = next(t.id for t in first.tags if t.name == "ideas")
            ideas_second = next(t.id for t in second.tags if t.name == "ideas")
            assert ideas_first == ideas_second

            result = await db.execute(select(Tag).where(Tag.user_id == ALICE))
            assert sorted(t.name for t in result.scalars().all()) == ["ideas", "later", "work"]

    @pytest.mark.asyncio
    async def test_same_tag_name_is_per_user(self, session_factory):
        async with session_factory() as db:
            mine = await self.service.create_note(db, ALICE, NoteCreate(tags=["work"]))
            theirs = await self.service.create_note(db, BOB, NoteCreate(tags=["work"]))
            await db.commit()

            assert mine.tags[0].id != theirs.tags[0].id
            assert [t.name for t in await self.service.list_tags(db, BOB)] == ["work"]

    @pytest.mark.asyncio
    async def test_update_replaces_tags_and_keeps_them_when_omitted(self, session_factory):
        async with session_factory() as db:
            note = await self.service.create_note(db, ALICE, NoteCreate(tags=["a", "b"]))

            replaced = await self.service.update_note(
                db, ALICE, note.id, NoteUpdate(tags=["b", "c"])
            )
            assert sorted(t.name for t in replaced.tags) == ["b", "c"]

            kept = await self.service.update_note(db, ALICE, note.id, NoteUpdate(title="New"))
            assert kept.title == "New"
            assert sorted(t.name for t in kept.tags) == ["b", "c"]

    @pytest.mark.asyncio
    async def test_update_can_detach_recording(self, session_factory):
        async with session_factory() as db:
            note = await self.service.create_note(
                db, ALICE, NoteCreate(recording="http://test/r.webm")
            )
            updated = await self.service.update_note(
                db, ALICE, note.id, NoteUpdate.model_validate({"recording": None})
            )
            assert updated.recording is None

    @pytest.mark.asyncio
    async def test_grouped_listing(self, session_factory):
        now = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
        ages = {"today": 0, "yesterday": 1, "week": 4, "month": 20, "old": 200}

        async with session_factory() as db:
            for title, days in ages.items():
                created = await self.service.create_note(db, ALICE, NoteCreate(title=title))
                await db.execute(
                    update(Note)
                    .where(Note.id == created.id)
                    .values(created_at=now - timedelta(days=days))
                )
            await db.commit()
            db.expire_all()

            groups = await self.service.list_grouped(db, ALICE, tz_name="UTC", now=now)

        assert [g.label for g in groups] == [
            "Today",
            "Yesterday",
            "Previous 7 days",
            "Previous 30 days",
            "November 2023",
        ]
        assert [[n.title for n in g.notes] for g in groups] == [
            ["today"], ["yesterday"], ["week"], ["month"], ["old"]
        ]

    @pytest.mark.asyncio
    async def test_grouped_listing_rejects_unknown_timezone(self, session_factory):
        async with session_factory() as db:
            with pytest.raises(ValidationError):
                await self.service.list_grouped(db, ALICE, tz_name="Mars/Olympus_Mons")
