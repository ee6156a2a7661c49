"""
VoiceNotes Backend — Notes Route Handlers
===========================================

What:  /api/note/* endpoints used by the dashboard and the note editor.
How:   Thin handlers: authenticate, extract parameters, delegate to
       NoteService (or GeminiService for rephrasing), return JSON.

Route order matters: the fixed paths (/note/tags, /note/grouped,
/note/create, /note/rephrase, /note/pin/{id}) are declared before
/note/{note_id} so they are never captured as an id.

Caching:
    Every response here is per-user and changes on autosave, so handlers
    send `Cache-Control: no-store` where a browser might otherwise reuse them.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from voicenotes.database import get_db_session
from voicenotes.dependencies import get_current_user
from voicenotes.schemas.auth import AuthUser
from voicenotes.schemas.common import ErrorResponse
from voicenotes.schemas.note import (
    MessageResponse,
    NoteCreate,
    NoteGroup,
    NoteListItem,
    NoteResponse,
    NoteUpdate,
    PinUpdate,
    RephraseRequest,
    RephraseResponse,
    TagResponse,
)
from voicenotes.services.gemini_service import gemini_service
from voicenotes.services.note_service import note_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Notes"])

NOT_OWNER = {403: {"description": "Note belongs to another user", "model": ErrorResponse}}
NOT_FOUND = {404: {"description": "Note not found", "model": ErrorResponse}}
UNAUTHORIZED = {401: {"description": "Missing or invalid session", "model": ErrorResponse}}


@router.get(
    "/note",
    response_model=List[NoteListItem],
    response_model_by_alias=True,
    responses=UNAUTHORIZED,
    summary="List the caller's notes",
    description=(
        "Pinned notes first, then by date (newest first) or title (A-Z). "
        "Optional title search and tag filter."
    ),
)
async def list_notes(
    response: Response,
    search: Optional[str] = Query(default=None, max_length=255, description="Case-insensitive title substring"),
    tag: Optional[str] = Query(default=None, max_length=50, description="Only notes carrying this tag"),
    sort: str = Query(default="date", pattern="^(date|title)$"),
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[NoteListItem]:
    response.headers["Cache-Control"] = "no-store"
    return await note_service.list_notes(db, user.id, search=search, tag=tag, sort=sort)


@router.get(
    "/note/grouped",
    response_model=List[NoteGroup],
    response_model_by_alias=True,
    responses={**UNAUTHORIZED, 400: {"description": "Unknown timezone", "model": ErrorResponse}},
    summary="Dashboard sections grouped by date",
)
async def list_grouped_notes(
    response: Response,
    search: Optional[str] = Query(default=None, max_length=255),
    tag: Optional[str] = Query(default=None, max_length=50),
    sort: str = Query(default="date", pattern="^(date|title)$"),
    tz: str = Query(default="UTC", max_length=64, description="IANA timezone, e.g. Europe/Berlin"),
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[NoteGroup]:
    """
    Same filters as GET /api/note, bucketed into Today, Yesterday,
    Previous 7 days, Previous 30 days and then one section per month.
    """
    response.headers["Cache-Control"] = "no-store"
    return await note_service.list_grouped(
        db, user.id, search=search, tag=tag, sort=sort, tz_name=tz
    )


@router.get(
    "/note/tags",
    response_model=List[TagResponse],
    responses=UNAUTHORIZED,
    summary="List the caller's tags",
)
async def list_tags(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[TagResponse]:
    return await note_service.list_tags(db, user.id)


@router.post(
    "/note/create",
    response_model=NoteResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    responses=UNAUTHORIZED,
    summary="Create a note",
)
async def create_note(
    payload: NoteCreate,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.create_note(db, user.id, payload)


@router.post(
    "/note/rephrase",
    response_model=RephraseResponse,
    responses={
        **UNAUTHORIZED,
        503: {"description": "AI service unavailable or circuit open", "model": ErrorResponse},
    },
    summary="Rephrase note content with AI",
)
async def rephrase_note(
    payload: RephraseRequest,
    user: AuthUser = Depends(get_current_user),
) -> RephraseResponse:
    logger.info("Rephrase requested by user %s (%d chars)", user.id, len(payload.content))
    content = await gemini_service.rephrase(payload.content)
    return RephraseResponse(content=content)


@router.patch(
    "/note/pin/{note_id}",
    response_model=NoteResponse,
    response_model_by_alias=True,
    responses={**UNAUTHORIZED, **NOT_OWNER, **NOT_FOUND},
    summary="Pin or unpin a note",
)
async def pin_note(
    note_id: int,
    payload: PinUpdate,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.set_pinned(db, user.id, note_id, payload.is_pinned)


@router.get(
    "/note/{note_id}",
    response_model=NoteResponse,
    response_model_by_alias=True,
    responses={**UNAUTHORIZED, **NOT_OWNER, **NOT_FOUND},
    summary="Get a single note",
)
async def get_note(
    note_id: int,
    response: Response,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    response.headers["Cache-Control"] = "no-store"
    return await note_service.get_note(db, user.id, note_id)


@router.patch(
    "/note/{note_id}",
    response_model=NoteResponse,
    response_model_by_alias=True,
    responses={**UNAUTHORIZED, **NOT_OWNER, **NOT_FOUND},
    summary="Update a note (autosave)",
    description="Partial update. When `tags` is sent it replaces the note's tag set.",
)
async def update_note(
    note_id: int,
    payload: NoteUpdate,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.update_note(db, user.id, note_id, payload)


@router.delete(
    "/note/{note_id}",
    response_model=MessageResponse,
    responses={**UNAUTHORIZED, **NOT_OWNER, **NOT_FOUND},
    summary="Delete a note",
)
async def delete_note(
    note_id: int,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await note_service.delete_note(db, user.id, note_id)
    return MessageResponse(message="Note deleted successfully")
