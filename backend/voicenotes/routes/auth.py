"""
VoiceNotes Backend — Auth Route Handlers
==========================================

GET  /api/auth  → the caller's profile from the identity provider
POST /api/auth  → upsert the local users row (called once after sign-in)
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from voicenotes.database import get_db_session
from voicenotes.dependencies import get_current_user
from voicenotes.schemas.auth import AuthUser, IdentityUserResponse
from voicenotes.schemas.common import ErrorResponse
from voicenotes.schemas.note import MessageResponse
from voicenotes.services.identity_service import identity_client
from voicenotes.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])

_ERRORS = {
    401: {"description": "Missing or invalid session", "model": ErrorResponse},
    502: {"description": "Identity provider failed", "model": ErrorResponse},
}


@router.get(
    "/auth",
    response_model=IdentityUserResponse,
    response_model_by_alias=True,
    responses=_ERRORS,
    summary="Current user's profile",
)
async def get_profile(user: AuthUser = Depends(get_current_user)) -> IdentityUserResponse:
    identity = await identity_client.get_user(user.id)
    return IdentityUserResponse(user=identity)


@router.post(
    "/auth",
    response_model=MessageResponse,
    responses=_ERRORS,
    summary="Create or refresh the local user record",
)
async def sync_user(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    identity = await identity_client.get_user(user.id)
    await user_service.sync_user(db, identity)
    logger.info("User %s synced", user.id)
    return MessageResponse(message="User handled successfully!")
