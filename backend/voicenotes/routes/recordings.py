"""
VoiceNotes Backend — Recording Route Handlers
===============================================

What:  Upload and delete voice recordings attached to notes.
How:   Delegates validation and storage to RecordingService; the URL in the
       response goes into the note's `recording` field on the next autosave.

Endpoints:
    POST   /api/recording                 multipart `file` → 201 {path, url}
    DELETE /api/recording/{path}          only under recordings/<caller id>/
    GET    /api/recording/files/{path}    local storage backend only
"""

import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from fastapi.responses import FileResponse

from voicenotes.dependencies import get_current_user
from voicenotes.schemas.auth import AuthUser
from voicenotes.schemas.common import ErrorResponse
from voicenotes.schemas.note import MessageResponse
from voicenotes.schemas.recording import RecordingUploadResponse
from voicenotes.services.storage_service import recording_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Recordings"])


@router.post(
    "/recording",
    response_model=RecordingUploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Not an audio file, empty, or too large", "model": ErrorResponse},
        401: {"description": "Missing or invalid session", "model": ErrorResponse},
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
    summary="Upload a voice recording",
)
async def upload_recording(
    request: Request,
    file: UploadFile = File(..., description="Audio file (.wav, .webm, .ogg, .mp3, .m4a)"),
    user: AuthUser = Depends(get_current_user),
) -> RecordingUploadResponse:
    content = await file.read()
    logger.info(
        "Recording upload: filename=%s, size=%d, type=%s, request_id=%s",
        file.filename,
        len(content),
        file.content_type,
        getattr(request.state, "request_id", "unknown"),
    )
    return await recording_service.upload(
        user_id=user.id,
        filename=file.filename or "",
        content_type=file.content_type,
        content=content,
    )


@router.get(
    "/recording/files/{path:path}",
    summary="Serve a locally stored recording",
    responses={404: {"description": "Recording not found", "model": ErrorResponse}},
)
async def serve_recording(path: str) -> FileResponse:
    """
    Stand-in for the bucket's public URL when STORAGE_BACKEND=local.

    Unauthenticated like a public bucket URL: <audio> elements cannot send
    a bearer token.
    """
    target = recording_service.local_file(path)
    return FileResponse(
        path=str(target),
        headers={"Cache-Control": "public, max-age=86400"},
    )


@router.delete(
    "/recording/{path:path}",
    response_model=MessageResponse,
    responses={
        401: {"description": "Missing or invalid session", "model": ErrorResponse},
        403: {"description": "Recording belongs to another user", "model": ErrorResponse},
    },
    summary="Delete a voice recording",
)
async def delete_recording(
    path: str,
    user: AuthUser = Depends(get_current_user),
) -> MessageResponse:
    await recording_service.delete(user.id, path)
    return MessageResponse(message="Recording deleted successfully")
