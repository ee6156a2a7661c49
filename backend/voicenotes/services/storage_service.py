"""
VoiceNotes Backend — Recording Storage Service
================================================

What:  Validates audio uploads and stores them in object storage.
How:   RecordingService owns the rules (allowed formats, size, per-user key
       layout, ownership of keys); a StorageBackend does the bytes.

Backends:
    SupabaseStorage  → the `recordings` bucket via the supabase client.
                       The client is synchronous, so calls go through
                       asyncio.to_thread.
    LocalStorage     → files under settings.storage_root written with
                       aiofiles; served back by GET /api/recording/files/...

Object key layout:
    recordings/<user_id>/recording_<8 alphanumerics><ext>

    The user id segment is what DELETE checks against, so a caller can only
    remove keys under their own prefix.
"""

import asyncio
import logging
import posixpath
import secrets
import string
from pathlib import Path
from typing import List, Optional, Protocol

import aiofiles
from supabase import Client, create_client

from voicenotes.config import settings
from voicenotes.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from voicenotes.schemas.recording import RecordingUploadResponse

logger = logging.getLogger(__name__)

# ── Allowed Formats ───────────────────────────────────────────────────────
# MediaRecorder produces webm/ogg in Chromium/Firefox and mp4 audio in Safari;
# wav and mp3 come from manual uploads.
ALLOWED_EXTENSIONS = {".wav", ".webm", ".ogg", ".mp3", ".m4a"}
ALLOWED_CONTENT_TYPE_PREFIX = "audio/"

KEY_PREFIX = "recordings"
RANDOM_SUFFIX_LENGTH = 8
_ALPHABET = string.ascii_letters + string.digits


class StorageBackend(Protocol):
    """Minimal object-storage contract used by RecordingService."""

    name: str

    async def upload(self, path: str, data: bytes, content_type: str) -> None: ...

    async def remove(self, paths: List[str]) -> None: ...

    def get_public_url(self, path: str) -> str: ...


# ══════════════════════════════════════════════════════════════════════════
# Backends
# ══════════════════════════════════════════════════════════════════════════

class SupabaseStorage:
    """Supabase Storage bucket backend."""

    name = "supabase"

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        bucket: Optional[str] = None,
    ):
        self.url = url or settings.supabase_url
        self.key = key or settings.supabase_service_role_key
        self.bucket = bucket or settings.recordings_bucket
        self._client: Optional[Client] = None

    @property
    def client(self) -> Client:
        # Created on first use so the app can boot without credentials
        if self._client is None:
            if not (self.url and self.key):
                raise StorageError(
                    message="Recording storage is not configured",
                    context={"backend": self.name},
                )
            self._client = create_client(self.url, self.key)
        return self._client

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        bucket = self.client.storage.from_(self.bucket)
        try:
            await asyncio.to_thread(
                bucket.upload,
                path,
                data,
                {"content-type": content_type, "upsert": "false"},
            )
        except Exception as e:
            logger.error("Supabase upload failed for %s: %s", path, str(e))
            raise StorageError(
                message="Failed to save the recording. Please try again.",
                context={"path": path, "error_type": type(e).__name__},
            ) from e

    async def remove(self, paths: List[str]) -> None:
        bucket = self.client.storage.from_(self.bucket)
        try:
            await asyncio.to_thread(bucket.remove, paths)
        except Exception as e:
            logger.error("Supabase remove failed for %s: %s", paths, str(e))
            raise StorageError(
                message="Failed to delete the recording. Please try again.",
                context={"paths": paths, "error_type": type(e).__name__},
            ) from e

    def get_public_url(self, path: str) -> str:
        return self.client.storage.from_(self.bucket).get_public_url(path)


class LocalStorage:
    """
    Directory-on-disk backend for development and tests.

    Keys map 1:1 onto paths below `root`; resolve() refuses anything that
    escapes it.
    """

    name = "local"

    def __init__(self, root: Optional[str] = None, public_base_url: Optional[str] = None):
        self.root = Path(root or settings.storage_root).resolve()
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    def resolve(self, path: str) -> Path:
        candidate = (self.root / path).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise PermissionDeniedError(
                message="Invalid recording path",
                context={"path": path},
            )
        return candidate

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store recording at %s: %s", target, str(e))
            raise StorageError(
                message="Failed to save the recording. Please try again.",
                context={"path": path, "os_error": str(e)},
            ) from e
        logger.info("Recording stored: %s (%d bytes, %s)", path, len(data), content_type)

    async def remove(self, paths: List[str]) -> None:
        for path in paths:
            target = self.resolve(path)
            try:
                target.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Failed to remove recording %s: %s", target, str(e))
                raise StorageError(
                    message="Failed to delete the recording. Please try again.",
                    context={"path": path, "os_error": str(e)},
                ) from e

    def get_public_url(self, path: str) -> str:
        return f"{self.public_base_url}/api/recording/files/{path}"


def build_storage_backend() -> StorageBackend:
    if settings.storage_backend == "local":
        return LocalStorage()
    return SupabaseStorage()


# ══════════════════════════════════════════════════════════════════════════
# Recording Service
# ══════════════════════════════════════════════════════════════════════════

class RecordingService:
    """
    Upload and delete recordings on behalf of a user.

    Validation order (cheapest first):
        1. Extension       → ValidationError
        2. Content type    → ValidationError
        3. Empty / size    → ValidationError
    """

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    @staticmethod
    def user_prefix(user_id: str) -> str:
        return f"{KEY_PREFIX}/{user_id}/"

    def validate_extension(self, filename: str) -> str:
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"Recording format '{ext or filename}' is not supported. "
                    f"Allowed formats: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_content_type(self, content_type: Optional[str]) -> str:
        value = (content_type or "").lower()
        if not value.startswith(ALLOWED_CONTENT_TYPE_PREFIX):
            raise ValidationError(
                message="The uploaded file is not an audio recording.",
                field="file",
                context={"content_type": content_type},
            )
        return value

    def validate_size(self, size: int) -> None:
        if size == 0:
            raise ValidationError(message="The uploaded recording is empty.", field="file")
        if size > settings.max_recording_size:
            max_mb = settings.max_recording_size / (1024 * 1024)
            raise ValidationError(
                message=(
                    f"Recording size ({size / (1024 * 1024):.1f}MB) exceeds "
                    f"maximum of {max_mb:.0f}MB."
                ),
                field="file",
                context={"max_size_mb": max_mb, "actual_size": size},
            )

    def generate_path(self, user_id: str, extension: str) -> str:
        suffix = "".join(secrets.choice(_ALPHABET) for _ in range(RANDOM_SUFFIX_LENGTH))
        return f"{self.user_prefix(user_id)}recording_{suffix}{extension}"

    async def upload(
        self,
        user_id: str,
        filename: str,
        content_type: Optional[str],
        content: bytes,
    ) -> RecordingUploadResponse:
        ext = self.validate_extension(filename)
        mime = self.validate_content_type(content_type)
        self.validate_size(len(content))

        path = self.generate_path(user_id, ext)
        await self.backend.upload(path, content, mime)

        logger.info("Recording uploaded for user %s: %s", user_id, path)
        return RecordingUploadResponse(path=path, url=self.backend.get_public_url(path))

    def check_owner(self, user_id: str, path: str) -> str:
        """Normalize `path` and require it to sit under the user's prefix."""
        normalized = posixpath.normpath(path.lstrip("/"))
        if not normalized.startswith(self.user_prefix(user_id)):
            raise PermissionDeniedError(
                message="You do not have access to this recording",
                context={"path": path, "user_id": user_id},
            )
        return normalized

    async def delete(self, user_id: str, path: str) -> None:
        normalized = self.check_owner(user_id, path)
        await self.backend.remove([normalized])
        logger.info("Recording deleted for user %s: %s", user_id, normalized)

    def local_file(self, path: str) -> Path:
        """Path on disk of a locally stored recording (local backend only)."""
        if not isinstance(self.backend, LocalStorage):
            raise NotFoundError(resource="recording", resource_id=path)
        target = self.backend.resolve(path)
        if not target.is_file():
            raise NotFoundError(resource="recording", resource_id=path)
        return target


# ── Singleton Instance ────────────────────────────────────────────────────
recording_service = RecordingService(build_storage_backend())
