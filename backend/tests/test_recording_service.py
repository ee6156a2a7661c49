"""
VoiceNotes Backend — Recording Service Tests
==============================================

RecordingService over a LocalStorage rooted in pytest's tmp_path.

What we test:
    ✅ Allowed extensions / audio content types pass, others are rejected
    ✅ Empty and oversize uploads are rejected
    ✅ Keys land under recordings/<user>/recording_<8 alnum><ext>
    ✅ Deleting outside the caller's prefix is forbidden (incl. ../ tricks)
"""

import re
from pathlib import Path
from unittest.mock import patch

import pytest

from voicenotes.config import settings
from voicenotes.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from voicenotes.services.storage_service import LocalStorage, RecordingService

KEY_PATTERN = re.compile(r"^recordings/user_1/recording_[A-Za-z0-9]{8}\.webm$")


@pytest.fixture
def local_storage(tmp_path):
    return LocalStorage(root=str(tmp_path), public_base_url="http://test")


@pytest.fixture
def service(local_storage):
    return RecordingService(local_storage)


class TestRecordingValidation:

    @pytest.mark.parametrize("filename", ["a.wav", "a.webm", "a.ogg", "a.mp3", "a.M4A"])
    def test_allowed_extensions(self, service, filename):
        assert service.validate_extension(filename) == Path(filename).suffix.lower()

    @pytest.mark.parametrize("filename", ["notes.txt", "clip.mp4", "noext", ""])
    def test_rejected_extensions(self, service, filename):
        with pytest.raises(ValidationError):
            service.validate_extension(filename)

    def test_audio_content_type_with_codec_parameter(self, service):
        assert service.validate_content_type("audio/webm;codecs=opus") == "audio/webm;codecs=opus"

    @pytest.mark.parametrize("content_type", ["text/plain", "video/webm", None])
    def test_non_audio_content_type_rejected(self, service, content_type):
        with pytest.raises(ValidationError):
            service.validate_content_type(content_type)

    def test_empty_upload_rejected(self, service):
        with pytest.raises(ValidationError):
            service.validate_size(0)

    def test_oversize_upload_rejected(self, service):
        with patch.object(settings, "max_recording_size", 1024):
            with pytest.raises(ValidationError):
                service.validate_size(1025)
            service.validate_size(1024)


class TestRecordingStorage:

    @pytest.mark.asyncio
    async def test_upload_stores_file_under_user_prefix(self, service, local_storage):
        result = await service.upload("user_1", "memo.webm", "audio/webm", b"OggS-data")

        assert KEY_PATTERN.match(result.path)
        assert result.url == f"http://test/api/recording/files/{result.path}"
        assert local_storage.resolve(result.path).read_bytes() == b"OggS-data"

    @pytest.mark.asyncio
    async def test_upload_rejects_text_file_without_writing(self, service, tmp_path):
        with pytest.raises(ValidationError):
            await service.upload("user_1", "notes.txt", "text/plain", b"hello")
        assert not (tmp_path / "recordings").exists()

    def test_generated_names_differ(self, service):
        paths = {service.generate_path("user_1", ".wav") for _ in range(20)}
        assert len(paths) == 20

    @pytest.mark.asyncio
    async def test_delete_own_recording(self, service, local_storage):
        result = await service.upload("user_1", "memo.webm", "audio/webm", b"data")

        await service.delete("user_1", result.path)

        assert not local_storage.resolve(result.path).exists()

    @pytest.mark.asyncio
    async def test_delete_other_users_recording_forbidden(self, service, local_storage):
        result = await service.upload("user_2", "memo.webm", "audio/webm", b"data")

        with pytest.raises(PermissionDeniedError):
            await service.delete("user_1", result.path)
        assert local_storage.resolve(result.path).exists()

    @pytest.mark.asyncio
    async def test_delete_with_parent_segments_forbidden(self, service):
        with pytest.raises(PermissionDeniedError):
            await service.delete("user_1", "recordings/user_1/../user_2/recording_x.wav")

    def test_local_storage_refuses_escape(self, local_storage):
        with pytest.raises(PermissionDeniedError):
            local_storage.resolve("../../etc/passwd")

    def test_local_file_missing(self, service):
        with pytest.raises(NotFoundError):
            service.local_file("recordings/user_1/recording_missing.wav")
