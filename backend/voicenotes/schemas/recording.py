"""
VoiceNotes Backend — Recording Schemas
"""

from pydantic import BaseModel, Field


class RecordingUploadResponse(BaseModel):
    """
    Returned by POST /api/recording with HTTP 201.

    `path` is the object key inside the bucket (needed to delete it later);
    `url` is what the client stores in the note's `recording` field.
    """
    path: str = Field(description="Object key, e.g. recordings/user_2abc/recording_Ab3dE9xZ.wav")
    url: str = Field(description="Public URL of the uploaded recording")
