"""
VoiceNotes Backend — Authentication Schemas
=============================================

AuthUser is what the session-token dependency yields; IdentityUser is the
profile fetched from the identity provider's Backend API.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthUser(BaseModel):
    """Claims extracted from a verified session token."""
    id: str = Field(description="Provider user id (`sub` claim)")
    session_id: Optional[str] = Field(default=None, description="`sid` claim")


class IdentityUser(BaseModel):
    """User profile as reported by the identity provider."""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = Field(default=None, alias="fullName")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")

    model_config = ConfigDict(populate_by_name=True)


class IdentityUserResponse(BaseModel):
    """Body of GET /api/auth."""
    user: IdentityUser
