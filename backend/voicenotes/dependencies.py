"""
VoiceNotes Backend — Request Dependencies
===========================================

`get_current_user` authenticates every /api request. The web client sends
the session token either as `Authorization: Bearer <jwt>` (fetch from
client components) or in the `__session` cookie (same-site navigation).
"""

from typing import Optional

from fastapi import Cookie, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from voicenotes.exceptions import AuthenticationError
from voicenotes.schemas.auth import AuthUser
from voicenotes.services.identity_service import session_verifier

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session_cookie: Optional[str] = Cookie(default=None, alias="__session"),
) -> AuthUser:
    token = credentials.credentials if credentials else session_cookie
    if not token:
        raise AuthenticationError()
    return await session_verifier.verify(token)
