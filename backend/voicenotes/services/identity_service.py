"""
VoiceNotes Backend — Identity Provider (Clerk) Integration
============================================================

What:  Session-token verification and user profile lookup.
How:   - SessionTokenVerifier checks RS256 session JWTs against the provider's
         JWKS, which is fetched with httpx and cached in-process.
       - IdentityProviderClient calls the Backend API (`GET /users/{id}`)
         with the secret key, retrying transport failures with tenacity.

Verification rules:
    1. Header must name a `kid`; an unknown kid triggers a JWKS refetch
       (key rotation) at most once per CLERK_JWKS_MIN_REFRESH_INTERVAL,
       otherwise the token is rejected straight away
    2. Signature (RS256), `exp` and `nbf` via python-jose
    3. `iss` must equal CLERK_ISSUER when configured
    4. `azp` must be in CLERK_AUTHORIZED_PARTIES when both are present
    5. `sub` is required; it becomes AuthUser.id
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx
from jose import JWTError, jwt
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from voicenotes.config import settings
from voicenotes.exceptions import (
    AuthenticationError,
    IdentityProviderError,
    NotFoundError,
)
from voicenotes.schemas.auth import AuthUser, IdentityUser

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"


# ══════════════════════════════════════════════════════════════════════════
# JWKS Cache
# ══════════════════════════════════════════════════════════════════════════

class JWKSCache:
    """
    In-process cache of the provider's signing keys, keyed by `kid`.

    Refreshed when older than `ttl` seconds, or on demand when a token names
    a kid we have not seen. On-demand refreshes happen at most once per
    `min_refresh_interval` seconds; unknown kids inside that interval are
    rejected without contacting the provider.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        ttl: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        min_refresh_interval: Optional[int] = None,
    ):
        self.url = url if url is not None else settings.resolved_jwks_url
        self.ttl = ttl or settings.clerk_jwks_cache_ttl
        self.min_refresh_interval = (
            min_refresh_interval
            if min_refresh_interval is not None
            else settings.clerk_jwks_min_refresh_interval
        )
        self.transport = transport
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._fetched_at: Optional[float] = None
        self._last_forced_refresh: Optional[float] = None

    def _is_stale(self) -> bool:
        return self._fetched_at is None or time.time() - self._fetched_at >= self.ttl

    def _may_force_refresh(self) -> bool:
        return (
            self._last_forced_refresh is None
            or time.time() - self._last_forced_refresh >= self.min_refresh_interval
        )

    async def refresh(self) -> None:
        if not self.url:
            logger.error("JWKS URL is not configured; set CLERK_ISSUER or CLERK_JWKS_URL")
            raise IdentityProviderError(message="Session verification is not configured")

        try:
            async with httpx.AsyncClient(
                timeout=settings.clerk_timeout, transport=self.transport
            ) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to fetch JWKS from %s: %s", self.url, str(e))
            raise IdentityProviderError(
                context={"url": self.url, "error_type": type(e).__name__},
            ) from e

        self._keys = {key["kid"]: key for key in payload.get("keys", []) if "kid" in key}
        self._fetched_at = time.time()
        logger.info("Loaded %d signing key(s) from JWKS", len(self._keys))

    async def get_key(self, kid: str) -> Dict[str, Any]:
        if self._is_stale():
            await self.refresh()
        if kid not in self._keys and self._may_force_refresh():
            # Possibly a rotated key; refetch, throttled
            self._last_forced_refresh = time.time()
            await self.refresh()
        key = self._keys.get(kid)
        if key is None:
            raise AuthenticationError(
                message="Session token signed with an unknown key",
                context={"kid": kid},
            )
        return key


# ══════════════════════════════════════════════════════════════════════════
# Session Token Verification
# ══════════════════════════════════════════════════════════════════════════

class SessionTokenVerifier:
    """Turns a raw session JWT into an AuthUser, or raises AuthenticationError."""

    def __init__(
        self,
        jwks: Optional[JWKSCache] = None,
        issuer: Optional[str] = None,
        authorized_parties: Optional[list] = None,
    ):
        self.jwks = jwks or JWKSCache()
        self.issuer = issuer if issuer is not None else settings.clerk_issuer
        self.authorized_parties = (
            authorized_parties
            if authorized_parties is not None
            else settings.clerk_authorized_parties_list
        )

    async def verify(self, token: str) -> AuthUser:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise AuthenticationError(message="Malformed session token") from e

        kid = header.get("kid")
        if not kid or header.get("alg") != ALGORITHM:
            raise AuthenticationError(
                message="Unsupported session token",
                context={"alg": header.get("alg"), "kid": kid},
            )

        key = await self.jwks.get_key(kid)

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[ALGORITHM],
                issuer=self.issuer or None,
                options={"verify_aud": False},
            )
        except JWTError as e:
            logger.info("Rejected session token: %s", str(e))
            raise AuthenticationError(
                message="Invalid or expired session token",
                context={"reason": str(e)},
            ) from e

        azp = claims.get("azp")
        if self.authorized_parties and azp and azp not in self.authorized_parties:
            raise AuthenticationError(
                message="Session token issued for another origin",
                context={"azp": azp},
            )

        sub = claims.get("sub")
        if not sub:
            raise AuthenticationError(message="Session token has no subject")

        return AuthUser(id=sub, session_id=claims.get("sid"))


# ══════════════════════════════════════════════════════════════════════════
# Backend API Client
# ══════════════════════════════════════════════════════════════════════════

def _map_user(data: Dict[str, Any]) -> IdentityUser:
    """
    Map a provider user object onto IdentityUser.

    Email: the primary address, else the first listed one.
    Name: first + last, whichever parts exist.
    """
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    email = next(
        (a.get("email_address") for a in addresses if a.get("id") == primary_id),
        None,
    )
    if email is None and addresses:
        email = addresses[0].get("email_address")

    parts = [data.get("first_name"), data.get("last_name")]
    full_name = " ".join(p for p in parts if p) or None

    return IdentityUser(
        id=data["id"],
        email=email,
        full_name=full_name,
        image_url=data.get("image_url"),
    )


class IdentityProviderClient:
    """Thin async client for the provider's Backend API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        secret_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.clerk_api_url).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.clerk_secret_key
        self.transport = transport

    async def get_user(self, user_id: str) -> IdentityUser:
        """
        Fetch a user's profile.

        Raises:
            NotFoundError: The provider does not know this user id.
            IdentityProviderError: Any other failure, after retries.
        """
        try:
            data = await self._fetch_user(user_id)
            return _map_user(data)
        except NotFoundError:
            raise
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("Identity provider lookup for %s failed: %s", user_id, str(e))
            raise IdentityProviderError(
                context={"user_id": user_id, "error_type": type(e).__name__},
            ) from e

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential(
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _fetch_user(self, user_id: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.clerk_timeout,
            transport=self.transport,
        ) as client:
            response = await client.get(
                f"/users/{user_id}",
                headers={"Authorization": f"Bearer {self.secret_key}"},
            )

        if response.status_code == 404:
            raise NotFoundError(resource="user", resource_id=user_id)
        response.raise_for_status()
        return response.json()


# ── Singleton Instances ───────────────────────────────────────────────────
# The verifier holds the JWKS cache, so it must be shared across requests
session_verifier = SessionTokenVerifier()
identity_client = IdentityProviderClient()
