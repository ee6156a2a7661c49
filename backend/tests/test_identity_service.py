"""
VoiceNotes Backend — Identity Provider Tests
==============================================

Session tokens are signed with a throwaway RSA key; the JWKS endpoint and
the Backend API are served by httpx.MockTransport.

What we test:
    ✅ Correctly signed token → AuthUser(sub, sid)
    ✅ Expired, wrong-issuer, wrong-azp, unknown-kid, malformed → 401 error
    ✅ JWKS is cached between verifications; unknown kids refetch, throttled
    ✅ Backend API mapping (primary email, full name) and error translation
"""

import base64
import json
import time

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from voicenotes.exceptions import (
    AuthenticationError,
    IdentityProviderError,
    NotFoundError,
)
from voicenotes.services.identity_service import (
    IdentityProviderClient,
    JWKSCache,
    SessionTokenVerifier,
)

ISSUER = "https://clerk.test"
JWKS_URL = f"{ISSUER}/.well-known/jwks.json"
KID = "ins_test_key"


def _generate_keypair():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem, public_pem


PRIVATE_PEM, PUBLIC_PEM = _generate_keypair()
OTHER_PRIVATE_PEM, _ = _generate_keypair()


def _public_jwk(kid: str = KID) -> dict:
    key = jwk.construct(PUBLIC_PEM, "RS256").to_dict()
    key.update({"kid": kid, "use": "sig"})
    return key


def _token(kid: str = KID, private_pem: bytes = PRIVATE_PEM, **claims) -> str:
    now = int(time.time())
    payload = {
        "sub": "user_123",
        "sid": "sess_456",
        "iss": ISSUER,
        "azp": "http://localhost:3000",
        "iat": now,
        "nbf": now - 5,
        "exp": now + 60,
    }
    payload.update(claims)
    return jwt.encode(payload, private_pem, algorithm="RS256", headers={"kid": kid})


class JWKSEndpoint:
    """Counts fetches so tests can assert on caching."""

    def __init__(self, keys):
        self.keys = keys
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        assert str(request.url) == JWKS_URL
        return httpx.Response(200, json={"keys": self.keys})


def _verifier(endpoint, authorized_parties=None, min_refresh_interval=60):
    cache = JWKSCache(
        url=JWKS_URL,
        ttl=3600,
        transport=httpx.MockTransport(endpoint),
        min_refresh_interval=min_refresh_interval,
    )
    return SessionTokenVerifier(
        jwks=cache,
        issuer=ISSUER,
        authorized_parties=authorized_parties or [],
    )


class TestSessionTokenVerifier:

    @pytest.mark.asyncio
    async def test_valid_token(self):
        verifier = _verifier(JWKSEndpoint([_public_jwk()]))

        user = await verifier.verify(_token())

        assert user.id == "user_123"
        assert user.session_id == "sess_456"

    @pytest.mark.asyncio
    async def test_keys_are_cached(self):
        endpoint = JWKSEndpoint([_public_jwk()])
        verifier = _verifier(endpoint)

        await verifier.verify(_token())
        await verifier.verify(_token(sub="user_other"))

        assert endpoint.calls == 1

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self):
        verifier = _verifier(JWKSEndpoint([_public_jwk()]))
        past = int(time.time()) - 3600

        with pytest.raises(AuthenticationError):
            await verifier.verify(_token(iat=past - 60, nbf=past - 60, exp=past))

    @pytest.mark.asyncio
    async def test_wrong_issuer_rejected(self):
        verifier = _verifier(JWKSEndpoint([_public_jwk()]))

        with pytest.raises(AuthenticationError):
            await verifier.verify(_token(iss="https://evil.example"))

    @pytest.mark.asyncio
    async def test_unknown_kid_refetches_once_then_rejects(self):
        endpoint = JWKSEndpoint([_public_jwk()])
        verifier = _verifier(endpoint)

        with pytest.raises(AuthenticationError):
            await verifier.verify(_token(kid="ins_rotated"))
        assert endpoint.calls == 2

    @pytest.mark.asyncio
    async def test_signature_from_other_key_rejected(self):
        verifier = _verifier(JWKSEndpoint([_public_jwk()]))

        with pytest.raises(AuthenticationError):
            await verifier.verify(_token(private_pem=OTHER_PRIVATE_PEM))

    @pytest.mark.asyncio
    async def test_unauthorized_party_rejected(self):
        verifier = _verifier(
            JWKSEndpoint([_public_jwk()]),
            authorized_parties=["https://notes.example.com"],
        )

        with pytest.raises(AuthenticationError):
            await verifier.verify(_token(azp="https://evil.example"))

    @pytest.mark.asyncio
    async def test_authorized_party_accepted(self):
        verifier = _verifier(
            JWKSEndpoint([_public_jwk()]),
            authorized_parties=["http://localhost:3000"],
        )

        user = await verifier.verify(_token())
        assert user.id == "user_123"

    @pytest.mark.asyncio
    async def test_malformed_token_rejected(self):
        endpoint = JWKSEndpoint([_public_jwk()])
        verifier = _verifier(endpoint)

        with pytest.raises(AuthenticationError):
            await verifier.verify("not-a-jwt")
        assert endpoint.calls == 0

    @pytest.mark.asyncio
    async def test_jwks_outage_is_provider_error(self):
        def failing(request):
            return httpx.Response(503)

        verifier = _verifier(failing)

        with pytest.raises(IdentityProviderError):
            await verifier.verify(_token())


def _unsigned_token(kid: str) -> str:
    header = json.dumps({"alg": "RS256", "kid": kid}).encode()
    encoded = base64.urlsafe_b64encode(header).rstrip(b"=").decode()
    return f"{encoded}.e30.sig"


class TestJWKSRefreshThrottle:

    @pytest.mark.asyncio
    async def test_unknown_kids_refetch_at_most_once_per_interval(self):
        endpoint = JWKSEndpoint([_public_jwk()])
        verifier = _verifier(endpoint, min_refresh_interval=60)

        for i in range(20):
            with pytest.raises(AuthenticationError):
                await verifier.verify(_unsigned_token(f"bogus{i}"))

        # Initial load plus a single kid-triggered refetch
        assert endpoint.calls == 2

    @pytest.mark.asyncio
    async def test_known_kid_unaffected_by_throttle(self):
        endpoint = JWKSEndpoint([_public_jwk()])
        verifier = _verifier(endpoint, min_refresh_interval=60)

        with pytest.raises(AuthenticationError):
            await verifier.verify(_unsigned_token("bogus"))
        user = await verifier.verify(_token())

        assert user.id == "user_123"
        assert endpoint.calls == 2

    @pytest.mark.asyncio
    async def test_rotated_key_picked_up_after_interval(self):
        endpoint = JWKSEndpoint([_public_jwk()])
        verifier = _verifier(endpoint, min_refresh_interval=60)

        with pytest.raises(AuthenticationError):
            await verifier.verify(_unsigned_token("bogus"))

        endpoint.keys = [_public_jwk(), _public_jwk(kid="ins_rotated")]
        verifier.jwks._last_forced_refresh -= 61

        user = await verifier.verify(_token(kid="ins_rotated"))

        assert user.id == "user_123"
        assert endpoint.calls == 3

    @pytest.mark.asyncio
    async def test_zero_interval_refetches_every_unknown_kid(self):
        endpoint = JWKSEndpoint([_public_jwk()])
        verifier = _verifier(endpoint, min_refresh_interval=0)

        for i in range(3):
            with pytest.raises(AuthenticationError):
                await verifier.verify(_unsigned_token(f"bogus{i}"))

        assert endpoint.calls == 4


CLERK_USER = {
    "id": "user_123",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "image_url": "https://img.clerk.test/ada.png",
    "primary_email_address_id": "idn_2",
    "email_addresses": [
        {"id": "idn_1", "email_address": "old@example.com"},
        {"id": "idn_2", "email_address": "ada@example.com"},
    ],
}


def _client(handler):
    return IdentityProviderClient(
        base_url="https://api.clerk.test/v1",
        secret_key="sk_test_123",
        transport=httpx.MockTransport(handler),
    )


class TestIdentityProviderClient:

    @pytest.mark.asyncio
    async def test_get_user_maps_profile(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=CLERK_USER)

        user = await _client(handler).get_user("user_123")

        assert seen["url"] == "https://api.clerk.test/v1/users/user_123"
        assert seen["auth"] == "Bearer sk_test_123"
        assert user.email == "ada@example.com"
        assert user.full_name == "Ada Lovelace"
        assert user.image_url == "https://img.clerk.test/ada.png"

    @pytest.mark.asyncio
    async def test_falls_back_to_first_email_and_partial_name(self):
        data = dict(CLERK_USER, primary_email_address_id=None, last_name=None)

        user = await _client(lambda request: httpx.Response(200, json=data)).get_user("user_123")

        assert user.email == "old@example.com"
        assert user.full_name == "Ada"

    @pytest.mark.asyncio
    async def test_unknown_user(self):
        with pytest.raises(NotFoundError):
            await _client(lambda request: httpx.Response(404)).get_user("user_missing")

    @pytest.mark.asyncio
    async def test_server_error_is_provider_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"errors": []})

        with pytest.raises(IdentityProviderError):
            await _client(handler).get_user("user_123")
        # Only transport failures are retried
        assert len(calls) == 1
