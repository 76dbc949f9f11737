"""
SnipVault Backend — JWT Identity Provider Tests
=================================================

What:  Token verification outcomes and JWKS fetch failure mapping.
How:   Tokens minted with python-jose; the JWKS endpoint is an
       httpx.MockTransport so no network is used.
"""

import base64

import httpx
import pytest
from jose import jwt

from app.exceptions import AuthenticationError, UpstreamUnavailableError
from app.services.identity_base import extract_bearer_token
from app.services.jwt_identity import JWTIdentityProvider
from conftest import TEST_SECRET, mint_token

JWKS_URL = "https://idp.example.com/.well-known/jwks.json"
JWKS_SECRET = "jwks-signing-secret"


def oct_jwk(secret: str, kid: str) -> dict:
    k = base64.urlsafe_b64encode(secret.encode()).rstrip(b"=").decode()
    return {"kty": "oct", "kid": kid, "alg": "HS256", "k": k}


def jwks_provider(handler) -> JWTIdentityProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JWTIdentityProvider(
        jwks_url=JWKS_URL,
        algorithms=["HS256"],
        http_client=client,
    )


class TestBearerExtraction:

    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc", "abc"),
        ("bearer   abc ", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        ("", None),
        (None, None),
    ])
    def test_extract(self, header, expected):
        assert extract_bearer_token(header) == expected


class TestSecretVerification:

    @pytest.mark.asyncio
    async def test_valid_token(self, identity_provider):
        identity = await identity_provider.verify(mint_token("user-1", email="One@Example.com"))
        assert identity.id == "user-1"
        assert identity.email == "one@example.com"

    @pytest.mark.asyncio
    async def test_email_address_claim_fallback(self, identity_provider):
        token = mint_token("user-1", email_address="alt@example.com")
        assert (await identity_provider.verify(token)).email == "alt@example.com"

    @pytest.mark.asyncio
    async def test_expired(self, identity_provider):
        with pytest.raises(AuthenticationError) as exc_info:
            await identity_provider.verify(mint_token("user-1", expires_in=-30))
        assert exc_info.value.message == "Token has expired"

    @pytest.mark.asyncio
    async def test_bad_signature(self, identity_provider):
        with pytest.raises(AuthenticationError) as exc_info:
            await identity_provider.verify(mint_token("user-1", secret="someone-else"))
        assert exc_info.value.message == "Invalid token"

    @pytest.mark.asyncio
    async def test_garbage_and_missing_subject(self, identity_provider):
        with pytest.raises(AuthenticationError):
            await identity_provider.verify("not.a.jwt")
        with pytest.raises(AuthenticationError):
            await identity_provider.verify(mint_token(None))
        with pytest.raises(AuthenticationError):
            await identity_provider.verify("")

    @pytest.mark.asyncio
    async def test_disallowed_algorithm(self, identity_provider):
        token = jwt.encode({"sub": "user-1"}, TEST_SECRET, algorithm="HS512")
        with pytest.raises(AuthenticationError):
            await identity_provider.verify(token)

    @pytest.mark.asyncio
    async def test_audience_enforced_when_configured(self):
        provider = JWTIdentityProvider(secret=TEST_SECRET, algorithms=["HS256"], audience="snipvault")
        try:
            ok = mint_token("user-1", aud="snipvault")
            assert (await provider.verify(ok)).id == "user-1"
            with pytest.raises(AuthenticationError):
                await provider.verify(mint_token("user-1", aud="other-app"))
        finally:
            await provider.aclose()

    @pytest.mark.asyncio
    async def test_unconfigured_rejects(self):
        provider = JWTIdentityProvider(algorithms=["HS256"])
        try:
            with pytest.raises(AuthenticationError):
                await provider.verify(mint_token("user-1"))
        finally:
            await provider.aclose()


class TestJWKSVerification:

    @pytest.mark.asyncio
    async def test_key_selected_by_kid_and_cached(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(
                200,
                json={"keys": [oct_jwk("unused", "old"), oct_jwk(JWKS_SECRET, "current")]},
            )

        provider = jwks_provider(handler)
        token = jwt.encode(
            {"sub": "user-9"}, JWKS_SECRET, algorithm="HS256", headers={"kid": "current"}
        )
        try:
            assert (await provider.verify(token)).id == "user-9"
            assert (await provider.verify(token)).id == "user-9"
        finally:
            await provider.aclose()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_kid_is_authentication_error(self):
        provider = jwks_provider(lambda request: httpx.Response(200, json={"keys": []}))
        token = jwt.encode({"sub": "u"}, JWKS_SECRET, algorithm="HS256", headers={"kid": "gone"})
        try:
            with pytest.raises(AuthenticationError):
                await provider.verify(token)
        finally:
            await provider.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("timed out"),
    ])
    async def test_unreachable_provider_is_upstream_error(self, failure):
        def handler(request: httpx.Request) -> httpx.Response:
            raise failure

        provider = jwks_provider(handler)
        token = jwt.encode({"sub": "u"}, JWKS_SECRET, algorithm="HS256", headers={"kid": "k"})
        try:
            with pytest.raises(UpstreamUnavailableError) as exc_info:
                await provider.verify(token)
        finally:
            await provider.aclose()
        assert exc_info.value.service == "identity_provider"

    @pytest.mark.asyncio
    async def test_error_status_is_upstream_error(self):
        provider = jwks_provider(lambda request: httpx.Response(503, text="down"))
        token = jwt.encode({"sub": "u"}, JWKS_SECRET, algorithm="HS256", headers={"kid": "k"})
        try:
            with pytest.raises(UpstreamUnavailableError):
                await provider.verify(token)
        finally:
            await provider.aclose()
