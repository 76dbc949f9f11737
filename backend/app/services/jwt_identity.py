"""
SnipVault Backend — JWT Identity Provider
===========================================

What:  Verifies bearer JWTs issued by an external identity provider.
Why:   Authentication is delegated; this module only checks signatures and
       standard claims and maps the token to an Identity {id, email}.
How:   python-jose decodes and verifies the token. Keys come from either
       the provider's JWKS endpoint (fetched with httpx, cached for
       AUTH_JWKS_CACHE_TTL seconds) or a shared HS* secret.

Failure mapping:
    bad signature / malformed / wrong alg / no `sub`  → AuthenticationError
    expired                                           → AuthenticationError ("Token has expired")
    JWKS endpoint unreachable, timeout, non-2xx, junk → UpstreamUnavailableError

One attempt per call. The JWKS fetch is bounded by AUTH_HTTP_TIMEOUT.
"""

import logging
import time
from typing import Any, Dict, Optional, Sequence

import httpx
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JOSEError

from app.config import Settings
from app.exceptions import AuthenticationError, UpstreamUnavailableError
from app.services.identity_base import Identity, IdentityProvider

logger = logging.getLogger(__name__)


class JWTIdentityProvider(IdentityProvider):
    """
    Bearer-token verifier for hosted identity providers.

    Key source precedence: JWKS URL if configured, otherwise the shared secret.
    With neither configured every token is rejected with AuthenticationError.
    """

    def __init__(
        self,
        *,
        jwks_url: str = "",
        secret: str = "",
        algorithms: Sequence[str] = ("RS256",),
        audience: str = "",
        issuer: str = "",
        http_timeout: float = 5.0,
        jwks_cache_ttl: int = 3600,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.jwks_url = jwks_url
        self.secret = secret
        self.algorithms = list(algorithms)
        self.audience = audience
        self.issuer = issuer
        self.http_timeout = http_timeout
        self.jwks_cache_ttl = jwks_cache_ttl

        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=http_timeout)

        self._jwks: Optional[Dict[str, Any]] = None
        self._jwks_fetched_at = 0.0

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "JWTIdentityProvider":
        return cls(
            jwks_url=settings.auth_jwks_url,
            secret=settings.auth_jwt_secret,
            algorithms=settings.auth_jwt_algorithms_list,
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
            http_timeout=settings.auth_http_timeout,
            jwks_cache_ttl=settings.auth_jwks_cache_ttl,
            **kwargs,
        )

    async def verify(self, token: str) -> Identity:
        if not token:
            raise AuthenticationError("No valid authorization token provided")

        try:
            header = jwt.get_unverified_header(token)
        except JOSEError as e:
            raise AuthenticationError("Invalid token", context={"reason": str(e)}) from e

        alg = header.get("alg")
        if alg not in self.algorithms:
            raise AuthenticationError(
                "Invalid token",
                context={"reason": f"algorithm {alg!r} not accepted"},
            )

        key = await self._resolve_key(header)

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=self.algorithms,
                audience=self.audience or None,
                issuer=self.issuer or None,
                options={"verify_aud": bool(self.audience)},
            )
        except ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired") from e
        except JOSEError as e:
            raise AuthenticationError("Invalid token", context={"reason": str(e)}) from e

        subject = claims.get("sub")
        if not subject:
            raise AuthenticationError("Invalid token", context={"reason": "missing sub claim"})

        email = claims.get("email") or claims.get("email_address")
        return Identity(id=str(subject), email=str(email).lower() if email else None)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    # ── Key resolution ────────────────────────────────────────────────────

    async def _resolve_key(self, header: Dict[str, Any]) -> Any:
        if self.jwks_url:
            jwks = await self._get_jwks()
            kid = header.get("kid")
            for key in jwks.get("keys", []):
                if kid is None or key.get("kid") == kid:
                    return key
            raise AuthenticationError(
                "Invalid token",
                context={"reason": f"signing key {kid!r} not in JWKS"},
            )
        if self.secret:
            return self.secret
        raise AuthenticationError(
            "Authentication is not configured",
            context={"reason": "neither AUTH_JWKS_URL nor AUTH_JWT_SECRET set"},
        )

    async def _get_jwks(self) -> Dict[str, Any]:
        now = time.monotonic()
        if self._jwks is not None and (now - self._jwks_fetched_at) < self.jwks_cache_ttl:
            return self._jwks

        start_time = time.perf_counter()
        try:
            response = await self._http_client.get(self.jwks_url, timeout=self.http_timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "JWKS fetch from identity provider failed after %.0fms: %s",
                (time.perf_counter() - start_time) * 1000,
                type(e).__name__,
            )
            raise UpstreamUnavailableError(
                service="identity_provider",
                context={"error_type": type(e).__name__},
            ) from e

        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            logger.error("JWKS document from identity provider has no 'keys' list")
            raise UpstreamUnavailableError(
                service="identity_provider",
                context={"error_type": "InvalidJWKS"},
            )

        logger.info("Fetched %d signing keys from identity provider", len(data["keys"]))
        self._jwks = data
        self._jwks_fetched_at = now
        return data
