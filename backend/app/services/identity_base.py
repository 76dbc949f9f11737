"""
SnipVault Backend — Abstract Identity Provider Interface
==========================================================

What:  The contract for turning a bearer token into a verified user identity.
Why:   Token verification is delegated to an external identity provider. The
       service and both transports depend only on this interface, so tests
       and alternative providers can be dropped in without touching them.
How:   Concrete implementations inherit from IdentityProvider and implement
       verify(). JWTIdentityProvider is the production implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """"Bearer abc" → "abc"; anything else → None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@dataclass(frozen=True)
class Identity:
    """A verified caller. `id` is the provider's subject; `email` may be absent."""

    id: str
    email: Optional[str] = None


class IdentityProvider(ABC):
    """
    Abstract interface for bearer-token verification.

    Contract:
        - verify() returns an Identity or raises; it never returns None
        - an invalid, expired or unverifiable token raises AuthenticationError
        - an unreachable provider (key endpoint down, timeout) raises
          UpstreamUnavailableError so callers can tell "bad token" from
          "cannot check token"
        - no retries: one attempt per call
    """

    @abstractmethod
    async def verify(self, token: str) -> Identity:
        """
        Verify a bearer token.

        Args:
            token: The raw token, without the "Bearer " prefix.

        Returns:
            Identity of the token's subject.

        Raises:
            AuthenticationError: token rejected.
            UpstreamUnavailableError: provider unreachable within the timeout.
        """
        ...

    async def aclose(self) -> None:
        """Release any network resources. Default: nothing to release."""
        return None
