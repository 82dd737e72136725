"""
Bearer token verification.

The identity provider is external: it issues signed tokens and this module
only checks them. `JwtIdentityVerifier` validates the signature, the expiry
and (when configured) the audience and issuer, then returns the subject.

Every failure collapses into the same `AuthenticationError`, so a caller
can never tell a bad signature from an expired token or an unknown user.
"""

import logging
from typing import Iterable, Optional, Protocol

from jose import JWTError, jwt

from errors import AuthenticationError
from settings import settings

logger = logging.getLogger(__name__)


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> str:
        """Return the owner id carried by `token` or raise `AuthenticationError`."""
        ...


class JwtIdentityVerifier:
    def __init__(
        self,
        key: str,
        algorithms: Iterable[str] = ("HS256",),
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        self.key = key
        self.algorithms = list(algorithms)
        self.audience = audience
        self.issuer = issuer

    @classmethod
    def from_settings(cls) -> "JwtIdentityVerifier":
        return cls(
            settings.auth_secret,
            algorithms=settings.auth_algorithms,
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
        )

    async def verify(self, token: str) -> str:
        try:
            payload = jwt.decode(
                token,
                self.key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            logger.warning("Token verification failed: %s", e.__class__.__name__)
            raise AuthenticationError() from e

        subject = payload.get("sub") or payload.get("uid")
        if not isinstance(subject, str) or not subject.strip():
            logger.warning("Token verification failed: no subject claim")
            raise AuthenticationError()
        return subject.strip()
