"""
Credential to principal resolution.

Two credentials are accepted:
- X-Api-Key matching the master key: the system robot, a global admin
- Authorization: Bearer <token>: verified by an external TokenVerifier
"""

from __future__ import annotations

import hmac
import logging
from abc import abstractmethod
from typing import Optional, Protocol, runtime_checkable

from ..errors import AuthorizationError
from .policy import Principal, Role
from .secrets import SecretCache

logger = logging.getLogger(__name__)

ROBOT_SUBJECT = "system-robot"
ALL_TENANTS = "ALL"


class TokenVerificationError(Exception):
    """A bearer token was rejected by the verifier."""
    pass


@runtime_checkable
class TokenVerifier(Protocol):
    """Resolves a bearer token to a principal (identity provider adapter)."""

    @abstractmethod
    async def verify(self, token: str) -> Principal:
        """Verify a token.

        Raises:
            TokenVerificationError: If the token is invalid or expired
        """
        ...


class Authorizer:
    """Authenticates requests.

    Example:
        >>> authorizer = Authorizer(SecretCache(loader), verifier)
        >>> await authorizer.authenticate(api_key="sk_live_...")
        Principal(subject_id='system-robot', role='GLOBAL_ADMIN', tenant_id='ALL', email=None)
    """

    def __init__(
        self,
        master_key: SecretCache,
        verifier: Optional[TokenVerifier] = None,
    ) -> None:
        self.master_key = master_key
        self.verifier = verifier

    async def authenticate(
        self,
        api_key: Optional[str] = None,
        bearer: Optional[str] = None,
    ) -> Principal:
        """Resolve request credentials to a principal.

        Args:
            api_key: X-Api-Key header value
            bearer: Authorization header value (with or without "Bearer ")

        Raises:
            AuthorizationError: If no credential is valid
        """
        if api_key:
            master = await self.master_key.get()
            if master and hmac.compare_digest(api_key.encode(), master.encode()):
                return Principal(
                    subject_id=ROBOT_SUBJECT,
                    role=Role.GLOBAL_ADMIN.value,
                    tenant_id=ALL_TENANTS,
                )

        if not bearer:
            raise AuthorizationError("Unauthorized: missing credentials")

        token = bearer[len("Bearer "):] if bearer.startswith("Bearer ") else bearer
        if self.verifier is None:
            raise AuthorizationError("Unauthorized: bearer tokens are not accepted")

        try:
            return await self.verifier.verify(token)
        except TokenVerificationError as e:
            logger.warning("Token verification failed", extra={"error": str(e)})
            raise AuthorizationError("Unauthorized: invalid token") from e
