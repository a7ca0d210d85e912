"""
Role and tenant-scope policy.

Every operation names the roles it accepts. The policy runs before the
core touches the store, so a rejected request has no side effects.

Invariants:
    - GLOBAL_ADMIN passes every check
    - A principal without a role is treated as EDITOR
    - A tenant-scoped check requires the principal's scope to equal the
      target tenant exactly; a missing scope is rejected

How to change safely:
    - New roles must be added to the role sets of the operations they grant
    - Never widen the default role
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from ..errors import AuthorizationError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Roles carried by principals."""

    GLOBAL_ADMIN = "GLOBAL_ADMIN"
    TENANT_ADMIN = "TENANT_ADMIN"
    EDITOR = "EDITOR"
    USER = "USER"


DEFAULT_ROLE = Role.EDITOR

# Role sets used by the service layer
EDITORS = frozenset({Role.EDITOR, Role.TENANT_ADMIN})
TENANT_ADMINS = frozenset({Role.TENANT_ADMIN})
GLOBAL_ONLY: frozenset[Role] = frozenset()


@dataclass(frozen=True)
class Principal:
    """An authenticated caller.

    Attributes:
        subject_id: Stable subject identifier (user sub or robot name)
        role: Role name, None if the credential carries none
        tenant_id: Tenant scope, "ALL" for robots, None if unscoped
        email: Email address, for audit display
    """

    subject_id: str
    role: str | None = None
    tenant_id: str | None = None
    email: str | None = None

    @property
    def effective_role(self) -> str:
        return self.role or DEFAULT_ROLE.value

    @property
    def is_global_admin(self) -> bool:
        return self.role == Role.GLOBAL_ADMIN.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "sub": self.subject_id,
            "role": self.role,
            "tenantId": self.tenant_id,
            "email": self.email,
        }


class AccessPolicy:
    """Authorizes principals against role sets and tenant scope.

    Thread safety:
        Stateless and thread-safe.

    Example:
        >>> policy = AccessPolicy()
        >>> policy.require_role(Principal("u1", "EDITOR", "acme"), EDITORS, "acme")
        >>> policy.require_role(Principal("u1", "EDITOR", "acme"), EDITORS, "other")
        Traceback (most recent call last):
        AuthorizationError: Access denied: you do not have access to this tenant
    """

    def require_role(
        self,
        principal: Principal | None,
        allowed_roles: Iterable[Role | str],
        target_tenant_id: str | None = None,
    ) -> None:
        """Reject the principal unless it may act on the target tenant.

        Args:
            principal: Authenticated caller
            allowed_roles: Roles that may perform the operation
            target_tenant_id: Tenant the operation touches, if any

        Raises:
            AuthorizationError: If role or tenant scope does not match
        """
        if principal is None:
            raise AuthorizationError("Unauthorized: no principal")

        if principal.is_global_admin:
            return

        allowed = {r.value if isinstance(r, Role) else str(r) for r in allowed_roles}
        role = principal.effective_role
        if role not in allowed:
            raise AuthorizationError(
                f"Access denied: role '{role}' is not in [{', '.join(sorted(allowed))}]",
                subject_id=principal.subject_id,
                tenant_id=target_tenant_id,
            )

        if target_tenant_id is None:
            return

        if not principal.tenant_id:
            raise AuthorizationError(
                "Access denied: token has no tenant scope",
                subject_id=principal.subject_id,
                tenant_id=target_tenant_id,
            )

        if principal.tenant_id != target_tenant_id:
            logger.warning(
                "Cross-tenant access attempt",
                extra={
                    "subject_id": principal.subject_id,
                    "principal_tenant": principal.tenant_id,
                    "target_tenant": target_tenant_id,
                },
            )
            raise AuthorizationError(
                "Access denied: you do not have access to this tenant",
                subject_id=principal.subject_id,
                tenant_id=target_tenant_id,
            )
