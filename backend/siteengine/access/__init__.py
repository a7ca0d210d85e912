"""
Authentication and authorization.

Authorizer turns credentials into a Principal; AccessPolicy decides
whether that principal may run an operation on a tenant.
"""

from .authorizer import (
    ALL_TENANTS,
    ROBOT_SUBJECT,
    Authorizer,
    TokenVerificationError,
    TokenVerifier,
)
from .policy import EDITORS, GLOBAL_ONLY, TENANT_ADMINS, AccessPolicy, Principal, Role
from .secrets import SecretCache, parse_master_key, secrets_manager_loader

__all__ = [
    "ALL_TENANTS",
    "AccessPolicy",
    "Authorizer",
    "EDITORS",
    "GLOBAL_ONLY",
    "Principal",
    "ROBOT_SUBJECT",
    "Role",
    "SecretCache",
    "TENANT_ADMINS",
    "TokenVerificationError",
    "TokenVerifier",
    "parse_master_key",
    "secrets_manager_loader",
]
