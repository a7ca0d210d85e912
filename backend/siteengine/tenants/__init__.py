"""Tenant configuration and provisioning."""

from .models import DEFAULT_THEME, Tenant, TenantPlan, TenantStatus, default_theme
from .provisioner import TenantProvisioner

__all__ = [
    "DEFAULT_THEME",
    "Tenant",
    "TenantPlan",
    "TenantProvisioner",
    "TenantStatus",
    "default_theme",
]
