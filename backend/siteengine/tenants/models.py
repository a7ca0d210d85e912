"""
Tenant configuration record.

Tenant configs live in the system partition (PK=SYSTEM, SK=TENANT#<id>)
so the set of tenants can be listed without touching tenant data.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .. import keys
from ..content.slugs import URL_PREFIX_DEFAULTS


class TenantStatus(str, Enum):
    LIVE = "LIVE"
    SUSPENDED = "SUSPENDED"
    OFF = "OFF"


class TenantPlan(str, Enum):
    FREE = "Free"
    PRO = "Pro"
    AGENCY = "Agency"


DEFAULT_THEME: Dict[str, Any] = {
    "primaryColor": "#000000",
    "primaryForeground": "#ffffff",
    "secondaryColor": "#ffffff",
    "secondaryForeground": "#000000",
    "backgroundColor": "#ffffff",
    "surfaceColor": "#f4f4f5",
    "textColor": "#020817",
    "fontHeading": "Inter",
    "fontBody": "Inter",
    "radius": "0.5rem",
}


def default_theme() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_THEME)


@dataclass
class Tenant:
    """A tenant's site configuration.

    Attributes:
        id: Stable URL-safe identifier, immutable after creation
        domain: Primary domain serving the site
        name: Display name
        status: Serving state
        plan: Billing plan
        theme: Colors and typography
        integrations: Analytics, payment and identity provider settings
        url_prefixes: Storefront path prefixes that content slugs may not use
        extra: Settings not modelled above, kept verbatim across merge-patches
    """

    id: str
    domain: str
    name: str
    status: TenantStatus = TenantStatus.LIVE
    plan: TenantPlan = TenantPlan.PRO
    theme: Dict[str, Any] = field(default_factory=default_theme)
    integrations: Dict[str, Any] = field(default_factory=dict)
    url_prefixes: Dict[str, str] = field(default_factory=lambda: dict(URL_PREFIX_DEFAULTS))
    created_at: str = ""
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KNOWN = (
        "id",
        "domain",
        "Domain",
        "name",
        "status",
        "plan",
        "theme",
        "integrations",
        "urlPrefixes",
        "createdAt",
        "updatedAt",
        "createdBy",
        "updatedBy",
        "Type",
        keys.PK,
        keys.SK,
    )

    def to_item(self) -> Dict[str, Any]:
        attrs = dict(self.extra)
        attrs.update(
            {
                "Type": "Tenant",
                "id": self.id,
                "domain": self.domain,
                # GSI lookup by domain
                "Domain": self.domain,
                "name": self.name,
                "status": self.status.value,
                "plan": self.plan.value,
                "theme": self.theme,
                "integrations": self.integrations,
                "urlPrefixes": self.url_prefixes,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
                "createdBy": self.created_by,
                "updatedBy": self.updated_by,
            }
        )
        return keys.with_key(keys.tenant_config_key(self.id), attrs)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> Tenant:
        return cls(
            id=item["id"],
            domain=item.get("domain", ""),
            name=item.get("name", ""),
            status=TenantStatus(item.get("status", TenantStatus.LIVE.value)),
            plan=TenantPlan(item.get("plan", TenantPlan.PRO.value)),
            theme=item.get("theme") or {},
            integrations=item.get("integrations") or {},
            url_prefixes=item.get("urlPrefixes") or dict(URL_PREFIX_DEFAULTS),
            created_at=item.get("createdAt", ""),
            updated_at=item.get("updatedAt"),
            created_by=item.get("createdBy"),
            updated_by=item.get("updatedBy"),
            extra={k: v for k, v in item.items() if k not in cls._KNOWN},
        )

    def to_dict(self) -> Dict[str, Any]:
        item = keys.strip_key(self.to_item())
        item.pop("Domain", None)
        return item
