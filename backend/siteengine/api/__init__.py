"""
HTTP API for the site engine.

The API is a FastAPI app; every handler delegates to SiteService.
"""

from .http_app import build_authorizer, create_app

__all__ = ["build_authorizer", "create_app"]
