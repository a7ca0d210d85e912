"""
Process-lifetime secret cache.

The master API key is fetched from AWS Secrets Manager on first use and
reused until invalidate() is called (credential rotation) or the process
restarts.

Invariants:
    - At most one fetch is in flight at a time
    - A failed fetch is not cached; the next call retries
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

SecretLoader = Callable[[], Awaitable[Optional[str]]]


def parse_master_key(secret_string: str) -> Optional[str]:
    """Extract the API key from a secret value.

    The secret may be a JSON object with an "apiKey" field or the raw key.
    """
    try:
        payload = json.loads(secret_string)
    except json.JSONDecodeError:
        return secret_string or None
    if isinstance(payload, dict):
        return payload.get("apiKey") or secret_string
    return secret_string


def secrets_manager_loader(
    secret_id: str,
    region: str,
    endpoint_url: Optional[str] = None,
) -> SecretLoader:
    """Build a loader that reads one secret from AWS Secrets Manager."""

    async def load() -> Optional[str]:
        session = get_session()
        client_kwargs = {"region_name": region}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url

        async with session.create_client("secretsmanager", **client_kwargs) as client:
            response = await client.get_secret_value(SecretId=secret_id)
        secret_string = response.get("SecretString")
        return parse_master_key(secret_string) if secret_string else None

    return load


class SecretCache:
    """Lazily loaded, lock-protected cache for one secret.

    Example:
        >>> cache = SecretCache(secrets_manager_loader("site/master-key", "us-east-1"))
        >>> await cache.get()
        'sk_live_...'
        >>> cache.invalidate()
    """

    def __init__(self, loader: Optional[SecretLoader]) -> None:
        self._loader = loader
        self._value: Optional[str] = None
        self._lock = asyncio.Lock()
        self.fetch_count = 0

    async def get(self) -> Optional[str]:
        """Return the cached secret, fetching it on first use.

        Returns:
            The secret, or None if no loader is configured or the fetch failed
        """
        if self._value is not None or self._loader is None:
            return self._value

        async with self._lock:
            if self._value is not None:
                return self._value
            self.fetch_count += 1
            try:
                self._value = await self._loader()
            except (BotoCoreError, ClientError) as e:
                logger.error("Failed to fetch master key secret", extra={"error": str(e)})
                return None
            return self._value

    def invalidate(self) -> None:
        """Drop the cached value; the next get() fetches again."""
        self._value = None
