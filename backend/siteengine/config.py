"""
Configuration management for the site engine.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for critical settings
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

# DynamoDB's TransactWriteItems limit
DEFAULT_MAX_TRANSACTION_ITEMS = 100


class StoreBackend(Enum):
    """Supported key-value store backends."""

    MEMORY = "memory"
    DYNAMODB = "dynamodb"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class DynamoDbConfig:
    """DynamoDB store configuration.

    Attributes:
        table_name: Single table holding every record kind
        region: AWS region
        endpoint_url: Custom endpoint URL (for DynamoDB Local / LocalStack)
        max_transaction_items: Upper bound on items per transactional write
        connect_timeout: botocore connect timeout in seconds
        read_timeout: botocore read timeout in seconds
        max_attempts: botocore retry attempts
    """

    table_name: str = "site-engine"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    max_transaction_items: int = DEFAULT_MAX_TRANSACTION_ITEMS
    connect_timeout: float = 5.0
    read_timeout: float = 10.0
    max_attempts: int = 3

    @classmethod
    def from_env(cls) -> DynamoDbConfig:
        """Load configuration from environment variables."""
        return cls(
            table_name=os.getenv("TABLE_NAME", "site-engine"),
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT_URL"),
            max_transaction_items=int(
                os.getenv("DYNAMODB_MAX_TRANSACTION_ITEMS", str(DEFAULT_MAX_TRANSACTION_ITEMS))
            ),
            connect_timeout=float(os.getenv("DYNAMODB_CONNECT_TIMEOUT", "5.0")),
            read_timeout=float(os.getenv("DYNAMODB_READ_TIMEOUT", "10.0")),
            max_attempts=int(os.getenv("DYNAMODB_MAX_ATTEMPTS", "3")),
        )


@dataclass(frozen=True)
class EventBusConfig:
    """Audit event bus (EventBridge) configuration.

    Attributes:
        bus_name: Event bus name; audit publishing is skipped when unset
        region: AWS region
        endpoint_url: Custom endpoint URL (for LocalStack)
        source: Event source name
    """

    bus_name: str | None = None
    region: str = "us-east-1"
    endpoint_url: str | None = None
    source: str = "siteengine.system"

    @classmethod
    def from_env(cls) -> EventBusConfig:
        """Load configuration from environment variables."""
        return cls(
            bus_name=os.getenv("EVENT_BUS_NAME"),
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("EVENTBRIDGE_ENDPOINT_URL"),
            source=os.getenv("AUDIT_EVENT_SOURCE", "siteengine.system"),
        )


@dataclass(frozen=True)
class AuthConfig:
    """Authorizer configuration.

    Attributes:
        master_key_secret_name: Secrets Manager id holding the master API key
        region: AWS region
        endpoint_url: Custom endpoint URL (for LocalStack)
    """

    master_key_secret_name: str | None = None
    region: str = "us-east-1"
    endpoint_url: str | None = None

    @classmethod
    def from_env(cls) -> AuthConfig:
        """Load configuration from environment variables."""
        return cls(
            master_key_secret_name=os.getenv("MASTER_KEY_SECRET_NAME"),
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("SECRETSMANAGER_ENDPOINT_URL"),
        )


@dataclass(frozen=True)
class TenantDefaultsConfig:
    """Defaults applied when provisioning a tenant.

    Attributes:
        domain_suffix: Suffix for generated domains (<id>.<suffix>)
        plan: Plan assigned to new tenants
    """

    domain_suffix: str = "localhost"
    plan: str = "Pro"

    @classmethod
    def from_env(cls) -> TenantDefaultsConfig:
        """Load configuration from environment variables."""
        return cls(
            domain_suffix=os.getenv("TENANT_DOMAIN_SUFFIX", "localhost"),
            plan=os.getenv("TENANT_DEFAULT_PLAN", "Pro"),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("http://localhost:3000", "http://localhost:5173")

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip())
            if origins
            else cls.cors_origins,
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        store_backend: Which key-value store backend to use
        dynamodb: DynamoDB configuration (if store_backend is DYNAMODB)
        event_bus: Audit event bus configuration
        auth: Authorizer configuration
        tenant_defaults: Tenant provisioning defaults
        http: HTTP server configuration
        observability: Logging configuration
    """

    store_backend: StoreBackend = StoreBackend.MEMORY
    dynamodb: DynamoDbConfig = field(default_factory=DynamoDbConfig)
    event_bus: EventBusConfig = field(default_factory=EventBusConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    tenant_defaults: TenantDefaultsConfig = field(default_factory=TenantDefaultsConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "memory").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: memory, dynamodb"
            )

        config = cls(
            store_backend=store_backend,
            dynamodb=DynamoDbConfig.from_env(),
            event_bus=EventBusConfig.from_env(),
            auth=AuthConfig.from_env(),
            tenant_defaults=TenantDefaultsConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store_backend == StoreBackend.DYNAMODB:
            if not self.dynamodb.table_name:
                raise ValueError("TABLE_NAME is required when STORE_BACKEND=dynamodb")
        if not 1 <= self.dynamodb.max_transaction_items <= DEFAULT_MAX_TRANSACTION_ITEMS:
            raise ValueError(
                f"DYNAMODB_MAX_TRANSACTION_ITEMS must be between 1 and "
                f"{DEFAULT_MAX_TRANSACTION_ITEMS}"
            )

        if not self.event_bus.bus_name:
            logger.warning("EVENT_BUS_NAME is not set; audit records will be dropped")
        if not self.auth.master_key_secret_name:
            logger.warning("MASTER_KEY_SECRET_NAME is not set; master API key auth is disabled")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "table_name": self.dynamodb.table_name
                if self.store_backend == StoreBackend.DYNAMODB
                else None,
                "region": self.dynamodb.region,
                "event_bus": self.event_bus.bus_name,
                "master_key_configured": bool(self.auth.master_key_secret_name),
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
