"""Configuration via environment variables with encrypted-secret support.

Supports:
  - Environment variables (local dev, .env files)
  - A Fernet-encrypted shared key (fernet:<token>) decrypted with
    SECRET_ENCRYPTION_KEY
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from scripts.directory_ingestion.errors import ConfigurationError
from scripts.directory_ingestion.secrets import FernetSecretDecryptor, SecretDecryptor
from scripts.directory_ingestion.signature import decode_shared_key

DEFAULT_TABLE_NAME = "AzureADUsers"
DEFAULT_USER_FILTER = "userType eq 'Member' and assignedLicenses/$count ne 0"
MAPPING_POLICIES = ("skip", "abort")
GRAPH_MAX_PAGE_SIZE = 999


@dataclass(frozen=True)
class GraphConfig:
    tenant_id: str
    client_id: str
    cert_thumbprint: str
    cert_key_file: str  # PEM private key matching the thumbprint
    api_base_url: str = "https://graph.microsoft.com/v1.0"
    user_filter: str = DEFAULT_USER_FILTER
    page_size: int = GRAPH_MAX_PAGE_SIZE
    request_timeout: float = 60.0

    def validate(self) -> None:
        if not 1 <= self.page_size <= GRAPH_MAX_PAGE_SIZE:
            raise ConfigurationError(
                f"GRAPH_PAGE_SIZE must be between 1 and {GRAPH_MAX_PAGE_SIZE}, "
                f"got {self.page_size}"
            )


@dataclass(frozen=True)
class LogAnalyticsConfig:
    workspace_id: str
    shared_key: str = field(repr=False)
    table_name: str = DEFAULT_TABLE_NAME
    time_generated_field: Optional[str] = None
    request_timeout: float = 30.0
    max_retries: int = 0
    batch_size: int = 0  # 0 = submit the whole extraction as one batch

    def validate(self) -> None:
        """Checked before any network call is made."""
        if not self.workspace_id:
            raise ConfigurationError("LOG_ANALYTICS_WORKSPACE_ID is required")
        if not self.shared_key:
            raise ConfigurationError("LOG_ANALYTICS_SHARED_KEY is required")
        decode_shared_key(self.shared_key)
        if not self.table_name:
            raise ConfigurationError("Log Analytics table name must not be empty")
        if self.batch_size < 0:
            raise ConfigurationError(
                f"INGESTION_BATCH_SIZE must be 0 or positive, got {self.batch_size}"
            )
        if self.max_retries < 0:
            raise ConfigurationError(
                f"INGESTION_MAX_RETRIES must be 0 or positive, got {self.max_retries}"
            )
        if self.request_timeout <= 0:
            raise ConfigurationError(
                f"INGESTION_REQUEST_TIMEOUT must be positive, got {self.request_timeout}"
            )


@dataclass(frozen=True)
class SchedulerConfig:
    interval_hours: int = 24
    misfire_grace_time: int = 3600
    max_retries: int = 0


@dataclass(frozen=True)
class IngestionConfig:
    graph: GraphConfig
    log_analytics: LogAnalyticsConfig
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    mapping_error_policy: str = "skip"
    progress_log_interval: int = 100


def _require(name: str) -> str:
    value = os.environ.get(name, "")
    if not value:
        raise ConfigurationError(f"{name} environment variable is required")
    return value


def _int_env(name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = os.environ.get(name, str(default))
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def load_config(
    table_name: Optional[str] = None,
    decryptor: Optional[SecretDecryptor] = None,
) -> IngestionConfig:
    """Load configuration from environment variables.

    The shared key is passed through ``decryptor`` so callers always receive
    plaintext. Raises ConfigurationError when a value is missing or invalid.
    """
    load_dotenv()
    decryptor = decryptor or FernetSecretDecryptor(os.environ.get("SECRET_ENCRYPTION_KEY"))

    graph = GraphConfig(
        tenant_id=_require("GRAPH_TENANT_ID"),
        client_id=_require("GRAPH_CLIENT_ID"),
        cert_thumbprint=_require("GRAPH_CERT_THUMBPRINT"),
        cert_key_file=_require("GRAPH_CERT_KEY_FILE"),
        api_base_url=os.environ.get(
            "GRAPH_API_BASE_URL", "https://graph.microsoft.com/v1.0"
        ),
        user_filter=os.environ.get("GRAPH_USER_FILTER", DEFAULT_USER_FILTER),
        page_size=_int_env("GRAPH_PAGE_SIZE", GRAPH_MAX_PAGE_SIZE),
    )
    graph.validate()

    shared_key_raw = os.environ.get("LOG_ANALYTICS_SHARED_KEY", "")
    shared_key = decryptor.decrypt(shared_key_raw) if shared_key_raw else ""

    log_analytics = LogAnalyticsConfig(
        workspace_id=os.environ.get("LOG_ANALYTICS_WORKSPACE_ID", ""),
        shared_key=shared_key,
        table_name=table_name
        or os.environ.get("LOG_ANALYTICS_TABLE", DEFAULT_TABLE_NAME),
        time_generated_field=os.environ.get("LOG_ANALYTICS_TIME_FIELD") or None,
        request_timeout=_float_env("INGESTION_REQUEST_TIMEOUT", 30.0),
        max_retries=_int_env("INGESTION_MAX_RETRIES", 0),
        batch_size=_int_env("INGESTION_BATCH_SIZE", 0),
    )
    log_analytics.validate()

    policy = os.environ.get("MAPPING_ERROR_POLICY", "skip").lower()
    if policy not in MAPPING_POLICIES:
        raise ConfigurationError(
            f"MAPPING_ERROR_POLICY must be one of {MAPPING_POLICIES}, got {policy!r}"
        )

    return IngestionConfig(
        graph=graph,
        log_analytics=log_analytics,
        scheduler=SchedulerConfig(
            interval_hours=_int_env("SYNC_INTERVAL_HOURS", 24, minimum=1),
            max_retries=_int_env("SCHEDULER_MAX_RETRIES", 0, minimum=0),
        ),
        mapping_error_policy=policy,
        progress_log_interval=_int_env("PROGRESS_LOG_INTERVAL", 100, minimum=1),
    )
