from __future__ import annotations

from unittest import mock

import pytest
from cryptography.fernet import Fernet

from scripts.directory_ingestion import config as config_module
from scripts.directory_ingestion.config import LogAnalyticsConfig, load_config
from scripts.directory_ingestion.errors import ConfigurationError
from scripts.directory_ingestion.secrets import PlaintextDecryptor

SHARED_KEY = "c2VjcmV0LWtleS1ieXRlcw=="

REQUIRED_ENV = {
    "GRAPH_TENANT_ID": "tenant",
    "GRAPH_CLIENT_ID": "client",
    "GRAPH_CERT_THUMBPRINT": "ABCDEF",
    "GRAPH_CERT_KEY_FILE": "/etc/ingestion/key.pem",
    "LOG_ANALYTICS_WORKSPACE_ID": "workspace",
    "LOG_ANALYTICS_SHARED_KEY": SHARED_KEY,
}

OPTIONAL_ENV = [
    "LOG_ANALYTICS_TABLE", "LOG_ANALYTICS_TIME_FIELD", "INGESTION_BATCH_SIZE",
    "INGESTION_MAX_RETRIES", "INGESTION_REQUEST_TIMEOUT", "GRAPH_PAGE_SIZE",
    "MAPPING_ERROR_POLICY", "SECRET_ENCRYPTION_KEY", "SCHEDULER_MAX_RETRIES",
    "SYNC_INTERVAL_HOURS", "PROGRESS_LOG_INTERVAL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)
    for name in list(REQUIRED_ENV) + OPTIONAL_ENV:
        monkeypatch.delenv(name, raising=False)


def set_env(monkeypatch, **overrides: str) -> None:
    for name, value in dict(REQUIRED_ENV, **overrides).items():
        monkeypatch.setenv(name, value)


def test_defaults(monkeypatch) -> None:
    set_env(monkeypatch)
    config = load_config(decryptor=PlaintextDecryptor())

    assert config.log_analytics.table_name == "AzureADUsers"
    assert config.log_analytics.batch_size == 0
    assert config.log_analytics.max_retries == 0
    assert config.mapping_error_policy == "skip"
    assert config.graph.page_size == 999


def test_table_argument_overrides_env(monkeypatch) -> None:
    set_env(monkeypatch, LOG_ANALYTICS_TABLE="FromEnv")
    assert load_config(table_name="FromCli").log_analytics.table_name == "FromCli"
    assert load_config().log_analytics.table_name == "FromEnv"


@pytest.mark.parametrize("name", ["LOG_ANALYTICS_WORKSPACE_ID", "LOG_ANALYTICS_SHARED_KEY"])
def test_empty_ingestion_credential_is_rejected(monkeypatch, name: str) -> None:
    set_env(monkeypatch, **{name: ""})
    with pytest.raises(ConfigurationError):
        load_config()


def test_undecodable_shared_key_is_rejected_at_load(monkeypatch) -> None:
    set_env(monkeypatch, LOG_ANALYTICS_SHARED_KEY="not base64!!")
    with pytest.raises(ConfigurationError, match="base64"):
        load_config()


@pytest.mark.parametrize(
    "name,value",
    [
        ("INGESTION_BATCH_SIZE", "-1"),
        ("INGESTION_MAX_RETRIES", "-2"),
        ("INGESTION_REQUEST_TIMEOUT", "0"),
        ("INGESTION_REQUEST_TIMEOUT", "soon"),
        ("GRAPH_PAGE_SIZE", "0"),
        ("GRAPH_PAGE_SIZE", "1000"),
        ("SCHEDULER_MAX_RETRIES", "-1"),
        ("SYNC_INTERVAL_HOURS", "0"),
        ("PROGRESS_LOG_INTERVAL", "0"),
    ],
)
def test_out_of_range_numbers_are_rejected(monkeypatch, name: str, value: str) -> None:
    set_env(monkeypatch, **{name: value})
    with pytest.raises(ConfigurationError, match=name):
        load_config()


@pytest.mark.parametrize(
    "overrides",
    [{"batch_size": -1}, {"max_retries": -1}, {"shared_key": "not base64!!"}],
)
def test_validate_rejects_invalid_credential(overrides: dict) -> None:
    config = LogAnalyticsConfig(
        **dict({"workspace_id": "workspace", "shared_key": SHARED_KEY}, **overrides)
    )
    with pytest.raises(ConfigurationError):
        config.validate()


def test_shared_key_goes_through_decryptor(monkeypatch) -> None:
    set_env(monkeypatch, LOG_ANALYTICS_SHARED_KEY="encrypted-blob")
    decryptor = mock.Mock()
    decryptor.decrypt.return_value = SHARED_KEY

    config = load_config(decryptor=decryptor)

    decryptor.decrypt.assert_called_once_with("encrypted-blob")
    assert config.log_analytics.shared_key == SHARED_KEY
    assert "c2VjcmV0" not in repr(config.log_analytics)


def test_encrypted_shared_key_is_decrypted_with_env_key(monkeypatch) -> None:
    key = Fernet.generate_key()
    token = Fernet(key).encrypt(SHARED_KEY.encode()).decode()
    set_env(
        monkeypatch,
        LOG_ANALYTICS_SHARED_KEY=f"fernet:{token}",
        SECRET_ENCRYPTION_KEY=key.decode(),
    )

    assert load_config().log_analytics.shared_key == SHARED_KEY


def test_encrypted_shared_key_without_env_key_is_rejected(monkeypatch) -> None:
    token = Fernet(Fernet.generate_key()).encrypt(SHARED_KEY.encode()).decode()
    set_env(monkeypatch, LOG_ANALYTICS_SHARED_KEY=f"fernet:{token}")

    with pytest.raises(ConfigurationError, match="SECRET_ENCRYPTION_KEY"):
        load_config()


def test_unknown_mapping_policy_is_rejected(monkeypatch) -> None:
    set_env(monkeypatch, MAPPING_ERROR_POLICY="ignore")
    with pytest.raises(ConfigurationError):
        load_config()
