from __future__ import annotations

import pytest

from sessiongen.config import load_settings
from sessiongen.constants import DEFAULT_BROWSER, DEFAULT_COLLECTION, DEFAULT_DB_NAME
from sessiongen.exceptions import ConfigError


def test_store_address_is_required() -> None:
    with pytest.raises(ConfigError):
        load_settings({})
    with pytest.raises(ConfigError):
        load_settings({"SESSIONGEN_STORE_URL": "  "})


def test_defaults_with_legacy_mongo_variable() -> None:
    settings = load_settings({"MONGO_DB_URL": "mongodb://localhost:27017"})

    assert settings.store_url == "mongodb://localhost:27017"
    assert settings.port == 3000
    assert settings.host == "0.0.0.0"
    assert settings.db_name == DEFAULT_DB_NAME
    assert settings.collection == DEFAULT_COLLECTION
    assert settings.log_level == "INFO"
    assert settings.log_file is None
    assert settings.client_factory is None
    assert settings.client.browser == DEFAULT_BROWSER


def test_explicit_store_url_wins_and_overrides_apply() -> None:
    settings = load_settings(
        {
            "SESSIONGEN_STORE_URL": "file:///var/lib/sessiongen",
            "MONGO_DB_URL": "mongodb://ignored",
            "PORT": "8080",
            "HOST": "127.0.0.1",
            "SESSIONGEN_LOG_LEVEL": "debug",
            "SESSIONGEN_CLIENT_FACTORY": "mybridge:make_client",
            "SESSIONGEN_BROWSER": "Ubuntu, Chrome, 22.04",
            "SESSIONGEN_QR_TIMEOUT": "45",
        }
    )

    assert settings.store_url == "file:///var/lib/sessiongen"
    assert settings.port == 8080
    assert settings.host == "127.0.0.1"
    assert settings.log_level == "DEBUG"
    assert settings.client_factory == "mybridge:make_client"
    assert settings.client.browser == ("Ubuntu", "Chrome", "22.04")
    assert settings.client.qr_timeout_s == 45.0


@pytest.mark.parametrize(
    "env",
    [
        {"PORT": "http"},
        {"PORT": "70000"},
        {"SESSIONGEN_BROWSER": "Chrome"},
        {"SESSIONGEN_QR_TIMEOUT": "0"},
        {"SESSIONGEN_QR_TIMEOUT": "soon"},
    ],
)
def test_invalid_values_are_config_errors(env: dict[str, str]) -> None:
    with pytest.raises(ConfigError):
        load_settings({"SESSIONGEN_STORE_URL": "memory://", **env})
