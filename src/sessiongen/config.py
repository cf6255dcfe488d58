from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .constants import (
    DEFAULT_BROWSER,
    DEFAULT_COLLECTION,
    DEFAULT_DB_NAME,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_QR_TIMEOUT_S,
)
from .exceptions import ConfigError
from .protocol import ClientOptions

STORE_URL_VARS = ("SESSIONGEN_STORE_URL", "MONGO_DB_URL")


@dataclass(slots=True)
class Settings:
    store_url: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    db_name: str = DEFAULT_DB_NAME
    collection: str = DEFAULT_COLLECTION
    log_level: str = "INFO"
    log_file: str | None = None
    client_factory: str | None = None
    client: ClientOptions = field(default_factory=ClientOptions)


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if not 0 < value < 65536:
        raise ConfigError(f"{name} must be a TCP port, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _browser(env: Mapping[str, str]) -> tuple[str, str, str]:
    raw = env.get("SESSIONGEN_BROWSER")
    if not raw:
        return DEFAULT_BROWSER
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 3 or not all(parts):
        raise ConfigError("SESSIONGEN_BROWSER must be 'name,browser,version'")
    return (parts[0], parts[1], parts[2])


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Read settings from the environment.

    The durable store address is mandatory: without it nothing pairs into
    persistent storage, so this raises `ConfigError` and the process must not
    start serving.
    """

    env = os.environ if environ is None else environ
    store_url = next((env[v].strip() for v in STORE_URL_VARS if env.get(v, "").strip()), None)
    if not store_url:
        raise ConfigError(
            f"{STORE_URL_VARS[0]} (or {STORE_URL_VARS[1]}) is not set; "
            "a durable store address is required"
        )

    return Settings(
        store_url=store_url,
        host=env.get("HOST") or DEFAULT_HOST,
        port=_int(env, "PORT", DEFAULT_PORT),
        db_name=env.get("SESSIONGEN_DB_NAME") or DEFAULT_DB_NAME,
        collection=env.get("SESSIONGEN_COLLECTION") or DEFAULT_COLLECTION,
        log_level=(env.get("SESSIONGEN_LOG_LEVEL") or "INFO").upper(),
        log_file=env.get("SESSIONGEN_LOG_FILE") or None,
        client_factory=env.get("SESSIONGEN_CLIENT_FACTORY") or None,
        client=ClientOptions(
            browser=_browser(env),
            qr_timeout_s=_float(env, "SESSIONGEN_QR_TIMEOUT", DEFAULT_QR_TIMEOUT_S),
        ),
    )
