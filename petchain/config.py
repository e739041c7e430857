"""Configuration loading and validation for the sync client."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import voluptuous as vol
import yaml

from .const import (
    CONF_BASE_URL,
    CONF_STORE_PATH,
    CONF_SYNC_INTERVAL,
    CONF_TIMEOUT,
    DEFAULT_BASE_URL,
    DEFAULT_STORE_PATH,
    DEFAULT_SYNC_INTERVAL,
    DEFAULT_TIMEOUT,
    ENV_BASE_URL,
    MIN_SYNC_INTERVAL,
)


def _url(value: Any) -> str:
    text = str(value or "").strip().rstrip("/")
    if not text.startswith(("http://", "https://")):
        raise vol.Invalid(f"expected an http(s) URL, got {value!r}")
    return text


CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_BASE_URL): _url,
        vol.Optional(CONF_STORE_PATH, default=DEFAULT_STORE_PATH): vol.All(vol.Coerce(str), vol.Length(min=1)),
        vol.Optional(CONF_TIMEOUT, default=DEFAULT_TIMEOUT): vol.All(vol.Coerce(float), vol.Range(min=1)),
        vol.Optional(CONF_SYNC_INTERVAL, default=DEFAULT_SYNC_INTERVAL): vol.All(
            vol.Coerce(int), vol.Range(min=MIN_SYNC_INTERVAL)
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


class ConfigError(ValueError):
    """Raised when configuration fails validation."""


@dataclass(slots=True, frozen=True)
class SyncConfig:
    base_url: str = DEFAULT_BASE_URL
    store_path: str = DEFAULT_STORE_PATH
    timeout: float = DEFAULT_TIMEOUT
    sync_interval: int = DEFAULT_SYNC_INTERVAL

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None = None, *, env: Mapping[str, str] | None = None) -> SyncConfig:
        """Validate ``options``; the base URL falls back to the environment, then the default."""

        env = os.environ if env is None else env
        try:
            data = CONFIG_SCHEMA(dict(options or {}))
        except vol.Invalid as err:
            raise ConfigError(f"invalid sync configuration: {err}") from err
        base_url = data.get(CONF_BASE_URL)
        if not base_url:
            env_url = env.get(ENV_BASE_URL)
            try:
                base_url = _url(env_url) if env_url else DEFAULT_BASE_URL
            except vol.Invalid as err:
                raise ConfigError(f"invalid {ENV_BASE_URL}: {err}") from err
        return cls(
            base_url=base_url,
            store_path=data[CONF_STORE_PATH],
            timeout=data[CONF_TIMEOUT],
            sync_interval=data[CONF_SYNC_INTERVAL],
        )

    def to_options(self) -> dict[str, Any]:
        return {
            CONF_BASE_URL: self.base_url,
            CONF_STORE_PATH: self.store_path,
            CONF_TIMEOUT: self.timeout,
            CONF_SYNC_INTERVAL: self.sync_interval,
        }


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> SyncConfig:
    """Load a YAML config file and apply ``overrides`` (``None`` values are ignored)."""

    options: dict[str, Any] = {}
    if path is not None:
        try:
            with open(path, encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
        except (OSError, yaml.YAMLError) as err:
            raise ConfigError(f"unable to read config {path}: {err}") from err
        if not isinstance(loaded, Mapping):
            raise ConfigError(f"config {path} must contain a mapping")
        options.update(loaded)
    for key, value in (overrides or {}).items():
        if value is not None:
            options[key] = value
    return SyncConfig.from_options(options, env=env)


__all__ = ["CONFIG_SCHEMA", "ConfigError", "SyncConfig", "load_config"]
