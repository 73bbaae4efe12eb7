"""Client configuration for pyhab."""

from __future__ import annotations

import dataclasses
import os
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from pyhab._constants import (
    DEFAULT_TOPIC_PREFIX,
    MONITOR_INTERVAL,
    RECONNECT_DELAY,
    REQUEST_TIMEOUT,
    STREAM_RETRY_INTERVAL,
    VALUE_CACHE_TTL,
)
from pyhab.exceptions import HabConfigError


def normalize_base_url(hostname: str, port: int | str | None = None) -> str:
    """Build the REST base URL from a bare hostname or a full URL.

    A hostname without scheme is assumed to be plain ``http``. An explicit
    *port* replaces whatever port the hostname carried.
    """
    value = hostname.strip().rstrip("/")
    if not value:
        raise HabConfigError("hostname must be non-empty")
    if not (value.startswith("http://") or value.startswith("https://")):
        value = f"http://{value}"

    parts = urlsplit(value)
    if not parts.hostname:
        raise HabConfigError(f"Invalid hostname: {hostname!r}")
    netloc = parts.netloc
    if port is not None:
        try:
            port_number = int(port)
        except (TypeError, ValueError) as exc:
            raise HabConfigError(f"Invalid port: {port!r}") from exc
        host = parts.hostname
        if ":" in host:
            host = f"[{host}]"
        netloc = f"{host}:{port_number}"
    return urlunsplit((parts.scheme, netloc, parts.path.rstrip("/"), "", ""))


@dataclasses.dataclass(frozen=True)
class HabConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        REST API base URL, e.g. ``"http://openhab.local:8080"``.
    value_cache_ttl : float
        Seconds a cached item state stays valid. Defaults to 30 minutes.
    monitor_interval : float
        Seconds between sweeps of expired item states. Defaults to
        10 minutes.
    reconnect_delay : float
        Fixed delay in seconds before a closed change stream is reopened.
    stream_retry_interval : float
        Delay in seconds before the stream reader retries after a
        transient connection error. A server ``retry:`` field overrides it.
    request_timeout : float
        Total timeout in seconds for REST requests.
    topic_prefix : str
        Event bus namespace, ``"smarthome"`` for openHAB 2 and
        ``"openhab"`` for openHAB 3 and later.
    """

    base_url: str
    value_cache_ttl: float = VALUE_CACHE_TTL
    monitor_interval: float = MONITOR_INTERVAL
    reconnect_delay: float = RECONNECT_DELAY
    stream_retry_interval: float = STREAM_RETRY_INTERVAL
    request_timeout: float = REQUEST_TIMEOUT
    topic_prefix: str = DEFAULT_TOPIC_PREFIX

    def __post_init__(self) -> None:
        if not self.base_url:
            raise HabConfigError("base_url must be non-empty")
        for name in ("value_cache_ttl", "monitor_interval", "request_timeout"):
            if getattr(self, name) <= 0:
                raise HabConfigError(f"{name} must be positive")
        for name in ("reconnect_delay", "stream_retry_interval"):
            if getattr(self, name) < 0:
                raise HabConfigError(f"{name} must not be negative")
        if not self.topic_prefix.strip("/"):
            raise HabConfigError("topic_prefix must be non-empty")

    @classmethod
    def from_host(cls, hostname: str, port: int | str | None = None, **overrides: Any) -> HabConfig:
        """Create configuration from a hostname (with or without scheme) and port."""
        return cls(base_url=normalize_base_url(hostname, port), **overrides)

    @classmethod
    def from_env(cls, **overrides: Any) -> HabConfig:
        """Create configuration from environment variables.

        Reads ``PYHAB_HOST`` and ``PYHAB_PORT`` (or a full ``PYHAB_BASE_URL``)
        plus the optional numeric ``PYHAB_*`` tuning variables. Explicit
        keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        if "base_url" not in overrides:
            base_url = env.get("PYHAB_BASE_URL")
            host = env.get("PYHAB_HOST")
            if base_url:
                config_kwargs["base_url"] = normalize_base_url(base_url)
            elif host:
                config_kwargs["base_url"] = normalize_base_url(host, env.get("PYHAB_PORT"))
            else:
                raise HabConfigError("Set PYHAB_BASE_URL or PYHAB_HOST, or pass base_url")

        _ENV_FLOAT_MAP = {
            "PYHAB_VALUE_CACHE_TTL": "value_cache_ttl",
            "PYHAB_MONITOR_INTERVAL": "monitor_interval",
            "PYHAB_RECONNECT_DELAY": "reconnect_delay",
            "PYHAB_STREAM_RETRY_INTERVAL": "stream_retry_interval",
            "PYHAB_REQUEST_TIMEOUT": "request_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                try:
                    config_kwargs[field_name] = float(val)
                except ValueError as exc:
                    raise HabConfigError(f"{env_key} must be a number, got {val!r}") from exc

        prefix = env.get("PYHAB_TOPIC_PREFIX")
        if prefix is not None and "topic_prefix" not in overrides:
            config_kwargs["topic_prefix"] = prefix

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
