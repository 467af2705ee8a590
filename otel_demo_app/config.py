from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

PROTOCOLS = ("http/protobuf", "grpc")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Settings:
    otlp_endpoint: str
    otlp_protocol: str = "http/protobuf"
    service_name: str = "demo-app"
    metric_export_interval: float = 3.0
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the process environment.

        OTLP_ENDPOINT has no default: the service is useless without a collector.
        """
        env = os.environ if environ is None else environ

        endpoint = env.get("OTLP_ENDPOINT", "").strip()
        if not endpoint:
            raise ConfigError("OTLP_ENDPOINT environment variable is required")

        protocol = env.get("OTLP_PROTOCOL", "http/protobuf").strip().lower()
        if protocol not in PROTOCOLS:
            raise ConfigError(
                "OTLP_PROTOCOL must be one of %s, got %r" % (", ".join(PROTOCOLS), protocol)
            )

        return cls(
            otlp_endpoint=endpoint,
            otlp_protocol=protocol,
            service_name=env.get("OTEL_SERVICE_NAME", "demo-app"),
            metric_export_interval=_number(env, "METRIC_EXPORT_INTERVAL", "3", float),
            host=env.get("HOST", "0.0.0.0"),
            port=_number(env, "PORT", "8080", int, maximum=65535),
            log_level=_log_level(env.get("LOG_LEVEL", "INFO")),
        )


def _number(env, key, default, kind, maximum=None):
    raw = env.get(key, default)
    try:
        value = kind(raw)
    except ValueError:
        raise ConfigError("%s must be a number, got %r" % (key, raw)) from None
    if not math.isfinite(value) or value <= 0:
        raise ConfigError("%s must be positive, got %r" % (key, raw))
    if maximum is not None and value > maximum:
        raise ConfigError("%s must be at most %d, got %r" % (key, maximum, raw))
    return value


def _log_level(raw):
    level = raw.strip().upper()
    # getLevelName maps known names to ints and anything else to "Level %s"
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError("LOG_LEVEL must be a logging level name, got %r" % raw)
    return level
