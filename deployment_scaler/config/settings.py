"""
Settings — Runtime configuration from environment variables.

## Environment Variables

- SERVER_HOST, SERVER_PORT: bind address (default 0.0.0.0:8443)
- STORE_BACKEND: kubernetes | memory (default: kubernetes)
- KUBECONFIG: kubeconfig path when not running in-cluster
- RESYNC_PERIOD_SECONDS: periodic relist interval (default: 600)
- SYNC_TIMEOUT_SECONDS: initial sync window before giving up (default: 30)
- WATCH_TIMEOUT_SECONDS: server-side timeout per watch request (default: 300)
- WRITE_TIMEOUT_SECONDS: scale write deadline (default: 10)
- SHUTDOWN_GRACE_SECONDS: in-flight drain window on shutdown (default: 5)
- TLS_ENABLED: serve HTTPS (default: false)
- TLS_CERT_FILE, TLS_KEY_FILE, TLS_CA_FILE: certificate paths; a CA file
  turns on mandatory client certificates

## Usage

    settings = ScalerSettings.from_env()
    problems = settings.validate()
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..validation import ConfigurationError

logger = logging.getLogger(__name__)

STORE_BACKENDS = ("kubernetes", "memory")


def _env_bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    value = env.get(key)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _env_number(env: Mapping[str, str], key: str, default: float, cast=float):
    value = env.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return cast(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {value!r}")


@dataclass
class ScalerSettings:
    """Everything the process needs to start."""

    host: str = "0.0.0.0"
    port: int = 8443
    store_backend: str = "kubernetes"
    kubeconfig: Optional[str] = None

    resync_period_seconds: float = 600
    sync_timeout_seconds: float = 30
    watch_timeout_seconds: int = 300
    write_timeout_seconds: float = 10
    shutdown_grace_seconds: float = 5

    tls_enabled: bool = False
    tls_cert_file: str = "certs/server-cert.pem"
    tls_key_file: str = "certs/server-key.pem"
    tls_ca_file: Optional[str] = "certs/ca-cert.pem"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ScalerSettings":
        """Build settings from ``env`` (defaults to os.environ)."""
        env = os.environ if env is None else env
        defaults = cls()

        return cls(
            host=env.get("SERVER_HOST") or defaults.host,
            port=_env_number(env, "SERVER_PORT", defaults.port, int),
            store_backend=(env.get("STORE_BACKEND") or defaults.store_backend).lower(),
            kubeconfig=env.get("KUBECONFIG") or None,
            resync_period_seconds=_env_number(env, "RESYNC_PERIOD_SECONDS", defaults.resync_period_seconds),
            sync_timeout_seconds=_env_number(env, "SYNC_TIMEOUT_SECONDS", defaults.sync_timeout_seconds),
            watch_timeout_seconds=_env_number(env, "WATCH_TIMEOUT_SECONDS", defaults.watch_timeout_seconds, int),
            write_timeout_seconds=_env_number(env, "WRITE_TIMEOUT_SECONDS", defaults.write_timeout_seconds),
            shutdown_grace_seconds=_env_number(env, "SHUTDOWN_GRACE_SECONDS", defaults.shutdown_grace_seconds),
            tls_enabled=_env_bool(env, "TLS_ENABLED", defaults.tls_enabled),
            tls_cert_file=env.get("TLS_CERT_FILE") or defaults.tls_cert_file,
            tls_key_file=env.get("TLS_KEY_FILE") or defaults.tls_key_file,
            tls_ca_file=env.get("TLS_CA_FILE", defaults.tls_ca_file) or None,
        )

    def validate(self) -> List[str]:
        """Return a list of human-readable problems; empty means usable."""
        problems = []

        if not 0 < self.port < 65536:
            problems.append(f"SERVER_PORT must be between 1 and 65535, got {self.port}")
        if self.store_backend not in STORE_BACKENDS:
            problems.append(
                f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}, got {self.store_backend!r}"
            )

        for name in ("sync_timeout_seconds", "watch_timeout_seconds", "write_timeout_seconds"):
            if getattr(self, name) <= 0:
                problems.append(f"{name.upper()} must be positive")
        if self.resync_period_seconds < 0:
            problems.append("RESYNC_PERIOD_SECONDS must not be negative (0 disables resync)")
        if self.shutdown_grace_seconds < 0:
            problems.append("SHUTDOWN_GRACE_SECONDS must not be negative")

        if self.tls_enabled:
            for label, path in (
                ("TLS_CERT_FILE", self.tls_cert_file),
                ("TLS_KEY_FILE", self.tls_key_file),
                ("TLS_CA_FILE", self.tls_ca_file),
            ):
                if path and not Path(path).is_file():
                    problems.append(f"{label} not found: {path}")

        return problems

    def require_valid(self) -> None:
        """Raise ConfigurationError listing every problem."""
        problems = self.validate()
        if problems:
            raise ConfigurationError("; ".join(problems))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
