"""
Client configuration.

All tunables are collected into a single immutable ``ClientConfig``
which is passed explicitly to the clients at construction time.  Values
are normally read from the environment via ``ClientConfig.from_env()``;
tests construct the dataclass directly.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class ClientConfig:
    api_url: str = "http://localhost"
    api_port: int = 3000
    global_prefix: str = "api"
    socket_url: str = "ws://localhost:3000/chat"
    refresh_path: str = "/auth/refresh-token"
    sign_in_path: str = "/auth"
    # Prefix for the Authorization header value, e.g. "Bearer".  Empty
    # means the raw token is sent.
    auth_scheme: str = ""
    session_store_path: str = ""
    socket_connect_attempts: int = 3
    socket_retry_wait: float = 1.0
    log_level: str = "INFO"
    metrics_port: int = 0

    @property
    def base_url(self) -> str:
        """Base endpoint all HTTP requests are relative to."""
        prefix = self.global_prefix.strip("/")
        return f"{self.api_url.rstrip('/')}:{self.api_port}/{prefix}"

    def configure_logging(self) -> None:
        logging.basicConfig(level=self.log_level)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """Build a configuration from environment variables.

        Unset variables fall back to the dataclass defaults.
        """
        env = os.environ if environ is None else environ
        return cls(
            api_url=env.get("API_URL", cls.api_url),
            api_port=int(env.get("API_PORT", str(cls.api_port))),
            global_prefix=env.get("GLOBAL_PREFIX", cls.global_prefix),
            socket_url=env.get("SOCKET_URL", cls.socket_url),
            refresh_path=env.get("AUTH_REFRESH_PATH", cls.refresh_path),
            sign_in_path=env.get("SIGN_IN_PATH", cls.sign_in_path),
            auth_scheme=env.get("AUTH_SCHEME", cls.auth_scheme),
            session_store_path=env.get("SESSION_STORE_PATH", cls.session_store_path),
            socket_connect_attempts=int(
                env.get("SOCKET_CONNECT_ATTEMPTS", str(cls.socket_connect_attempts))
            ),
            socket_retry_wait=float(env.get("SOCKET_RETRY_WAIT", str(cls.socket_retry_wait))),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
            metrics_port=int(env.get("PROMETHEUS_PORT", str(cls.metrics_port))),
        )
