"""Settings shared by the attach waiter, the launcher and the MCP tools."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from debug_utils import log_warning

TIMEOUT_ENV_VAR = "ATTACH_TIMEOUT_SECONDS"

DEFAULT_HOST = "localhost"
DEFAULT_POLL_INTERVAL = 3
DEFAULT_TIMEOUT_SECONDS = 180
DEFAULT_CONNECT_TIMEOUT = 2.0

SERVER_ENV_NAME = "server.env"
BACKUP_SUFFIX = ".bak"
# Debug address key written by the server into server.env
DEBUG_ADDRESS_KEY = "WLP_DEBUG_ADDRESS"
HANDSHAKE_TOKEN = b"JDWP-Handshake"


@dataclass(frozen=True)
class AttachConfig:
    host: str = DEFAULT_HOST
    poll_interval: int = DEFAULT_POLL_INTERVAL
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    descriptor_name: str = SERVER_ENV_NAME
    backup_suffix: str = BACKUP_SUFFIX
    port_key: str = DEBUG_ADDRESS_KEY
    handshake_token: bytes = HANDSHAKE_TOKEN

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides
    ) -> "AttachConfig":
        """Build a config, honouring the timeout override used by test setups.

        Malformed or non-positive values of `ATTACH_TIMEOUT_SECONDS` are
        ignored with a warning and the default timeout is kept.
        """
        env = os.environ if environ is None else environ
        config = cls(**overrides)
        raw = env.get(TIMEOUT_ENV_VAR)
        if raw is None or not raw.strip():
            return config
        try:
            timeout = int(raw.strip())
        except ValueError:
            log_warning(f"attach_config: ignoring malformed {TIMEOUT_ENV_VAR}={raw!r}")
            return config
        if timeout <= 0:
            log_warning(f"attach_config: ignoring non-positive {TIMEOUT_ENV_VAR}={raw!r}")
            return config
        return replace(config, timeout_seconds=timeout)
