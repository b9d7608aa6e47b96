"""Pick the debug port a dev-mode server should be started with."""

from __future__ import annotations

import re
import socket
from enum import Enum
from typing import Optional

from debug_utils import log_debug, log_warning


class ProjectKind(str, Enum):
    MAVEN = "maven"
    GRADLE = "gradle"

    @property
    def debug_flag(self) -> str:
        return _DEBUG_FLAGS[self]

    @classmethod
    def parse(cls, value: "str | ProjectKind") -> "ProjectKind":
        if isinstance(value, ProjectKind):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unexpected project build type: {value!r}; expected 'maven' or 'gradle'"
            ) from None


_DEBUG_FLAGS = {
    ProjectKind.MAVEN: "-DdebugPort=",
    ProjectKind.GRADLE: "--libertyDebugPort=",
}

# Capture the token following the debug flag in the custom start parameters
_DEBUG_PORT_PATTERNS = {
    kind: re.compile("(?<=" + re.escape(flag) + r")(\S+)")
    for kind, flag in _DEBUG_FLAGS.items()
}


def allocate_ephemeral_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for a free TCP port. OSError propagates to the caller."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def explicit_debug_port(start_params: Optional[str], kind: ProjectKind) -> Optional[int]:
    """Return the first explicitly requested debug port, if it parses."""
    if not start_params:
        return None
    match = _DEBUG_PORT_PATTERNS[kind].search(start_params)
    if match is None:
        return None
    # Only the first occurrence counts, even if the flag is repeated.
    token = match.group(1)
    try:
        return int(token)
    except ValueError:
        log_warning(
            f"port_resolver: unable to parse debug port from user configured params: {token}"
        )
        return None


def resolve_debug_port(start_params: Optional[str], kind: "ProjectKind | str") -> int:
    """Debug port from the start parameters, else a free ephemeral port."""
    kind = ProjectKind.parse(kind)
    port = explicit_debug_port(start_params, kind)
    if port is not None:
        log_debug(f"port_resolver: using requested debug port {port} ({kind.value})")
        return port
    port = allocate_ephemeral_port()
    log_debug(f"port_resolver: allocated ephemeral debug port {port}")
    return port


def debug_start_param(kind: "ProjectKind | str", port: int) -> str:
    """Render the flag that asks the dev-mode server to listen on `port`."""
    return f"{ProjectKind.parse(kind).debug_flag}{port}"
