"""Locate and read the `server.env` file a dev-mode server writes at startup.

The server records the debug port it actually listens on under
`WLP_DEBUG_ADDRESS`. If the requested port was taken, the server picks another
one and rewrites the file, so the last entry is the authoritative one. A
sibling `server.env.bak` appears once the file has been rewritten during the
current run.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import aiofiles

from attach_config import BACKUP_SUFFIX, DEBUG_ADDRESS_KEY, SERVER_ENV_NAME
from debug_utils import log_debug
from port_resolver import ProjectKind

PathLike = Union[str, Path]


class AmbiguousServerEnvError(RuntimeError):
    """More than one server.env was found under a servers directory."""


@dataclass(frozen=True)
class EnvironmentDescriptor:
    """What one poll saw of server.env; never reused across polls."""

    path: Optional[Path]
    exists: bool
    backup_exists: bool


def default_servers_root(project_dir: PathLike, kind: "ProjectKind | str") -> Path:
    """Where the build plugins install the server for a project."""
    kind = ProjectKind.parse(kind)
    if kind is ProjectKind.MAVEN:
        return Path(project_dir, "target", "liberty", "wlp", "usr", "servers")
    return Path(project_dir, "build", "wlp", "usr", "servers")


class ServerEnvironmentLocator:
    def __init__(
        self,
        descriptor_name: str = SERVER_ENV_NAME,
        backup_suffix: str = BACKUP_SUFFIX,
    ):
        self.descriptor_name = descriptor_name
        self.backup_suffix = backup_suffix

    def locate(self, server_dir_hint: Optional[PathLike]) -> Optional[Path]:
        """Return the descriptor path, or None while it does not exist yet.

        The hint may be the server directory itself or a servers root holding
        exactly one server directory.
        """
        if not server_dir_hint or not str(server_dir_hint).strip():
            return None
        base = Path(server_dir_hint).expanduser()
        if not base.is_dir():
            log_debug(f"server_env.locate: directory {base} does not exist yet")
            return None

        direct = base / self.descriptor_name
        if direct.is_file():
            return direct

        wanted = self.descriptor_name.lower()
        matches = [
            candidate
            for child in base.iterdir()
            if child.is_dir()
            for candidate in child.iterdir()
            if candidate.is_file() and candidate.name.lower() == wanted
        ]
        if not matches:
            log_debug(f"server_env.locate: no {self.descriptor_name} under {base}")
            return None
        if len(matches) > 1:
            raise AmbiguousServerEnvError(
                f"More than one {self.descriptor_name} file was found under {base}. "
                f"Unable to determine the file to use: {sorted(str(m) for m in matches)}"
            )
        return matches[0]

    def backup_path(self, descriptor_path: PathLike) -> Path:
        descriptor_path = Path(descriptor_path)
        return descriptor_path.with_name(descriptor_path.name + self.backup_suffix)

    def has_backup_marker(self, descriptor_path: PathLike) -> bool:
        """True if the sibling backup file exists; its content is irrelevant."""
        return self.backup_path(descriptor_path).exists()

    def observe(self, server_dir_hint: Optional[PathLike]) -> EnvironmentDescriptor:
        path = self.locate(server_dir_hint)
        if path is None:
            return EnvironmentDescriptor(path=None, exists=False, backup_exists=False)
        return EnvironmentDescriptor(
            path=path, exists=True, backup_exists=self.has_backup_marker(path)
        )


def parse_port_entry(line: str, key: str = DEBUG_ADDRESS_KEY) -> Optional[int]:
    """Port from a `KEY=VALUE` line if the key matches, else None."""
    name, sep, value = line.partition("=")
    if not sep or name.strip() != key:
        return None
    try:
        port = int(value.strip())
    except ValueError:
        return None
    if not 1 <= port <= 65535:
        return None
    return port


async def read_last_port(
    descriptor_path: Optional[PathLike], key: str = DEBUG_ADDRESS_KEY
) -> Optional[int]:
    """Return the port of the last `key` entry, or None if not known yet."""
    if descriptor_path is None:
        return None
    last_entry: Optional[str] = None
    try:
        async with aiofiles.open(
            descriptor_path, mode="r", encoding="utf-8", errors="replace"
        ) as fh:
            async for line in fh:
                name, sep, _ = line.partition("=")
                if sep and name.strip() == key:
                    last_entry = line
    except OSError as exc:
        log_debug(f"server_env.read_last_port: cannot read {descriptor_path}: {exc}")
        return None
    if last_entry is None:
        log_debug(f"server_env.read_last_port: no {key} entry in {descriptor_path}")
        return None
    port = parse_port_entry(last_entry, key)
    if port is None:
        log_debug(f"server_env.read_last_port: unparsable entry {last_entry.strip()!r}")
    return port
