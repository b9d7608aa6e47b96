"""Wait for a dev-mode server's JDWP agent and work out which port it uses.

The port the server was asked to use is not necessarily the one it ends up
on: if the requested port was taken the server picks another and records it
in server.env. The waiter polls that file and probes the tracked port until
the handshake goes through, the attempt is cancelled, or the time budget is
spent.

A server.env left over from a previous run must not be trusted, so when the
file already exists at the first poll the waiter holds off reading it until
server.env.bak appears (written when the current run rewrites server.env).
When there was no server.env at the first poll, any server.env that shows up
belongs to this run and is read straight away. If a restarted server dies
before writing the backup file, the stale port is never replaced and the wait
ends in a timeout.
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from attach_config import AttachConfig
from debug_utils import log_debug
from handshake import probe
from server_env import PathLike, ServerEnvironmentLocator, read_last_port


@dataclass(frozen=True)
class DebugTarget:
    host: str
    port: int

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValueError(f"debug port out of range: {self.port}")


@dataclass(frozen=True)
class Attached:
    port: int


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class TimedOut:
    last_tried_port: int


WaitOutcome = Union[Attached, Cancelled, TimedOut]

Prober = Callable[[str, int], Awaitable[bool]]
PortReader = Callable[[PathLike], Awaitable[Optional[int]]]


class AttachWaiter:
    """Polls one server until its debug agent answers.

    Each instance tracks a single attach attempt; nothing is shared between
    instances.
    """

    def __init__(
        self,
        config: Optional[AttachConfig] = None,
        locator: Optional[ServerEnvironmentLocator] = None,
        reader: Optional[PortReader] = None,
        prober: Optional[Prober] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or AttachConfig.from_env()
        self.locator = locator or ServerEnvironmentLocator(
            self.config.descriptor_name, self.config.backup_suffix
        )
        self._reader = reader or functools.partial(
            read_last_port, key=self.config.port_key
        )
        self._prober = prober or functools.partial(
            probe,
            connect_timeout=self.config.connect_timeout,
            token=self.config.handshake_token,
        )
        self._sleep = sleep

    def iteration_budget(self, timeout_seconds: int) -> int:
        return max(1, int(timeout_seconds // self.config.poll_interval))

    async def wait(
        self,
        cancel: Optional[asyncio.Event],
        host: str,
        initial_port: int,
        server_dir_hint: Optional[PathLike],
        timeout_seconds: Optional[int] = None,
    ) -> WaitOutcome:
        if timeout_seconds is None:
            timeout_seconds = self.config.timeout_seconds
        target = DebugTarget(host, initial_port)
        budget = self.iteration_budget(timeout_seconds)
        interval = self.config.poll_interval
        clean_start: Optional[bool] = None
        trusted = False
        elapsed = 0

        log_debug(
            f"attach_waiter.wait: waiting for {host}:{initial_port} "
            f"server_dir={server_dir_hint} timeout={timeout_seconds}s polls={budget}"
        )
        for attempt in range(budget):
            if cancel is not None and cancel.is_set():
                log_debug(f"attach_waiter.wait: cancelled after {elapsed}s")
                return Cancelled()

            try:
                descriptor = self.locator.observe(server_dir_hint)
                if clean_start is None:
                    clean_start = not descriptor.exists
                    log_debug(
                        f"attach_waiter.wait: clean_start={clean_start} "
                        f"descriptor={descriptor.path}"
                    )
                if descriptor.exists and not trusted:
                    trusted = clean_start or descriptor.backup_exists
                    if trusted:
                        log_debug(f"attach_waiter.wait: trusting {descriptor.path}")

                if trusted and descriptor.exists:
                    env_port = await self._reader(descriptor.path)
                    if env_port is not None and env_port != target.port:
                        log_debug(
                            f"attach_waiter.wait: server.env reports port {env_port}, "
                            f"was {target.port}"
                        )
                        target = DebugTarget(host, env_port)

                if await self._prober(target.host, target.port):
                    log_debug(
                        f"attach_waiter.wait: attached to {target.host}:{target.port} "
                        f"on poll {attempt + 1}"
                    )
                    return Attached(target.port)
            except Exception as exc:
                log_debug(f"attach_waiter.wait: poll {attempt + 1} failed: {exc!r}")

            await self._sleep(interval)
            elapsed += interval

        if cancel is not None and cancel.is_set():
            return Cancelled()
        log_debug(
            f"attach_waiter.wait: gave up on {target.host}:{target.port} after {elapsed}s"
        )
        return TimedOut(target.port)
