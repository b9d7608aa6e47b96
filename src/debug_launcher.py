"""Hand a confirmed debug port to the remote-debug attach mechanism.

The launcher resolves the port a dev-mode server should be started with,
waits in the background for that server's JDWP agent, and only then creates
the remote debug configuration and passes it to the attach handler.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from attach_config import AttachConfig
from attach_waiter import (
    Attached,
    AttachWaiter,
    Cancelled,
    DebugTarget,
    TimedOut,
    WaitOutcome,
)
from debug_utils import log_debug
from port_resolver import ProjectKind, resolve_debug_port
from server_env import default_servers_root


@dataclass
class ServerModule:
    """A project whose dev-mode server the debugger should attach to."""

    name: str
    project_dir: Union[str, Path]
    kind: ProjectKind
    start_params: str = ""
    server_dir: Optional[Union[str, Path]] = None

    def __post_init__(self):
        self.kind = ProjectKind.parse(self.kind)
        if self.server_dir is None:
            self.server_dir = default_servers_root(self.project_dir, self.kind)


@dataclass(frozen=True)
class RemoteConfiguration:
    name: str
    host: str
    port: int

    def as_dict(self) -> dict:
        return {"name": self.name, "host": self.host, "port": self.port}


AttachHandler = Callable[[RemoteConfiguration], Union[None, Awaitable[None]]]
ErrorReporter = Callable[[str], Any]


def connect_error_message(host: str, port: int) -> str:
    return f"Cannot connect debugger to host: {host} port: {port}"


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class AttachTask:
    """A background attach attempt."""

    module: ServerModule
    port: int
    task: "asyncio.Task[WaitOutcome]"
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    def done(self) -> bool:
        return self.task.done()

    async def result(self) -> WaitOutcome:
        return await self.task


class DebugSessionLauncher:
    def __init__(
        self,
        attach_handler: AttachHandler,
        error_reporter: Optional[ErrorReporter] = None,
        config: Optional[AttachConfig] = None,
        waiter_factory: Optional[Callable[[AttachConfig], AttachWaiter]] = None,
    ):
        self.attach_handler = attach_handler
        self.error_reporter = error_reporter
        self.config = config or AttachConfig.from_env()
        self._waiter_factory = waiter_factory or AttachWaiter

    def debug_port(self, module: ServerModule) -> int:
        """Port to start the server with. OSError propagates if none is free."""
        return resolve_debug_port(module.start_params, module.kind)

    async def attach(
        self,
        module: ServerModule,
        port: int,
        cancel: Optional[asyncio.Event] = None,
        timeout_seconds: Optional[int] = None,
    ) -> WaitOutcome:
        host = self.config.host
        waiter = self._waiter_factory(self.config)
        try:
            outcome = await waiter.wait(
                cancel, host, port, module.server_dir, timeout_seconds
            )
        except Exception as exc:
            log_debug(f"debug_launcher.attach: {module.name} wait failed: {exc!r}")
            await self._report(connect_error_message(host, port))
            raise

        if isinstance(outcome, Attached):
            target = DebugTarget(host, outcome.port)
            configuration = RemoteConfiguration(
                f"{module.name} (Remote)", target.host, target.port
            )
            log_debug(
                f"debug_launcher.attach: {module.name}: attaching debugger to port {target.port}"
            )
            try:
                await _maybe_await(self.attach_handler(configuration))
            except Exception as exc:
                log_debug(
                    f"debug_launcher.attach: {module.name}: attach handler failed: {exc!r}"
                )
                await self._report(connect_error_message(host, outcome.port))
                raise
        elif isinstance(outcome, TimedOut):
            await self._report(connect_error_message(host, outcome.last_tried_port))
        elif isinstance(outcome, Cancelled):
            # User-initiated; nothing to report.
            log_debug(f"debug_launcher.attach: {module.name}: attach cancelled")
        return outcome

    def start(
        self,
        module: ServerModule,
        port: int,
        timeout_seconds: Optional[int] = None,
    ) -> AttachTask:
        """Run `attach` as a background task with its own cancel event."""
        cancel_event = asyncio.Event()
        task = asyncio.create_task(
            self.attach(module, port, cancel_event, timeout_seconds),
            name=f"attach-{module.name}",
        )
        return AttachTask(module=module, port=port, task=task, cancel_event=cancel_event)

    async def _report(self, message: str) -> None:
        log_debug(f"debug_launcher: {message}")
        if self.error_reporter is not None:
            await _maybe_await(self.error_reporter(message))
