"""
MCP Server for attaching a Java debugger to dev-mode servers

IMPORTANT: This MCP server is designed to be automatically started by MCP clients
(VS Code, Claude Desktop, etc.). You do NOT need to run this manually from the
command line. The client will automatically start this server when needed.

Attach flow: `attach_debugger` picks the debug port (explicit `-DdebugPort=` /
`--libertyDebugPort=` in the start parameters, otherwise a free port) and
returns the start parameter to launch the dev-mode server with. A background
task then polls the server's `server.env` for the port the server really
uses and sends the JDWP handshake until it is accepted. Once it is, a remote
debug configuration ("<name> (Remote)") is recorded for the client to attach
with. Use `attach_status` or `attach_wait` to follow progress and
`cancel_attach` to stop waiting.

Configuration examples:
- VS Code: Add to settings.json under "mcp.servers"
- Claude Desktop: Add to claude_desktop_config.json under "mcpServers"
"""

import asyncio
import sys
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

import port_resolver
from attach_config import AttachConfig
from attach_waiter import Attached, Cancelled, TimedOut, WaitOutcome
from debug_launcher import (
    AttachTask,
    DebugSessionLauncher,
    RemoteConfiguration,
    ServerModule,
)
from debug_utils import log_debug
from handshake import probe
from port_resolver import ProjectKind, debug_start_param, explicit_debug_port
from server_env import AmbiguousServerEnvError, ServerEnvironmentLocator, read_last_port

mcp = FastMCP(
    "jdwp-attach",
    instructions=(
        "Call attach_debugger before starting the dev-mode server, start the server "
        "with the returned startParam, then poll attach_status or call attach_wait."
    ),
)

# One attach attempt per module name
_attach_tasks: Dict[str, AttachTask] = {}
_attach_errors: Dict[str, str] = {}
_remote_configurations: Dict[str, RemoteConfiguration] = {}


def _outcome_payload(outcome: WaitOutcome) -> Dict[str, Any]:
    if isinstance(outcome, Attached):
        return {"status": "attached", "port": outcome.port}
    if isinstance(outcome, TimedOut):
        return {"status": "timed-out", "lastTriedPort": outcome.last_tried_port}
    if isinstance(outcome, Cancelled):
        return {"status": "cancelled"}
    return {"status": "unknown", "outcome": repr(outcome)}


def _task_payload(name: str, attach_task: AttachTask) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"name": name, "requestedPort": attach_task.port}
    if not attach_task.done():
        payload["status"] = "pending"
        return payload
    task = attach_task.task
    if task.cancelled():
        payload["status"] = "cancelled"
        return payload
    exc = task.exception()
    if exc is not None:
        payload.update({"status": "error", "error": str(exc)})
    else:
        payload.update(_outcome_payload(task.result()))
    if name in _attach_errors:
        payload["error"] = _attach_errors[name]
    if name in _remote_configurations:
        payload["remoteConfiguration"] = _remote_configurations[name].as_dict()
    return payload


@mcp.tool()
def resolve_debug_port(start_params: str = "", project_kind: str = "maven") -> Dict[str, Any]:
    """Return the debug port a dev-mode server should be started with.

    An explicit `-DdebugPort=<n>` (maven) or `--libertyDebugPort=<n>` (gradle)
    in `start_params` wins; otherwise a free ephemeral port is allocated.
    """
    try:
        kind = ProjectKind.parse(project_kind)
    except ValueError as exc:
        return {"error": str(exc)}
    try:
        port = port_resolver.resolve_debug_port(start_params, kind)
    except OSError as exc:
        log_debug(f"resolve_debug_port: allocation failed {exc}")
        return {"error": "Unable to allocate a debug port", "exception": str(exc)}
    return {
        "port": port,
        "explicit": explicit_debug_port(start_params, kind) is not None,
        "startParam": debug_start_param(kind, port),
    }


@mcp.tool()
async def read_server_env_port(server_dir: str) -> Dict[str, Any]:
    """Report the last WLP_DEBUG_ADDRESS port recorded in a server's server.env."""
    locator = ServerEnvironmentLocator()
    try:
        descriptor = locator.observe(server_dir)
    except AmbiguousServerEnvError as exc:
        return {"error": str(exc), "serverDir": server_dir}
    if not descriptor.exists:
        return {"serverDir": server_dir, "exists": False, "port": None}
    return {
        "serverDir": server_dir,
        "exists": True,
        "path": str(descriptor.path),
        "backupExists": descriptor.backup_exists,
        "port": await read_last_port(descriptor.path),
    }


@mcp.tool()
async def probe_debug_port(port: int, host: str = "localhost") -> Dict[str, Any]:
    """Send the JDWP handshake once and report whether it was accepted."""
    return {"host": host, "port": port, "reachable": await probe(host, port)}


@mcp.tool()
async def attach_debugger(
    name: str,
    project_dir: str,
    project_kind: str = "maven",
    start_params: str = "",
    server_dir: Optional[str] = None,
    port: Optional[int] = None,
    timeout_seconds: Optional[int] = None,
) -> Dict[str, Any]:
    """Start waiting for a dev-mode server's debug agent in the background.

    **Parameters:**
    - name: Module name; the remote configuration is named "<name> (Remote)"
    - project_dir: Project directory holding the build file
    - project_kind: "maven" or "gradle"
    - start_params: Custom dev-mode start parameters, scanned for a debug port
    - server_dir: Server directory (defaults to the build's wlp/usr/servers)
    - port: Debug port to wait for; resolved from start_params when omitted
    - timeout_seconds: Overall wait budget (defaults to 180 s or ATTACH_TIMEOUT_SECONDS)

    **Return Value:**
    The port being waited for and the `startParam` to pass to the dev-mode
    command so the server listens on it.
    """
    existing = _attach_tasks.get(name)
    if existing is not None and not existing.done():
        return {"error": "Attach already in progress", "name": name, "port": existing.port}

    try:
        module = ServerModule(
            name=name,
            project_dir=project_dir,
            kind=project_kind,
            start_params=start_params,
            server_dir=server_dir,
        )
    except ValueError as exc:
        return {"error": str(exc)}

    async def record_configuration(configuration: RemoteConfiguration) -> None:
        _remote_configurations[name] = configuration

    def record_error(message: str) -> None:
        _attach_errors[name] = message

    launcher = DebugSessionLauncher(record_configuration, record_error, AttachConfig.from_env())
    if port is None:
        try:
            port = launcher.debug_port(module)
        except OSError as exc:
            log_debug(f"attach_debugger: {name} port allocation failed {exc}")
            return {"error": "Unable to allocate a debug port", "exception": str(exc)}

    _attach_errors.pop(name, None)
    _remote_configurations.pop(name, None)
    _attach_tasks[name] = launcher.start(module, port, timeout_seconds)
    log_debug(f"attach_debugger: {name} waiting on port {port} server_dir={module.server_dir}")
    return {
        "name": name,
        "status": "pending",
        "port": port,
        "startParam": debug_start_param(module.kind, port),
        "serverDir": str(module.server_dir),
    }


@mcp.tool()
def attach_status(name: str) -> Dict[str, Any]:
    """Report the state of the attach attempt for a module."""
    attach_task = _attach_tasks.get(name)
    if attach_task is None:
        return {"error": "No attach attempt for module", "name": name}
    return _task_payload(name, attach_task)


@mcp.tool()
async def attach_wait(name: str, timeout: float = 10.0) -> Dict[str, Any]:
    """Wait up to `timeout` seconds for the attach attempt to finish."""
    attach_task = _attach_tasks.get(name)
    if attach_task is None:
        return {"error": "No attach attempt for module", "name": name}
    try:
        await asyncio.wait_for(asyncio.shield(attach_task.task), timeout=timeout)
    except asyncio.TimeoutError:
        pass
    except Exception as exc:
        log_debug(f"attach_wait: {name} failed {exc!r}")
    return _task_payload(name, attach_task)


@mcp.tool()
def cancel_attach(name: str) -> Dict[str, Any]:
    """Stop waiting for a module's debug agent; no error is reported."""
    attach_task = _attach_tasks.get(name)
    if attach_task is None:
        return {"status": "no-attach", "name": name}
    if attach_task.done():
        return _task_payload(name, attach_task)
    attach_task.cancel()
    return {"status": "cancelling", "name": name}


@mcp.tool()
def list_remote_configurations() -> Dict[str, Any]:
    """Return the remote debug configurations created for attached modules."""
    return {
        "configurations": [
            configuration.as_dict() for configuration in _remote_configurations.values()
        ]
    }


def print_help():
    """Print help information about the MCP server and its tools."""
    help_text = """
MCP Server for attaching a Java debugger to dev-mode servers

IMPORTANT: This MCP server is designed to be automatically started by MCP clients
(VS Code, Claude Desktop, etc.). You do NOT need to run this manually from the
command line. The client will automatically start this server when needed.

Manual Configuration:
=====================
VS Code - Add to settings.json under "mcp.servers":
{
  "mcp.servers.jdwpAttach": {
    "command": "/path/to/your/project/.venv/bin/python",
    "args": ["src/mcp_server.py"],
    "cwd": "/path/to/your/project"
  }
}

Available MCP Tools:
====================
• resolve_debug_port(start_params: str, project_kind: str)
    Explicit debug port from the start parameters, or a free port
• read_server_env_port(server_dir: str)
    Last WLP_DEBUG_ADDRESS port recorded in server.env
• probe_debug_port(port: int, host: str)
    Send the JDWP handshake once
• attach_debugger(name, project_dir, project_kind, start_params, server_dir, port, timeout_seconds)
    Wait in the background for the server's debug agent
• attach_status(name) / attach_wait(name, timeout)
    Follow an attach attempt
• cancel_attach(name)
    Stop waiting without reporting an error
• list_remote_configurations()
    Remote debug configurations ready for the client

Environment:
============
ATTACH_TIMEOUT_SECONDS  overrides the 180 second wait (test setups)
ATTACH_DEBUG_LOG        log file path, or 0 to disable logging

Example Session:
================
• attach_debugger({"name": "guide-app", "project_dir": "/work/guide-app"})
• mvn liberty:dev <startParam>
• attach_wait({"name": "guide-app", "timeout": 60})
"""
    print(help_text)


if __name__ == "__main__":
    # Check for help request before creating ArgumentParser
    if "--help" in sys.argv or "-h" in sys.argv:
        print_help()
        sys.exit(0)

    # If no --help, start the MCP server normally
    mcp.run()
