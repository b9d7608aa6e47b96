"""
Lightweight logging helpers for the attach workflow and the MCP server.

Logs are written to the path specified by the `ATTACH_DEBUG_LOG` environment
variable. If unset, the default is `<repo>/jdwp_attach.log`. Set
`ATTACH_DEBUG_LOG=0` to disable logging entirely. Nothing is printed to
stdout because the MCP stdio transport owns it.
"""

from __future__ import annotations

import os
import threading
from datetime import datetime, timezone
from pathlib import Path

_LOG_SETTING = os.environ.get("ATTACH_DEBUG_LOG")
_LOCK = threading.Lock()

if _LOG_SETTING and _LOG_SETTING.strip() == "0":

    def _write(level: str, message: str) -> None:
        """Logging disabled; no-op."""
        return

else:
    _LOG_PATH = (
        Path(_LOG_SETTING).expanduser()
        if _LOG_SETTING
        else Path(__file__).resolve().parents[1] / "jdwp_attach.log"
    )

    def _write(level: str, message: str) -> None:
        """Append a timestamped message to the debug log."""
        try:
            timestamp = (
                datetime.now(timezone.utc)
                .replace(tzinfo=None)
                .isoformat(timespec="milliseconds")
                + "Z"
            )
            with _LOCK:
                _LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
                with _LOG_PATH.open("a", encoding="utf-8") as fh:
                    fh.write(f"{timestamp} {level} {message}\n")
        except Exception:
            # Logging must never raise.
            pass


def log_debug(message: str) -> None:
    _write("DEBUG", message)


def log_warning(message: str) -> None:
    _write("WARN", message)
