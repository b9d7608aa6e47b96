"""Check whether a JDWP agent is listening by sending the handshake token."""

from __future__ import annotations

import asyncio

from attach_config import DEFAULT_CONNECT_TIMEOUT, HANDSHAKE_TOKEN
from debug_utils import log_debug


async def probe(
    host: str,
    port: int,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    token: bytes = HANDSHAKE_TOKEN,
) -> bool:
    """Connect to host:port and write the handshake token.

    Returns True once the token is written; the reply is left to the debugger
    session that attaches afterwards. Every failure returns False.
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=connect_timeout
        )
    except ConnectionRefusedError:
        log_debug(f"handshake.probe: connection refused at {host}:{port}")
        return False
    except asyncio.TimeoutError:
        log_debug(f"handshake.probe: connect to {host}:{port} timed out")
        return False
    except OSError as exc:
        log_debug(f"handshake.probe: cannot connect to {host}:{port} error={exc}")
        return False

    try:
        writer.write(token)
        await writer.drain()
        log_debug(f"handshake.probe: handshake sent to {host}:{port}")
        return True
    except OSError as exc:
        log_debug(f"handshake.probe: write to {host}:{port} failed error={exc}")
        return False
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
