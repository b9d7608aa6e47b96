"""
Stand-in for a dev-mode server with a JDWP agent, for trying out the attach flow.

On start it behaves like the real server: it listens on the requested debug
port (or on a free one if that port is taken), backs up any existing
server.env to server.env.bak, and appends its WLP_DEBUG_ADDRESS. Incoming
connections get the JDWP handshake echoed back.

    python examples/dev_server_stub/stub_server.py /tmp/servers/defaultServer 7777 --delay 5
"""

from __future__ import annotations

import argparse
import asyncio
import shutil
from pathlib import Path
from typing import List, Optional

HANDSHAKE = b"JDWP-Handshake"


class StubDevServer:
    def __init__(
        self,
        server_dir: Path,
        requested_port: int,
        host: str = "127.0.0.1",
        write_backup: bool = True,
    ):
        self.server_dir = Path(server_dir)
        self.requested_port = requested_port
        self.host = host
        self.write_backup = write_backup
        self.port: Optional[int] = None
        self.handshakes: List[bytes] = []
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def env_path(self) -> Path:
        return self.server_dir / "server.env"

    async def start(self) -> int:
        try:
            self._server = await asyncio.start_server(
                self._handle, self.host, self.requested_port
            )
        except OSError:
            # Requested port taken; pick another like dev mode does.
            self._server = await asyncio.start_server(self._handle, self.host, 0)
        self.port = self._server.sockets[0].getsockname()[1]
        self._write_env()
        return self.port

    def _write_env(self) -> None:
        self.server_dir.mkdir(parents=True, exist_ok=True)
        previous = ""
        if self.env_path.exists():
            previous = self.env_path.read_text(encoding="utf-8")
            if self.write_backup:
                shutil.copyfile(self.env_path, self.env_path.with_name("server.env.bak"))
        self.env_path.write_text(
            previous + f"WLP_DEBUG_ADDRESS={self.port}\n", encoding="utf-8"
        )

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        try:
            data = await asyncio.wait_for(reader.readexactly(len(HANDSHAKE)), 2.0)
            self.handshakes.append(data)
            if data == HANDSHAKE:
                writer.write(HANDSHAKE)
                await writer.drain()
        except (asyncio.IncompleteReadError, asyncio.TimeoutError, OSError):
            pass
        finally:
            writer.close()

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None


async def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("server_dir", type=Path)
    parser.add_argument("port", type=int)
    parser.add_argument("--delay", type=float, default=0.0, help="seconds before starting")
    args = parser.parse_args(argv)

    await asyncio.sleep(args.delay)
    server = StubDevServer(args.server_dir, args.port)
    port = await server.start()
    print(f"Stub dev server listening for JDWP on {server.host}:{port}", flush=True)
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
