import asyncio
import os
import sys

import pytest

from handshake import probe
from port_resolver import allocate_ephemeral_port


def _open_fds() -> int:
    return len(os.listdir("/proc/self/fd"))


@pytest.mark.asyncio
async def test_probe_sends_handshake_to_listener():
    received = []
    got_data = asyncio.Event()

    async def handle(reader, writer):
        received.append(await reader.read(64))
        got_data.set()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        assert await probe("127.0.0.1", port) is True
        await asyncio.wait_for(got_data.wait(), timeout=2.0)
    finally:
        server.close()
        await server.wait_closed()
    assert received == [b"JDWP-Handshake"]


@pytest.mark.asyncio
async def test_probe_custom_token():
    received = []
    got_data = asyncio.Event()

    async def handle(reader, writer):
        received.append(await reader.read(64))
        got_data.set()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        assert await probe("127.0.0.1", port, token=b"PING") is True
        await asyncio.wait_for(got_data.wait(), timeout=2.0)
    finally:
        server.close()
        await server.wait_closed()
    assert received == [b"PING"]


@pytest.mark.asyncio
async def test_probe_without_listener_is_false():
    port = allocate_ephemeral_port()
    assert await probe("127.0.0.1", port) is False
    assert await probe("127.0.0.1", port) is False


@pytest.mark.asyncio
async def test_probe_unresolvable_host_is_false():
    assert await probe("host.invalid", 5005, connect_timeout=2.0) is False


@pytest.mark.asyncio
@pytest.mark.skipif(
    not sys.platform.startswith("linux"), reason="needs /proc/self/fd"
)
async def test_repeated_failed_probes_do_not_leak_sockets():
    port = allocate_ephemeral_port()
    await probe("127.0.0.1", port)
    before = _open_fds()
    for _ in range(20):
        assert await probe("127.0.0.1", port) is False
    assert _open_fds() == before


@pytest.mark.asyncio
@pytest.mark.skipif(
    not sys.platform.startswith("linux"), reason="needs /proc/self/fd"
)
async def test_successful_probes_do_not_leak_sockets():
    async def handle(reader, writer):
        await reader.read(64)
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        await probe("127.0.0.1", port)
        await asyncio.sleep(0.05)
        before = _open_fds()
        for _ in range(10):
            assert await probe("127.0.0.1", port) is True
        await asyncio.sleep(0.2)
        assert _open_fds() <= before
    finally:
        server.close()
        await server.wait_closed()
