import socket

import pytest

from port_resolver import (
    ProjectKind,
    allocate_ephemeral_port,
    debug_start_param,
    explicit_debug_port,
    resolve_debug_port,
)


def _bindable(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


@pytest.mark.parametrize(
    "params, kind, expected",
    [
        ("-DdebugPort=7777", ProjectKind.MAVEN, 7777),
        ("-Dfoo=bar -DdebugPort=8001 -DhotTests=true", ProjectKind.MAVEN, 8001),
        ("--libertyDebugPort=9009", ProjectKind.GRADLE, 9009),
        ("--hotTests --libertyDebugPort=5005 --skipTests", "gradle", 5005),
    ],
)
def test_explicit_port_is_returned(params, kind, expected):
    assert resolve_debug_port(params, kind) == expected


def test_explicit_port_does_not_need_to_be_free():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen(1)
        taken = sock.getsockname()[1]
        assert resolve_debug_port(f"-DdebugPort={taken}", ProjectKind.MAVEN) == taken


def test_only_first_flag_is_used():
    params = "-DdebugPort=7001 -DdebugPort=7002"
    assert explicit_debug_port(params, ProjectKind.MAVEN) == 7001


def test_flag_of_other_kind_is_ignored():
    assert explicit_debug_port("--libertyDebugPort=9009", ProjectKind.MAVEN) is None
    assert explicit_debug_port("-DdebugPort=7777", ProjectKind.GRADLE) is None


@pytest.mark.parametrize("params", ["", None, "-DhotTests=true", "--skipTests"])
def test_missing_flag_allocates_bindable_port(params):
    port = resolve_debug_port(params, ProjectKind.MAVEN)
    assert 1 <= port <= 65535
    assert _bindable(port)


def test_malformed_port_falls_back_to_ephemeral():
    port = resolve_debug_port("-DdebugPort=abc", ProjectKind.MAVEN)
    assert _bindable(port)


def test_allocation_failure_propagates(monkeypatch):
    import port_resolver

    class BrokenSocket:
        def __init__(self, *args, **kwargs):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def bind(self, address):
            raise OSError(98, "Address already in use")

    monkeypatch.setattr(port_resolver.socket, "socket", BrokenSocket)
    with pytest.raises(OSError):
        resolve_debug_port("", ProjectKind.GRADLE)


def test_allocate_ephemeral_port_releases_socket():
    port = allocate_ephemeral_port()
    assert _bindable(port)


def test_debug_start_param():
    assert debug_start_param(ProjectKind.MAVEN, 7777) == "-DdebugPort=7777"
    assert debug_start_param("gradle", 7777) == "--libertyDebugPort=7777"


def test_unknown_project_kind():
    with pytest.raises(ValueError, match="Unexpected project build type"):
        ProjectKind.parse("ant")
