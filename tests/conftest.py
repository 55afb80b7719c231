import os
import socket
import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"
FIXTURES = REPO_ROOT / "tests" / "fixtures"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

LOOPBACK = {"127.0.0.1", "::1", "localhost", "testserver"}


class NetworkBlocked(RuntimeError):
    pass


@pytest.fixture(autouse=True)
def no_outbound_sockets(monkeypatch):
    """Fail any test that opens a non-loopback connection.

    Set CI_LIVE_TESTS=1 to talk to the real registry.
    """
    if os.environ.get("CI_LIVE_TESTS") == "1":
        yield
        return

    original = socket.socket.connect

    def connect(sock, address):
        if isinstance(address, tuple) and address[0] not in LOOPBACK:
            raise NetworkBlocked(f"outbound connection to {address[0]} in a test")
        return original(sock, address)

    monkeypatch.setattr(socket.socket, "connect", connect)
    yield


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    from carrier_ingest.feature_flags import reset_flags_cache
    from carrier_ingest.settings import reset_settings_cache

    for key in list(os.environ):
        if key.startswith("CI_"):
            monkeypatch.delenv(key, raising=False)
    reset_flags_cache()
    reset_settings_cache()
    yield
    reset_flags_cache()
    reset_settings_cache()


def load_fixture(name):
    return (FIXTURES / name).read_text(encoding="utf-8")


@pytest.fixture
def snapshot_html():
    return load_fixture("snapshot_carrier.html")


@pytest.fixture
def broker_html():
    return load_fixture("snapshot_broker.html")


@pytest.fixture
def unnamed_html():
    return load_fixture("snapshot_unnamed.html")


@pytest.fixture
def not_found_html():
    return load_fixture("snapshot_not_found.html")
