"""
Shared pytest fixtures for fleetlink unit tests.

paramiko objects are replaced by mocks from tests/mocks.py so no unit test
touches the network. Live tests live in tests/real/.
"""

import pytest

from fleetlink.testing import FakeTransport

_ENV_VARS = (
    "FLEETLINK_CONNECT_TIMEOUT",
    "FLEETLINK_PROBE_TIMEOUT",
    "FLEETLINK_NODE_URL",
    "FLEETLINK_NODE_DIR",
    "FLEETLINK_TMPDIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Unit tests never see the developer's FLEETLINK_* settings."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def node_dir(tmp_path):
    """Directory of node records for DirectoryNodeStore."""
    path = tmp_path / "nodes"
    path.mkdir()
    return path
