"""
Configuration for live SSH tests.

These tests need a reachable SSH server that accepts key or agent auth
(see tests/real/hosts.py for the environment variables).

Run these tests explicitly:
    FLEETLINK_TEST_SSH_HOST=deploy@testbox pytest tests/real/ -v -s -m real
"""

import pytest

from fleetlink.transport.ssh import SSHTransport
from tests.real.hosts import SSH_PORT, split_target


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "real: marks tests that require a live SSH host",
    )


@pytest.fixture
def make_ssh():
    """Factory for SSHTransports to the live host; all are disconnected at teardown."""
    created = []

    def factory(options=None, **ssh_options):
        user, host = split_target()
        ssh_options.setdefault("port", SSH_PORT)
        transport = SSHTransport(host, user, ssh_options, options)
        created.append(transport)
        return transport

    yield factory
    for transport in created:
        transport.disconnect()
