"""
Live SSH host configuration and availability markers.

- FLEETLINK_TEST_SSH_HOST: [user@]host to connect to
- FLEETLINK_TEST_SSH_PORT: optional port (default 22)
- FLEETLINK_TEST_SSH_SUDO: set to 1 if passwordless sudo works there
"""

import os

import pytest

SSH_TARGET = os.environ.get("FLEETLINK_TEST_SSH_HOST", "")
SSH_PORT = int(os.environ.get("FLEETLINK_TEST_SSH_PORT", "22"))
SSH_SUDO = os.environ.get("FLEETLINK_TEST_SSH_SUDO", "") == "1"

requires_ssh = pytest.mark.skipif(
    not SSH_TARGET,
    reason="Live SSH tests require FLEETLINK_TEST_SSH_HOST",
)


def split_target():
    """("user", "host") from FLEETLINK_TEST_SSH_HOST; user may be None."""
    if "@" in SSH_TARGET:
        user, host = SSH_TARGET.rsplit("@", 1)
        return user, host
    return None, SSH_TARGET
