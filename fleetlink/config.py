"""
Environment-variable configuration.

Explicit constructor arguments always win; these helpers only supply defaults.
Values are read at call time so tests can monkeypatch the environment.
"""

import os
from typing import Optional

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_PROBE_TIMEOUT = 10.0
DEFAULT_REMOTE_TMPDIR = "/tmp"


def get_env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    """Get environment variable as float."""
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {val!r}")


def connect_timeout() -> float:
    """Initial-connect timeout (FLEETLINK_CONNECT_TIMEOUT, default 10s)."""
    value = get_env_float("FLEETLINK_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT)
    assert value is not None
    if value <= 0:
        raise ValueError(f"FLEETLINK_CONNECT_TIMEOUT must be positive, got {value}")
    return value


def probe_timeout() -> float:
    """Availability probe timeout (FLEETLINK_PROBE_TIMEOUT, default 10s)."""
    value = get_env_float("FLEETLINK_PROBE_TIMEOUT", DEFAULT_PROBE_TIMEOUT)
    assert value is not None
    if value <= 0:
        raise ValueError(f"FLEETLINK_PROBE_TIMEOUT must be positive, got {value}")
    return value


def remote_tmpdir() -> str:
    return os.environ.get("FLEETLINK_TMPDIR") or DEFAULT_REMOTE_TMPDIR


def node_url() -> Optional[str]:
    return os.environ.get("FLEETLINK_NODE_URL") or None


def node_dir() -> Optional[str]:
    return os.environ.get("FLEETLINK_NODE_DIR") or None


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_PROBE_TIMEOUT",
    "DEFAULT_REMOTE_TMPDIR",
    "get_env_float",
    "connect_timeout",
    "probe_timeout",
    "remote_tmpdir",
    "node_url",
    "node_dir",
]
