"""
Core data types - CommandResult, SessionState, TransportOptions, RemoteForward.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

from fleetlink.errors import CommandError

# Streaming observer - receives (stdout_chunk, stderr_chunk); exactly one is set per call
OutputCallback = Callable[[Optional[str], Optional[str]], None]

# stream / stream_stdout / stream_stderr accept a flag, a callback, or a writable file object
StreamTarget = Union[bool, OutputCallback, Any, None]


class SessionState(Enum):
    """Lifecycle of the single session owned by a transport.

    ABSENT:     never connected
    CONNECTING: initial connect in progress
    CONNECTED:  live session, reused by every operation
    CLOSED:     disconnected (explicitly or after connection loss); next use reconnects
    """

    ABSENT = "absent"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one remote command.

    ``exit_status`` is None when the remote end never reported a status
    (connection drop, protocol quirk). That is not the same as success.
    """

    command: str
    options: dict = field(default_factory=dict)
    stdout: str = ""
    stderr: str = ""
    exit_status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def raise_for_status(self) -> "CommandResult":
        """Raise CommandError if the command reported a non-zero exit status.

        A missing exit status does not raise. Returns self so calls chain:
        ``transport.execute("make").raise_for_status().stdout``.
        """
        if self.exit_status is not None and self.exit_status != 0:
            raise CommandError(self.command, self.exit_status, self.stdout, self.stderr)
        return self


@dataclass(frozen=True)
class TransportOptions:
    """Operational options of a transport.

    Args:
        prefix: Prepended verbatim to every executed command (e.g. ``"sudo "``).
                Also switches file writes to stage-then-move.
        stream: True to echo output to sys.stdout/sys.stderr, or a callback
                receiving (stdout_chunk, stderr_chunk)
        stream_stdout: Writable file object receiving stdout chunks
        stream_stderr: Writable file object receiving stderr chunks
        ssh_pty_enable: None requests a PTY and tolerates refusal,
                        True requires one, False never requests one
    """

    prefix: Optional[str] = None
    stream: StreamTarget = None
    stream_stdout: StreamTarget = None
    stream_stderr: StreamTarget = None
    ssh_pty_enable: Optional[bool] = None

    def __post_init__(self):
        if self.prefix is not None and not isinstance(self.prefix, str):
            raise ValueError(f"prefix must be a string, got {type(self.prefix).__name__}")
        if self.ssh_pty_enable is not None and not isinstance(self.ssh_pty_enable, bool):
            raise ValueError(f"ssh_pty_enable must be a boolean, got {self.ssh_pty_enable!r}")

    @classmethod
    def from_mapping(cls, options: Union["TransportOptions", Mapping[str, Any], None]) -> "TransportOptions":
        """Build from a mapping of recognized keys. Unknown keys raise ValueError."""
        if options is None:
            return cls()
        if isinstance(options, TransportOptions):
            return options
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown transport options: {sorted(unknown)}")
        return cls(**dict(options))

    def stream_options(self) -> dict:
        """Transport-level stream settings, used as defaults for execute()."""
        return {
            "stream": self.stream,
            "stream_stdout": self.stream_stdout,
            "stream_stderr": self.stream_stderr,
        }


@dataclass(frozen=True)
class RemoteForward:
    """Remote port forward: remote bind_address:remote_port -> local_host:local_port."""

    remote_port: int
    bind_address: str
    local_host: str
    local_port: int

    def __str__(self) -> str:
        return f"{self.bind_address}:{self.remote_port} -> {self.local_host}:{self.local_port}"


__all__ = [
    "OutputCallback",
    "StreamTarget",
    "SessionState",
    "CommandResult",
    "TransportOptions",
    "RemoteForward",
]
