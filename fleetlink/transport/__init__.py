"""
Transport abstract base class.

A transport is the capability interface the machine/provisioning layer
consumes: run commands, move files, expose local endpoints to the remote
host, and report availability. SSHTransport is the bundled implementation;
fleetlink.testing.FakeTransport is an in-memory one for tests.
"""

import sys
from abc import ABC, abstractmethod
from typing import Any, Optional

from fleetlink.types import CommandResult, StreamTarget


def merge_execute_options(defaults: dict, **overrides: Any) -> dict:
    """Per-call options override transport-level ones; None means "not given"."""
    merged = dict(defaults)
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged


def is_streamed(options: dict, which: str) -> bool:
    """True if chunks of ``which`` ("stdout" or "stderr") are echoed live."""
    return bool(options.get("stream")) or bool(options.get(f"stream_{which}"))


def _write_chunk(target: StreamTarget, default, chunk: str) -> None:
    if target is True:
        target = default
    target.write(chunk)
    flush = getattr(target, "flush", None)
    if flush is not None:
        flush()


class Transport(ABC):
    """
    Abstract base class for transports.

    Lifecycle:
        - Use as context manager (recommended): `with SSHTransport(...) as t: ...`
        - Or call disconnect() when done. A disconnected transport reconnects
          on next use.

    Thread Safety:
        None. One logical owner per transport instance.
    """

    @abstractmethod
    def execute(
        self,
        command: str,
        *,
        timeout: Optional[float] = None,
        stream: StreamTarget = None,
        stream_stdout: StreamTarget = None,
        stream_stderr: StreamTarget = None,
    ) -> CommandResult:
        """
        Run a shell command on the remote host.

        Never raises on non-zero exit; call CommandResult.raise_for_status().

        Args:
            command: Shell command text (not argv)
            timeout: Wall-clock budget in seconds for the whole command (None = unbounded)
            stream: True to echo output live, or a (stdout_chunk, stderr_chunk) callback
            stream_stdout: File object receiving stdout chunks
            stream_stderr: File object receiving stderr chunks

        Returns:
            CommandResult with captured output and exit status

        Raises:
            TransportTimeoutError: If the timeout expires
        """
        ...

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Return the contents of a remote file."""
        ...

    @abstractmethod
    def write_file(self, path: str, content: bytes | str) -> None:
        """Write content to a remote file, creating parent directories."""
        ...

    @abstractmethod
    def upload_file(self, local_path: str, path: str) -> None:
        """Copy a local file to the remote host, creating parent directories."""
        ...

    @abstractmethod
    def download_file(self, path: str, local_path: str) -> None:
        """Copy a remote file to a local path."""
        ...

    @abstractmethod
    def make_url_available_to_remote(self, local_url: str) -> str:
        """Make a local URL reachable from the remote host; returns the URL to use there."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Release the connection. Safe to call when not connected."""
        ...

    @abstractmethod
    def available(self) -> bool:
        """Cheap liveness check. False on network/auth/protocol failures."""
        ...

    def stream_chunk(self, options: dict, stdout_chunk: Optional[str], stderr_chunk: Optional[str]) -> None:
        """Deliver one chunk of live output according to the stream options."""
        stream = options.get("stream")
        if callable(stream):
            stream(stdout_chunk, stderr_chunk)
            return
        if stdout_chunk:
            target = options.get("stream_stdout")
            if target:
                _write_chunk(target, sys.stdout, stdout_chunk)
            elif stream:
                _write_chunk(True, sys.stdout, stdout_chunk)
        if stderr_chunk:
            target = options.get("stream_stderr")
            if target:
                _write_chunk(target, sys.stderr, stderr_chunk)
            elif stream:
                _write_chunk(True, sys.stderr, stderr_chunk)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.disconnect()


__all__ = ["Transport", "merge_execute_options", "is_streamed"]
