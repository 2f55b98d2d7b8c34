"""
Testing utilities - FakeTransport for unit tests without a network.

Usage:
    from fleetlink.testing import FakeTransport

    fake = FakeTransport()
    fake.set_response("hostname", stdout="web1\\n")
    fake.files["/etc/motd"] = b"hello\\n"

    machine = Machine("web1", fake)
    assert machine.execute("hostname").stdout == "web1\\n"
    assert fake.commands == ["hostname"]
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit

from fleetlink.errors import TransportTimeoutError
from fleetlink.transport import Transport, merge_execute_options
from fleetlink.types import CommandResult, StreamTarget, TransportOptions


@dataclass(frozen=True)
class _Response:
    stdout: str
    stderr: str
    exit_status: Optional[int]
    timeout: bool = False


_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class FakeTransport(Transport):
    """In-memory Transport.

    Commands are answered from scripted responses (exact string or compiled
    regex, first match wins; unmatched commands succeed with no output).
    Files live in the ``files`` dict. The prefix is recorded on commands like
    the SSH transport does, but writes go straight to ``files``.

    Args:
        options: TransportOptions or mapping (prefix, stream, ...)
        available: Initial result of available()
    """

    def __init__(self, options=None, available: bool = True):
        self._options = TransportOptions.from_mapping(options)
        self._responses: list[tuple[Union[str, re.Pattern], _Response]] = []
        self._available = available
        self.files: dict[str, bytes] = {}
        self.commands: list[str] = []
        self.results: list[CommandResult] = []
        self.forwards: set[int] = set()
        self.disconnect_count = 0

    @property
    def options(self) -> TransportOptions:
        return self._options

    # ── scripting ──

    def set_response(
        self,
        command: Union[str, re.Pattern],
        stdout: str = "",
        stderr: str = "",
        exit_status: Optional[int] = 0,
    ) -> None:
        """Answer ``command`` with the given output and exit status."""
        self._responses.append((command, _Response(stdout, stderr, exit_status)))

    def set_timeout(self, command: Union[str, re.Pattern]) -> None:
        """Make ``command`` raise TransportTimeoutError."""
        self._responses.append((command, _Response("", "", None, timeout=True)))

    def set_available(self, available: bool) -> None:
        self._available = available

    def _lookup(self, command: str) -> _Response:
        for pattern, response in self._responses:
            if isinstance(pattern, re.Pattern):
                if pattern.search(command):
                    return response
            elif pattern == command:
                return response
        return _Response("", "", 0)

    # ── Transport interface ──

    def execute(
        self,
        command: str,
        *,
        timeout: Optional[float] = None,
        stream: StreamTarget = None,
        stream_stdout: StreamTarget = None,
        stream_stderr: StreamTarget = None,
    ) -> CommandResult:
        execute_options = merge_execute_options(
            self._options.stream_options(),
            stream=stream,
            stream_stdout=stream_stdout,
            stream_stderr=stream_stderr,
        )
        execute_options["timeout"] = timeout
        full_command = f"{self._options.prefix or ''}{command}"
        self.commands.append(full_command)

        response = self._lookup(command)
        if response.timeout:
            message = f"Command timed out after {timeout}s: {command!r}"
            raise TransportTimeoutError(message, host="fake", timeout=timeout)
        if response.stdout:
            self.stream_chunk(execute_options, response.stdout, None)
        if response.stderr:
            self.stream_chunk(execute_options, None, response.stderr)

        result = CommandResult(
            command=command,
            options=execute_options,
            stdout=response.stdout,
            stderr=response.stderr,
            exit_status=response.exit_status,
        )
        self.results.append(result)
        return result

    def read_file(self, path: str) -> bytes:
        try:
            return self.files[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    def write_file(self, path: str, content: bytes | str) -> None:
        self.files[path] = content.encode("utf-8") if isinstance(content, str) else bytes(content)

    def upload_file(self, local_path: str, path: str) -> None:
        self.files[path] = Path(local_path).read_bytes()

    def download_file(self, path: str, local_path: str) -> None:
        data = self.read_file(path)
        Path(local_path).write_bytes(data)

    def make_url_available_to_remote(self, local_url: str) -> str:
        parts = urlsplit(local_url)
        if parts.hostname in _LOOPBACK_HOSTS and parts.port:
            self.forwards.add(parts.port)
        return local_url

    def disconnect(self) -> None:
        self.disconnect_count += 1

    def available(self) -> bool:
        return self._available

    def __repr__(self):
        return f"FakeTransport({len(self.commands)} commands, {len(self.files)} files)"


def copy_tree_to(fake: FakeTransport, local_dir: str, remote_dir: str) -> None:
    """Load every file under ``local_dir`` into ``fake.files`` beneath ``remote_dir``."""
    root = Path(local_dir)
    for path in sorted(root.rglob("*")):
        if path.is_file():
            fake.files[f"{remote_dir.rstrip('/')}/{path.relative_to(root).as_posix()}"] = path.read_bytes()


__all__ = ["FakeTransport", "copy_tree_to"]
