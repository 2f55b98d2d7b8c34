"""
Machine - a named remote host and the transport used to reach it.

Provisioners return Machines; everything a declarative resource layer needs
(run, read/write/upload/download files, expose a local URL) is delegated to
the transport.
"""

import logging
from typing import Optional

from fleetlink.transport import Transport
from fleetlink.types import CommandResult, StreamTarget

logger = logging.getLogger(__name__)


class Machine:
    """A remote machine reachable through a transport.

    Args:
        name: Node name
        transport: Transport to the machine
        node: Node record the machine was built from, if any

    Example:
        with Machine("web1", SSHTransport("web1.example.com", "deploy")) as m:
            m.execute("hostname").raise_for_status()
    """

    def __init__(self, name: str, transport: Transport, node: Optional[dict] = None):
        if not name:
            raise ValueError("name must be a non-empty string")
        self._name = name
        self._transport = transport
        self._node = node

    @property
    def name(self) -> str:
        return self._name

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def node(self) -> Optional[dict]:
        return self._node

    def execute(
        self,
        command: str,
        *,
        timeout: Optional[float] = None,
        stream: StreamTarget = None,
        stream_stdout: StreamTarget = None,
        stream_stderr: StreamTarget = None,
    ) -> CommandResult:
        return self._transport.execute(
            command,
            timeout=timeout,
            stream=stream,
            stream_stdout=stream_stdout,
            stream_stderr=stream_stderr,
        )

    def read_file(self, path: str) -> bytes:
        return self._transport.read_file(path)

    def write_file(self, path: str, content: bytes | str) -> None:
        self._transport.write_file(path, content)

    def upload_file(self, local_path: str, path: str) -> None:
        self._transport.upload_file(local_path, path)

    def download_file(self, path: str, local_path: str) -> None:
        self._transport.download_file(path, local_path)

    def make_url_available_to_remote(self, local_url: str) -> str:
        return self._transport.make_url_available_to_remote(local_url)

    def available(self) -> bool:
        return self._transport.available()

    def disconnect(self) -> None:
        logger.debug("Disconnecting machine %s", self._name)
        self._transport.disconnect()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.disconnect()

    def __repr__(self):
        return f"Machine({self._name!r}, {self._transport!r})"


__all__ = ["Machine"]
