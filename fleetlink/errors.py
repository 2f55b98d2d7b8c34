"""
Exceptions raised by fleetlink.

Transport errors describe a failure to talk to the remote host. CommandError
is different: the command ran, reported a non-zero exit status, and the caller
asked for that to be an error via CommandResult.raise_for_status().
"""

from typing import Optional


class FleetlinkError(Exception):
    """Base exception for all fleetlink errors."""


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


class TransportError(FleetlinkError):
    """Failure while talking to a remote host.

    Attributes:
        host: ``user@host`` of the transport that failed, if known
    """

    def __init__(self, message: str, host: Optional[str] = None):
        self.host = host
        host_info = f" (on {host})" if host else ""
        super().__init__(f"{message}{host_info}")


class TransportTimeoutError(TransportError):
    """An operation exceeded its wall-clock budget. No partial result is returned."""

    def __init__(self, message: str, host: Optional[str] = None, timeout: Optional[float] = None):
        self.timeout = timeout
        super().__init__(message, host=host)


class InitialConnectTimeout(TransportTimeoutError):
    """The connection could not be established within the connect timeout.

    Distinct from an operation timeout: the host was unreachable before any
    command ran, so callers may prefer to try another host.

    The underlying timeout is kept in ``original_error`` and chained via
    ``__cause__``.
    """

    def __init__(self, original_error: BaseException, host: Optional[str] = None, timeout: Optional[float] = None):
        self.original_error = original_error
        detail = str(original_error) or type(original_error).__name__
        if timeout is not None:
            message = f"Initial connect timed out after {timeout}s: {detail}"
        else:
            message = f"Initial connect timed out: {detail}"
        super().__init__(message, host=host, timeout=timeout)


class PtyRequestError(TransportError):
    """A pseudo-terminal was explicitly required and the remote end refused it."""


class CommandStartError(TransportError):
    """The remote end refused to start the command."""

    def __init__(self, command: str, host: Optional[str] = None):
        self.command = command
        super().__init__(f"Could not execute command {command!r}", host=host)


class TransferError(TransportError):
    """A file transfer failed."""

    def __init__(self, message: str, path: str, host: Optional[str] = None):
        self.path = path
        super().__init__(f"{message}: {path}", host=host)


# ---------------------------------------------------------------------------
# Command results
# ---------------------------------------------------------------------------


class CommandError(FleetlinkError):
    """Command exited with a non-zero status.

    Attributes:
        command: Command text as passed to execute()
        exit_status: Exit status reported by the remote end
        stdout: Captured standard output
        stderr: Captured standard error
    """

    def __init__(self, command: str, exit_status: int, stdout: str = "", stderr: str = ""):
        self.command = command
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Error: command {command!r} exited with code {exit_status}")

    def __repr__(self) -> str:
        return f"CommandError(command={self.command!r}, exit_status={self.exit_status})"


# ---------------------------------------------------------------------------
# Provisioning and node lookup
# ---------------------------------------------------------------------------


class ProvisioningError(FleetlinkError):
    """Base class for provisioner dispatch failures."""


class UnprovisionedNodeError(ProvisioningError):
    """The node record carries no provisioner output."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Node {name} was not provisioned with fleetlink.")


class UnknownProvisionerError(ProvisioningError):
    """No provisioner is registered for the URL scheme."""

    def __init__(self, scheme: str, known: Optional[list[str]] = None):
        self.scheme = scheme
        self.known = known or []
        known_info = f" (registered: {', '.join(self.known)})" if self.known else ""
        super().__init__(f"No provisioner registered for scheme {scheme!r}{known_info}")


class NodeLookupError(FleetlinkError):
    """Node record could not be retrieved."""

    def __init__(self, name: str, message: str):
        self.name = name
        self.message = message
        super().__init__(f"Node {name}: {message}")


class NodeNotFoundError(NodeLookupError):
    """Node record does not exist."""

    def __init__(self, name: str):
        super().__init__(name, "not found")


__all__ = [
    "FleetlinkError",
    "TransportError",
    "TransportTimeoutError",
    "InitialConnectTimeout",
    "PtyRequestError",
    "CommandStartError",
    "TransferError",
    "CommandError",
    "ProvisioningError",
    "UnprovisionedNodeError",
    "UnknownProvisionerError",
    "NodeLookupError",
    "NodeNotFoundError",
]
