"""
fleetlink - Remote machine transport for declarative provisioning.

Quick start:
    import fleetlink

    with fleetlink.SSHTransport("web1.example.com", "deploy") as ssh:
        ssh.execute("uptime").raise_for_status()
        ssh.write_file("/etc/motd", "managed by fleetlink\\n")

    machine, _ = fleetlink.connect_to_machine("web1", fleetlink.DirectoryNodeStore("nodes"))
"""

from fleetlink.errors import (
    FleetlinkError,
    TransportError,
    TransportTimeoutError,
    InitialConnectTimeout,
    PtyRequestError,
    CommandStartError,
    TransferError,
    CommandError,
    ProvisioningError,
    UnprovisionedNodeError,
    UnknownProvisionerError,
    NodeLookupError,
    NodeNotFoundError,
)
from fleetlink.types import (
    CommandResult,
    OutputCallback,
    RemoteForward,
    SessionState,
    StreamTarget,
    TransportOptions,
)
from fleetlink.transport import Transport
from fleetlink.transport.ssh import SSHTransport
from fleetlink.machine import Machine
from fleetlink.nodes import NodeStore, HTTPNodeStore, DirectoryNodeStore
from fleetlink.provisioning import (
    Provisioner,
    ProvisionerRegistry,
    SSHProvisioner,
    connect_to_machine,
    default_registry,
    provisioner_output,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Errors
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
    # Types
    "CommandResult",
    "OutputCallback",
    "RemoteForward",
    "SessionState",
    "StreamTarget",
    "TransportOptions",
    # Transports
    "Transport",
    "SSHTransport",
    # Machines and provisioning
    "Machine",
    "NodeStore",
    "HTTPNodeStore",
    "DirectoryNodeStore",
    "Provisioner",
    "ProvisionerRegistry",
    "SSHProvisioner",
    "connect_to_machine",
    "default_registry",
    "provisioner_output",
]
