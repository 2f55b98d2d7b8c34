"""
Provisioner dispatch.

A node record's ``provisioner_output.provisioner_url`` names the provisioner
that created the machine; the URL scheme (text before the first ``:``)
selects the provisioner class from an explicit ProvisionerRegistry.

Usage:
    from fleetlink.nodes import DirectoryNodeStore
    from fleetlink.provisioning import connect_to_machine, default_registry

    machine, provisioner = connect_to_machine("web1", DirectoryNodeStore("nodes"), default_registry())
    machine.execute("uptime")
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from fleetlink.errors import UnknownProvisionerError, UnprovisionedNodeError
from fleetlink.machine import Machine
from fleetlink.nodes import NodeStore
from fleetlink.transport.ssh import SSHTransport

logger = logging.getLogger(__name__)


def provisioner_output(node: dict) -> Optional[dict]:
    """Return the node's provisioner output, or None if it was never provisioned.

    Looks in the ``normal`` attributes first, then at the top level.
    """
    normal = node.get("normal")
    if isinstance(normal, dict) and normal.get("provisioner_output"):
        return normal["provisioner_output"]
    return node.get("provisioner_output") or None


def _node_name(node: dict) -> str:
    return str(node.get("name") or "<unnamed>")


class Provisioner(ABC):
    """Creates, destroys and connects to machines of one kind.

    Only the connect half is used here; creation and destruction belong to
    concrete provisioners.
    """

    @classmethod
    @abstractmethod
    def inflate(cls, node: dict) -> "Provisioner":
        """Rebuild the provisioner that created ``node`` from its record."""
        ...

    @abstractmethod
    def connect_to_machine(self, node: dict) -> Machine:
        """Return a Machine connected (lazily) to ``node``."""
        ...


class SSHProvisioner(Provisioner):
    """Machines that already exist and are reached directly over SSH.

    Provisioner output keys:
        provisioner_url: ``ssh:<anything>``
        host: Hostname or address (required)
        username: Login name
        ssh_options: Connection options passed to SSHTransport
        options: Transport options (prefix, ssh_pty_enable, ...)
    """

    scheme = "ssh"

    def __init__(self, provisioner_url: str):
        self.provisioner_url = provisioner_url

    @classmethod
    def inflate(cls, node: dict) -> "SSHProvisioner":
        output = provisioner_output(node)
        if output is None:
            raise UnprovisionedNodeError(_node_name(node))
        return cls(output["provisioner_url"])

    def connect_to_machine(self, node: dict) -> Machine:
        name = _node_name(node)
        output = provisioner_output(node)
        if output is None:
            raise UnprovisionedNodeError(name)
        host = output.get("host")
        if not host:
            raise ValueError(f"Node {name}: provisioner output has no host")
        transport = SSHTransport(
            host,
            output.get("username"),
            output.get("ssh_options") or {},
            output.get("options") or {},
        )
        return Machine(name, transport, node=node)

    def __repr__(self):
        return f"SSHProvisioner({self.provisioner_url!r})"


class ProvisionerRegistry:
    """Maps provisioner URL schemes to provisioner classes.

    Populated explicitly at startup and passed to whoever dispatches on node
    records, so tests can register fakes without touching global state.
    """

    def __init__(self) -> None:
        self._classes: dict[str, type[Provisioner]] = {}

    def register(self, scheme: str, provisioner_cls: type[Provisioner]) -> None:
        if not scheme or ":" in scheme:
            raise ValueError(f"Invalid provisioner scheme: {scheme!r}")
        existing = self._classes.get(scheme)
        if existing is not None and existing is not provisioner_cls:
            logger.warning("Replacing provisioner for scheme %r: %s -> %s", scheme, existing, provisioner_cls)
        self._classes[scheme] = provisioner_cls

    def unregister(self, scheme: str) -> None:
        self._classes.pop(scheme, None)

    def get(self, scheme: str) -> type[Provisioner]:
        try:
            return self._classes[scheme]
        except KeyError:
            raise UnknownProvisionerError(scheme, self.schemes) from None

    @property
    def schemes(self) -> list[str]:
        return sorted(self._classes)

    def __contains__(self, scheme: object) -> bool:
        return scheme in self._classes

    def provisioner_for_node(self, node: dict) -> Provisioner:
        """Inflate the provisioner named by the node's provisioner_url."""
        output = provisioner_output(node)
        if output is None:
            raise UnprovisionedNodeError(_node_name(node))
        provisioner_url = output.get("provisioner_url")
        if not provisioner_url:
            raise ValueError(f"Node {_node_name(node)}: provisioner output has no provisioner_url")
        scheme = provisioner_url.split(":", 1)[0]
        return self.get(scheme).inflate(node)

    def __repr__(self):
        return f"ProvisionerRegistry({self.schemes})"


def default_registry() -> ProvisionerRegistry:
    """A registry with the bundled provisioners registered."""
    registry = ProvisionerRegistry()
    registry.register(SSHProvisioner.scheme, SSHProvisioner)
    return registry


def connect_to_machine(
    name: str,
    nodes: NodeStore,
    registry: Optional[ProvisionerRegistry] = None,
) -> tuple[Machine, Provisioner]:
    """Look up a node and connect to it through the provisioner that created it.

    Raises:
        UnprovisionedNodeError: If the node record has no provisioner output
        UnknownProvisionerError: If no provisioner handles the URL scheme
        NodeNotFoundError: If the node does not exist
    """
    node = nodes.get(name)
    node.setdefault("name", name)
    if provisioner_output(node) is None:
        raise UnprovisionedNodeError(name)
    provisioner = (registry or default_registry()).provisioner_for_node(node)
    machine = provisioner.connect_to_machine(node)
    return machine, provisioner


__all__ = [
    "provisioner_output",
    "Provisioner",
    "SSHProvisioner",
    "ProvisionerRegistry",
    "default_registry",
    "connect_to_machine",
]
