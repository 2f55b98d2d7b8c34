"""
Node record lookup.

A node record is a JSON object; provisioning reads
``normal.provisioner_output`` from it to find out which provisioner owns the
machine and how to reach it.

Usage:
    from fleetlink.nodes import HTTPNodeStore

    with HTTPNodeStore("https://nodes.example.com") as nodes:
        record = nodes.get("web1")
"""

import json
import logging
import os
import urllib.parse
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from fleetlink import config
from fleetlink.errors import NodeLookupError, NodeNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class NodeStore(ABC):
    """Source of node records, looked up by node name."""

    @abstractmethod
    def get(self, name: str) -> dict:
        """
        Return the node record for ``name``.

        Raises:
            NodeNotFoundError: If no such node exists
            NodeLookupError: If the record cannot be retrieved or parsed
        """
        ...

    def close(self) -> None:
        """Release resources held by the store."""

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class HTTPNodeStore(NodeStore):
    """Node records served over HTTP as ``GET {base_url}/nodes/{name}``.

    Args:
        base_url: Server root (default: $FLEETLINK_NODE_URL)
        timeout: Request timeout in seconds (default: 10.0)
        headers: Extra request headers (e.g. authorization)
        verify_ssl: Verify TLS certificates

    Raises:
        ValueError: If no base URL is given or configured, or timeout is not positive
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        headers: Optional[dict] = None,
        verify_ssl: bool = True,
    ):
        effective_url = base_url if base_url is not None else config.node_url()
        effective_timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
        if not effective_url:
            raise ValueError("base_url cannot be empty (pass it or set FLEETLINK_NODE_URL)")
        if effective_timeout <= 0:
            raise ValueError(f"timeout must be positive, got {effective_timeout}")

        self._base_url = effective_url.rstrip("/")
        self._timeout = effective_timeout
        self._client = httpx.Client(verify=verify_ssl, timeout=effective_timeout, headers=headers)
        logger.debug("HTTPNodeStore initialized: base_url=%s, timeout=%s", self._base_url, effective_timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def get(self, name: str) -> dict:
        url = f"{self._base_url}/nodes/{urllib.parse.quote(name, safe='')}"
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise NodeNotFoundError(name) from e
            raise NodeLookupError(name, f"request failed ({url}): HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise NodeLookupError(name, f"request timed out after {self._timeout}s ({url})") from e
        except httpx.TransportError as e:
            raise NodeLookupError(name, f"request failed ({url}): {e}") from e

        try:
            record = response.json()
        except ValueError as e:
            raise NodeLookupError(name, f"invalid JSON from {url}: {e}") from e
        if not isinstance(record, dict):
            raise NodeLookupError(name, f"expected a JSON object from {url}, got {type(record).__name__}")
        return record

    def close(self) -> None:
        self._client.close()
        logger.debug("HTTPNodeStore closed")

    def __repr__(self) -> str:
        return f"HTTPNodeStore({self._base_url}, timeout={self._timeout})"


class DirectoryNodeStore(NodeStore):
    """Node records stored as ``<path>/<name>.json`` files (local mode).

    Args:
        path: Directory holding the records (default: $FLEETLINK_NODE_DIR)
    """

    def __init__(self, path: Optional[str] = None):
        effective_path = path if path is not None else config.node_dir()
        if not effective_path:
            raise ValueError("path cannot be empty (pass it or set FLEETLINK_NODE_DIR)")
        self._path = Path(effective_path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, name: str) -> dict:
        if not name or os.sep in name or (os.altsep and os.altsep in name) or name in (".", ".."):
            raise ValueError(f"Invalid node name: {name!r}")
        record_path = self._path / f"{name}.json"
        try:
            text = record_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise NodeNotFoundError(name) from e
        try:
            record = json.loads(text)
        except json.JSONDecodeError as e:
            raise NodeLookupError(name, f"invalid JSON in {record_path}: {e}") from e
        if not isinstance(record, dict):
            raise NodeLookupError(name, f"expected a JSON object in {record_path}, got {type(record).__name__}")
        return record

    def __repr__(self) -> str:
        return f"DirectoryNodeStore({str(self._path)!r})"


__all__ = ["NodeStore", "HTTPNodeStore", "DirectoryNodeStore"]
