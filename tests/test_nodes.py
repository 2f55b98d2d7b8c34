"""
Unit tests for node stores.

Tests cover:
- HTTPNodeStore initialization, URL construction, HTTP/timeout/transport errors
- DirectoryNodeStore file lookup, name validation, bad JSON
"""

import json
from unittest import mock

import httpx
import pytest

from fleetlink.errors import NodeLookupError, NodeNotFoundError
from fleetlink.nodes import DirectoryNodeStore, HTTPNodeStore


def _response(status_code=200, json_body=None, text=None, url="https://nodes.example.com/nodes/web1"):
    request = httpx.Request("GET", url)
    if json_body is not None:
        return httpx.Response(status_code, json=json_body, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


class TestHTTPNodeStoreInit:
    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"base_url": ""}, "base_url cannot be empty"),
            ({"base_url": "https://x", "timeout": 0}, "timeout must be positive"),
        ],
    )
    def test_invalid_init_params(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            HTTPNodeStore(**kwargs)

    def test_missing_url(self):
        with pytest.raises(ValueError, match="FLEETLINK_NODE_URL"):
            HTTPNodeStore()

    def test_url_from_env(self, monkeypatch):
        monkeypatch.setenv("FLEETLINK_NODE_URL", "https://nodes.example.com/")
        with HTTPNodeStore() as store:
            assert store.base_url == "https://nodes.example.com"


class TestHTTPNodeStoreGet:
    def test_get_record(self):
        record = {"name": "web1", "normal": {"provisioner_output": {"provisioner_url": "ssh:web1"}}}
        with mock.patch("httpx.Client.get") as mock_get:
            mock_get.return_value = _response(json_body=record)
            with HTTPNodeStore("https://nodes.example.com") as store:
                assert store.get("web1") == record
            mock_get.assert_called_once_with("https://nodes.example.com/nodes/web1")

    def test_name_is_quoted(self):
        with mock.patch("httpx.Client.get") as mock_get:
            mock_get.return_value = _response(json_body={})
            with HTTPNodeStore("https://nodes.example.com") as store:
                store.get("web 1/x")
            mock_get.assert_called_once_with("https://nodes.example.com/nodes/web%201%2Fx")

    def test_not_found(self):
        with mock.patch("httpx.Client.get") as mock_get:
            mock_get.return_value = _response(404, text="no such node")
            with HTTPNodeStore("https://nodes.example.com") as store:
                with pytest.raises(NodeNotFoundError) as exc_info:
                    store.get("web1")
            assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    def test_server_error(self):
        with mock.patch("httpx.Client.get") as mock_get:
            mock_get.return_value = _response(503)
            with HTTPNodeStore("https://nodes.example.com") as store:
                with pytest.raises(NodeLookupError, match="HTTP 503") as exc_info:
                    store.get("web1")
            assert not isinstance(exc_info.value, NodeNotFoundError)

    def test_timeout(self):
        with mock.patch("httpx.Client.get") as mock_get:
            mock_get.side_effect = httpx.ReadTimeout("timed out")
            with HTTPNodeStore("https://nodes.example.com", timeout=2.0) as store:
                with pytest.raises(NodeLookupError, match="timed out after 2.0s"):
                    store.get("web1")

    def test_connection_error(self):
        with mock.patch("httpx.Client.get") as mock_get:
            mock_get.side_effect = httpx.ConnectError("Connection refused")
            with HTTPNodeStore("https://nodes.example.com") as store:
                with pytest.raises(NodeLookupError, match="Connection refused"):
                    store.get("web1")

    def test_invalid_json(self):
        with mock.patch("httpx.Client.get") as mock_get:
            mock_get.return_value = _response(text="<html>")
            with HTTPNodeStore("https://nodes.example.com") as store:
                with pytest.raises(NodeLookupError, match="invalid JSON"):
                    store.get("web1")

    def test_non_object_json(self):
        with mock.patch("httpx.Client.get") as mock_get:
            mock_get.return_value = _response(json_body=["web1"])
            with HTTPNodeStore("https://nodes.example.com") as store:
                with pytest.raises(NodeLookupError, match="expected a JSON object"):
                    store.get("web1")


class TestDirectoryNodeStore:
    def test_get_record(self, node_dir):
        (node_dir / "web1.json").write_text(json.dumps({"name": "web1"}))
        assert DirectoryNodeStore(str(node_dir)).get("web1") == {"name": "web1"}

    def test_path_from_env(self, node_dir, monkeypatch):
        monkeypatch.setenv("FLEETLINK_NODE_DIR", str(node_dir))
        assert DirectoryNodeStore().path == node_dir

    def test_missing_path(self):
        with pytest.raises(ValueError, match="FLEETLINK_NODE_DIR"):
            DirectoryNodeStore()

    def test_not_found(self, node_dir):
        with pytest.raises(NodeNotFoundError, match="Node ghost: not found"):
            DirectoryNodeStore(str(node_dir)).get("ghost")

    def test_invalid_json(self, node_dir):
        (node_dir / "web1.json").write_text("{not json")
        with pytest.raises(NodeLookupError, match="invalid JSON"):
            DirectoryNodeStore(str(node_dir)).get("web1")

    def test_non_object_json(self, node_dir):
        (node_dir / "web1.json").write_text("[]")
        with pytest.raises(NodeLookupError, match="expected a JSON object"):
            DirectoryNodeStore(str(node_dir)).get("web1")

    @pytest.mark.parametrize("name", ["", ".", "..", "../etc/passwd", "a/b"])
    def test_invalid_names(self, node_dir, name):
        with pytest.raises(ValueError, match="Invalid node name"):
            DirectoryNodeStore(str(node_dir)).get(name)
