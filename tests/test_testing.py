"""Tests for fleetlink.testing - FakeTransport."""

import io
import re

import pytest

from fleetlink.errors import CommandError, TransportTimeoutError
from fleetlink.testing import FakeTransport, copy_tree_to
from fleetlink.types import CommandResult


class TestFakeExecute:
    def test_unscripted_command_succeeds(self, fake_transport):
        result = fake_transport.execute("true")
        assert isinstance(result, CommandResult)
        assert result.exit_status == 0
        assert result.stdout == ""

    def test_exact_response(self, fake_transport):
        fake_transport.set_response("hostname", stdout="web1\n")
        assert fake_transport.execute("hostname").stdout == "web1\n"

    def test_pattern_response(self, fake_transport):
        fake_transport.set_response(re.compile(r"^systemctl is-active "), stdout="inactive\n", exit_status=3)
        result = fake_transport.execute("systemctl is-active nginx")
        assert result.exit_status == 3
        with pytest.raises(CommandError):
            result.raise_for_status()

    def test_first_match_wins(self, fake_transport):
        fake_transport.set_response(re.compile("ls"), stdout="first")
        fake_transport.set_response("ls", stdout="second")
        assert fake_transport.execute("ls").stdout == "first"

    def test_missing_exit_status(self, fake_transport):
        fake_transport.set_response("reboot", exit_status=None)
        assert fake_transport.execute("reboot").exit_status is None

    def test_commands_logged_with_prefix(self):
        fake = FakeTransport({"prefix": "sudo "})
        fake.set_response("id -u", stdout="0\n")
        result = fake.execute("id -u")
        assert fake.commands == ["sudo id -u"]
        assert result.command == "id -u"
        assert result.stdout == "0\n"
        assert fake.results == [result]

    def test_timeout(self, fake_transport):
        fake_transport.set_timeout("sleep 100")
        with pytest.raises(TransportTimeoutError, match="timed out after 1s"):
            fake_transport.execute("sleep 100", timeout=1)

    def test_streams_output(self, fake_transport):
        fake_transport.set_response("make", stdout="building\n", stderr="warning\n")
        out, err = io.StringIO(), io.StringIO()
        fake_transport.execute("make", stream_stdout=out, stream_stderr=err)
        assert out.getvalue() == "building\n"
        assert err.getvalue() == "warning\n"

    def test_result_options(self, fake_transport):
        result = fake_transport.execute("x", timeout=5)
        assert result.options["timeout"] == 5


class TestFakeFiles:
    def test_write_and_read(self, fake_transport):
        fake_transport.write_file("/etc/motd", "hi\n")
        assert fake_transport.read_file("/etc/motd") == b"hi\n"

    def test_read_missing(self, fake_transport):
        with pytest.raises(FileNotFoundError):
            fake_transport.read_file("/nope")

    def test_upload_and_download(self, fake_transport, tmp_path):
        src = tmp_path / "src.bin"
        src.write_bytes(b"\x00\x01")
        fake_transport.upload_file(str(src), "/opt/blob")
        assert fake_transport.files["/opt/blob"] == b"\x00\x01"

        dst = tmp_path / "dst.bin"
        fake_transport.download_file("/opt/blob", str(dst))
        assert dst.read_bytes() == b"\x00\x01"

    def test_copy_tree_to(self, fake_transport, tmp_path):
        (tmp_path / "conf.d").mkdir()
        (tmp_path / "app.conf").write_bytes(b"a")
        (tmp_path / "conf.d" / "extra.conf").write_bytes(b"b")
        copy_tree_to(fake_transport, str(tmp_path), "/etc/app/")
        assert fake_transport.files == {"/etc/app/app.conf": b"a", "/etc/app/conf.d/extra.conf": b"b"}


class TestFakeMisc:
    def test_forwards_loopback_only(self, fake_transport):
        assert fake_transport.make_url_available_to_remote("http://localhost:8889/x") == "http://localhost:8889/x"
        fake_transport.make_url_available_to_remote("http://repo.internal:8080/")
        assert fake_transport.forwards == {8889}

    def test_available(self, fake_transport):
        assert fake_transport.available() is True
        fake_transport.set_available(False)
        assert fake_transport.available() is False

    def test_disconnect_counter(self, fake_transport):
        fake_transport.disconnect()
        fake_transport.disconnect()
        assert fake_transport.disconnect_count == 2
