"""Tests for fleetlink.transport - option merging and output streaming."""

import io

import pytest

from fleetlink.transport import Transport, is_streamed, merge_execute_options
from fleetlink.testing import FakeTransport


class TestMergeExecuteOptions:
    def test_none_does_not_override(self):
        merged = merge_execute_options({"stream": True}, stream=None)
        assert merged == {"stream": True}

    def test_false_overrides(self):
        merged = merge_execute_options({"stream": True}, stream=False)
        assert merged == {"stream": False}

    def test_defaults_not_mutated(self):
        defaults = {"stream": None}
        merge_execute_options(defaults, stream=True)
        assert defaults == {"stream": None}


class TestIsStreamed:
    @pytest.mark.parametrize(
        "options,which,expected",
        [
            ({}, "stderr", False),
            ({"stream": True}, "stderr", True),
            ({"stream_stderr": io.StringIO()}, "stderr", True),
            ({"stream_stdout": io.StringIO()}, "stderr", False),
            ({"stream": lambda o, e: None}, "stdout", True),
        ],
    )
    def test_is_streamed(self, options, which, expected):
        assert is_streamed(options, which) is expected


class TestStreamChunk:
    @pytest.fixture
    def transport(self):
        return FakeTransport()

    def test_callback_gets_both_positions(self, transport):
        calls = []
        options = {"stream": lambda out, err: calls.append((out, err))}
        transport.stream_chunk(options, "out", None)
        transport.stream_chunk(options, None, "err")
        assert calls == [("out", None), (None, "err")]

    def test_callback_wins_over_files(self, transport):
        calls = []
        out = io.StringIO()
        options = {"stream": lambda o, e: calls.append(o), "stream_stdout": out}
        transport.stream_chunk(options, "x", None)
        assert calls == ["x"]
        assert out.getvalue() == ""

    def test_file_targets(self, transport):
        out, err = io.StringIO(), io.StringIO()
        options = {"stream_stdout": out, "stream_stderr": err}
        transport.stream_chunk(options, "a", None)
        transport.stream_chunk(options, None, "b")
        assert out.getvalue() == "a"
        assert err.getvalue() == "b"

    def test_stream_true_uses_terminal(self, transport, capsys):
        transport.stream_chunk({"stream": True}, "to out", None)
        transport.stream_chunk({"stream": True}, None, "to err")
        captured = capsys.readouterr()
        assert captured.out == "to out"
        assert captured.err == "to err"

    def test_stream_stdout_true_uses_terminal(self, transport, capsys):
        transport.stream_chunk({"stream_stdout": True}, "to out", None)
        assert capsys.readouterr().out == "to out"

    def test_explicit_file_wins_over_stream_flag(self, transport, capsys):
        out = io.StringIO()
        transport.stream_chunk({"stream": True, "stream_stdout": out}, "x", None)
        assert out.getvalue() == "x"
        assert capsys.readouterr().out == ""

    def test_nothing_configured(self, transport, capsys):
        transport.stream_chunk({}, "x", "y")
        captured = capsys.readouterr()
        assert captured.out == captured.err == ""

    def test_flushes(self, transport):
        class Target(io.StringIO):
            flushed = 0

            def flush(self):
                self.flushed += 1
                super().flush()

        target = Target()
        transport.stream_chunk({"stream_stdout": target}, "x", None)
        assert target.flushed == 1


class TestTransportABC:
    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            Transport()  # type: ignore[abstract]

    def test_context_manager_disconnects(self):
        with FakeTransport() as t:
            pass
        assert t.disconnect_count == 1
