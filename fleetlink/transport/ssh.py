"""
SSH transport: command execution, SFTP file transfer and remote port
forwarding over one lazily opened, reused paramiko connection.

Example:
    from fleetlink.transport.ssh import SSHTransport

    with SSHTransport("web1.example.com", "deploy", {"key_filename": "~/.ssh/id_ed25519"},
                      {"prefix": "sudo "}) as ssh:
        ssh.execute("systemctl restart nginx").raise_for_status()
        ssh.write_file("/etc/motd", "managed by fleetlink\\n")
"""

from __future__ import annotations

import codecs
import errno
import getpass
import io
import ipaddress
import logging
import os
import posixpath
import random
import re
import select
import shlex
import socket
import threading
import time
from contextlib import contextmanager
from typing import Any, BinaryIO, Iterator, Mapping, Optional, Union
from urllib.parse import urlsplit

import paramiko

from fleetlink import config
from fleetlink.errors import (
    CommandError,
    CommandStartError,
    InitialConnectTimeout,
    PtyRequestError,
    TransferError,
    TransportError,
    TransportTimeoutError,
)
from fleetlink.transport import Transport, is_streamed, merge_execute_options
from fleetlink.types import CommandResult, RemoteForward, SessionState, StreamTarget, TransportOptions

logger = logging.getLogger(__name__)

_RECV_SIZE = 65536
_POLL_INTERVAL = 0.1

# Remote forwards always bind the remote loopback
_FORWARD_BIND = "127.0.0.1"

_DEFAULT_PORTS = {"http": 80, "https": 443}

# SFTP/SCP channels can report this after the payload has fully arrived
_TRANSFER_TEARDOWN = re.compile(r"did\s+not\s+finish")

_HOST_KEY_POLICIES = {
    "auto_add": paramiko.AutoAddPolicy,
    "warning": paramiko.WarningPolicy,
    "reject": paramiko.RejectPolicy,
}

_UNREACHABLE_ERRNOS = frozenset({errno.EHOSTUNREACH, errno.ENETUNREACH, errno.ETIMEDOUT})

# Failures that mean "this host cannot be used right now" for available()
_UNAVAILABLE_ERRORS = (
    TransportError,
    socket.timeout,
    ConnectionError,
    paramiko.ssh_exception.NoValidConnectionsError,
    paramiko.AuthenticationException,
    paramiko.BadHostKeyException,
    paramiko.SSHException,
    EOFError,
)


def _gssapi_username() -> str:
    """Extract username from Kerberos principal"""
    import gssapi

    creds = gssapi.Credentials(usage="initiate")
    principal = str(creds.name)
    return principal.split("@")[0]


def _bidirectional_forward(sock: socket.socket, chan: paramiko.Channel, stop_event: threading.Event):
    """Relay data between a local socket and an SSH channel until either side closes."""
    while not stop_event.is_set():
        r, _, _ = select.select([sock, chan], [], [], 1.0)
        if sock in r:
            data = sock.recv(16384)
            if not data:
                break
            chan.sendall(data)
        if chan in r:
            data = chan.recv(16384)
            if not data:
                break
            sock.sendall(data)


# ---------------------------------------------------------------------------
# _Session
# ---------------------------------------------------------------------------


class _Session:
    """A live SSH connection and the remote forwards registered on it.

    Owned by exactly one SSHTransport. Forwards live and die with the session.
    """

    def __init__(self, client: paramiko.SSHClient, target: str):
        self.client = client
        self.forwards: dict[tuple[str, int], RemoteForward] = {}
        self._target = target
        self._stop_event = threading.Event()

    @property
    def transport(self) -> Optional[paramiko.Transport]:
        return self.client.get_transport()

    def is_active(self) -> bool:
        transport = self.transport
        return transport is not None and bool(transport.is_active())

    def forward_remote(self, remote_port: int, local_host: str, local_port: int) -> RemoteForward:
        """Ask the server to listen on 127.0.0.1:remote_port and relay connections back here."""
        transport = self.transport
        if transport is None:
            raise TransportError("SSH session is not active", host=self._target)
        transport.request_port_forward(_FORWARD_BIND, remote_port, handler=self._handle_forwarded)
        forward = RemoteForward(
            remote_port=remote_port,
            bind_address=_FORWARD_BIND,
            local_host=local_host,
            local_port=local_port,
        )
        self.forwards[(_FORWARD_BIND, remote_port)] = forward
        logger.info("Remote forward on %s: %s", self._target, forward)
        return forward

    def _handle_forwarded(self, chan: paramiko.Channel, origin: tuple, server: tuple) -> None:
        # Runs on paramiko's transport thread - hand off immediately
        forward = self.forwards.get((_FORWARD_BIND, server[1]))
        if forward is None:
            logger.warning("Forwarded connection for unregistered port %s on %s", server[1], self._target)
            chan.close()
            return
        thread = threading.Thread(
            target=self._relay,
            args=(chan, forward),
            name=f"fleetlink-forward-{forward.remote_port}",
            daemon=True,
        )
        thread.start()

    def _relay(self, chan: paramiko.Channel, forward: RemoteForward) -> None:
        try:
            sock = socket.create_connection((forward.local_host, forward.local_port))
        except OSError as e:
            logger.error("Forward %s could not reach local server: %s", forward, e)
            chan.close()
            return
        try:
            _bidirectional_forward(sock, chan, self._stop_event)
        finally:
            chan.close()
            sock.close()

    def close(self) -> None:
        """Cancel forwards and close the connection. Errors from close() propagate."""
        self._stop_event.set()
        transport = self.transport
        for forward in list(self.forwards.values()):
            try:
                if transport is not None:
                    transport.cancel_port_forward(forward.bind_address, forward.remote_port)
            except Exception as e:
                logger.debug("Could not cancel forward %s on %s: %s", forward, self._target, e)
        self.forwards.clear()
        self.client.close()


# ---------------------------------------------------------------------------
# SSHTransport
# ---------------------------------------------------------------------------


class SSHTransport(Transport):
    """Transport to one remote host over SSH (paramiko).

    The connection is lazy - established on first operation, reused by every
    later one, and reopened after disconnect() or after the connection drops.

    Args:
        host: Remote hostname or address
        username: Login name (default: Kerberos principal when ``gss_auth`` is set,
                  else the current OS user)
        ssh_options: Passed to paramiko.SSHClient.connect() (port, key_filename,
                     pkey, password, gss_auth, ...), merged over the connect
                     timeout. Two keys are handled here instead: ``known_hosts``
                     (path to load) and ``host_key_policy`` ("auto_add",
                     "warning" or "reject"; default "auto_add").
        options: TransportOptions or mapping with prefix / stream /
                 stream_stdout / stream_stderr / ssh_pty_enable
        connect_timeout: Initial-connect timeout in seconds
                         (default: FLEETLINK_CONNECT_TIMEOUT or 10.0)

    Example:
        with SSHTransport("host.example.com", "deploy") as ssh:
            result = ssh.execute("uname -a")
            print(result.stdout)
    """

    def __init__(
        self,
        host: str,
        username: Optional[str] = None,
        ssh_options: Optional[Mapping[str, Any]] = None,
        options: Union[TransportOptions, Mapping[str, Any], None] = None,
        *,
        connect_timeout: Optional[float] = None,
    ):
        if not host or not host.strip():
            raise ValueError("host must be a non-empty string")
        effective_timeout = connect_timeout if connect_timeout is not None else config.connect_timeout()
        if effective_timeout <= 0:
            raise ValueError(f"connect_timeout must be positive, got {effective_timeout}")

        ssh_options = dict(ssh_options or {})
        policy = ssh_options.pop("host_key_policy", "auto_add")
        if policy not in _HOST_KEY_POLICIES:
            raise ValueError(f"host_key_policy must be one of {sorted(_HOST_KEY_POLICIES)}, got {policy!r}")

        self._host = host
        self._username = username
        self._known_hosts: Optional[str] = ssh_options.pop("known_hosts", None)
        self._host_key_policy: str = policy
        self._ssh_options = ssh_options
        self._options = TransportOptions.from_mapping(options)
        self._connect_timeout = effective_timeout

        self._session: Optional[_Session] = None
        self._state = SessionState.ABSENT

    # ── identity ──

    @property
    def host(self) -> str:
        return self._host

    @property
    def username(self) -> str:
        if not self._username:
            if self._ssh_options.get("gss_auth"):
                self._username = _gssapi_username()
            else:
                self._username = getpass.getuser()
        return self._username

    @property
    def ssh_options(self) -> dict:
        return dict(self._ssh_options)

    @property
    def options(self) -> TransportOptions:
        return self._options

    @property
    def connect_timeout(self) -> float:
        return self._connect_timeout

    @property
    def _target(self) -> str:
        return f"{self.username}@{self._host}"

    # ── session manager ──

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def forwards(self) -> list[RemoteForward]:
        """Remote forwards registered on the current session."""
        if self._session is None:
            return []
        return list(self._session.forwards.values())

    def session(self) -> paramiko.SSHClient:
        """Return the live connection, opening it first if needed."""
        return self._live_session().client

    def _live_session(self) -> _Session:
        if self._session is not None and not self._session.is_active():
            logger.info("SSH connection to %s was lost, reconnecting", self._target)
            self._teardown()
        if self._session is None:
            self._session = self._open_session()
        return self._session

    def _open_session(self) -> _Session:
        previous = self._state
        self._state = SessionState.CONNECTING
        logger.debug(
            "Opening SSH connection to %s (connect_timeout=%ss, options=%s)",
            self._target,
            self._connect_timeout,
            sorted(self._ssh_options),
        )
        client = paramiko.SSHClient()
        try:
            client.load_system_host_keys()
            if self._known_hosts:
                client.load_host_keys(os.path.expanduser(self._known_hosts))
            client.set_missing_host_key_policy(_HOST_KEY_POLICIES[self._host_key_policy]())

            # Short connect timeout to fail fast on dead or stalled hosts; caller options win
            connect_kwargs: dict[str, Any] = {
                "timeout": self._connect_timeout,
                "banner_timeout": self._connect_timeout,
                "auth_timeout": self._connect_timeout,
            }
            connect_kwargs.update(self._ssh_options)
            client.connect(self._host, username=self.username, **connect_kwargs)
        except socket.timeout as e:
            client.close()
            self._state = previous
            raise InitialConnectTimeout(e, host=self._target, timeout=self._connect_timeout) from e
        except Exception:
            client.close()
            self._state = previous
            raise

        self._state = SessionState.CONNECTED
        logger.info("SSH connected to %s", self._target)
        return _Session(client, self._target)

    def _teardown(self) -> None:
        session = self._session
        self._session = None
        self._state = SessionState.CLOSED
        if session is None:
            return
        try:
            session.close()
        except Exception as e:
            # Closing a broken connection must not raise
            logger.debug("Error closing SSH session on %s: %s", self._target, e)

    def disconnect(self) -> None:
        """Close the session if one exists. Never raises."""
        if self._session is None:
            return
        logger.debug("Closing SSH session on %s", self._target)
        self._teardown()

    # ── command execution ──

    def execute(
        self,
        command: str,
        *,
        timeout: Optional[float] = None,
        stream: StreamTarget = None,
        stream_stdout: StreamTarget = None,
        stream_stderr: StreamTarget = None,
    ) -> CommandResult:
        """Execute a command on the remote host.

        The connection is established (bounded by the connect timeout) before
        the operation clock starts; ``timeout`` then covers opening the
        channel, running the command, draining its output and closing.

        Args:
            command: Shell command text
            timeout: Command timeout in seconds (None = no timeout)
            stream: Override the transport's stream option for this call
            stream_stdout: Override stream_stdout for this call
            stream_stderr: Override stream_stderr for this call

        Returns:
            CommandResult with stdout, stderr and exit_status (None if never reported)

        Raises:
            InitialConnectTimeout: If the connection cannot be established in time
            TransportTimeoutError: If the command exceeds ``timeout``
            PtyRequestError: If a PTY was required and refused
            CommandStartError: If the remote end refuses to start the command
        """
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        execute_options = merge_execute_options(
            self._options.stream_options(),
            stream=stream,
            stream_stdout=stream_stdout,
            stream_stderr=stream_stderr,
        )
        execute_options["timeout"] = timeout
        full_command = f"{self._options.prefix or ''}{command}"

        logger.info("Executing %s on %s", full_command, self._target)
        session = self._live_session()  # outside the operation clock, has its own timeout

        deadline = time.monotonic() + timeout if timeout is not None else None
        stdout, stderr, exit_status = self._run(session, command, full_command, execute_options, deadline)

        logger.info("Completed %s on %s: exit status %s", command, self._target, exit_status)
        self._log_output(execute_options, stdout, stderr)
        return CommandResult(
            command=command,
            options=execute_options,
            stdout=stdout,
            stderr=stderr,
            exit_status=exit_status,
        )

    def _run(
        self,
        session: _Session,
        command: str,
        full_command: str,
        execute_options: dict,
        deadline: Optional[float],
    ) -> tuple[str, str, Optional[int]]:
        timeout = execute_options["timeout"]

        def timed_out() -> TransportTimeoutError:
            return TransportTimeoutError(
                f"Command timed out after {timeout}s: {command!r}", host=self._target, timeout=timeout
            )

        transport = session.transport
        if transport is None or not transport.is_active():
            raise TransportError("SSH session is not active", host=self._target)

        try:
            chan = transport.open_session(timeout=_remaining(deadline))
        except paramiko.SSHException as e:
            if deadline is not None and time.monotonic() >= deadline:
                raise timed_out() from e
            raise

        try:
            self._request_pty(chan)
            try:
                chan.exec_command(full_command)
            except paramiko.SSHException as e:
                raise CommandStartError(command, host=self._target) from e
            chan.shutdown_write()

            stdout_parts: list[str] = []
            stderr_parts: list[str] = []
            stdout_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            stderr_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

            while True:
                if deadline is not None and time.monotonic() >= deadline:
                    raise timed_out()
                try:
                    if chan.recv_ready():
                        data = chan.recv(_RECV_SIZE)
                        if data:
                            self._emit(execute_options, stdout_parts, stdout_decoder.decode(data), "stdout")
                    if chan.recv_stderr_ready():
                        data = chan.recv_stderr(_RECV_SIZE)
                        if data:
                            self._emit(execute_options, stderr_parts, stderr_decoder.decode(data), "stderr")
                    if chan.exit_status_ready() and not chan.recv_ready() and not chan.recv_stderr_ready():
                        break
                    if not chan.recv_ready() and not chan.recv_stderr_ready() and not chan.exit_status_ready():
                        wait = _POLL_INTERVAL
                        remaining = _remaining(deadline)
                        if remaining is not None:
                            wait = max(0.0, min(wait, remaining))
                        chan.status_event.wait(wait)
                except socket.timeout as e:
                    raise timed_out() from e

            self._emit(execute_options, stdout_parts, stdout_decoder.decode(b"", final=True), "stdout")
            self._emit(execute_options, stderr_parts, stderr_decoder.decode(b"", final=True), "stderr")

            # paramiko reports -1 when the server sent no exit-status
            status = chan.recv_exit_status()
            exit_status = status if status is not None and status >= 0 else None
            return "".join(stdout_parts), "".join(stderr_parts), exit_status
        finally:
            chan.close()

    def _request_pty(self, chan: paramiko.Channel) -> None:
        pty = self._options.ssh_pty_enable
        if pty is False:
            return
        try:
            chan.get_pty()
        except paramiko.SSHException as e:
            if pty:
                raise PtyRequestError(f"Could not get pty: {e}", host=self._target) from e
            logger.debug("PTY refused on %s, continuing without: %s", self._target, e)

    def _emit(self, execute_options: dict, parts: list[str], text: str, which: str) -> None:
        if not text:
            return
        parts.append(text)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s %s: %s", self._target, which, text.rstrip("\n"))
        if which == "stdout":
            self.stream_chunk(execute_options, text, None)
        else:
            self.stream_chunk(execute_options, None, text)

    def _log_output(self, execute_options: dict, stdout: str, stderr: str) -> None:
        # At DEBUG every chunk was already logged as it arrived
        if logger.isEnabledFor(logging.DEBUG):
            return
        if stderr and not is_streamed(execute_options, "stderr"):
            logger.info("Stderr was:\n%s", stderr)

    # ── file transfer ──

    def read_file(self, path: str) -> bytes:
        logger.debug("Reading file %s from %s", path, self._target)
        buffer = io.BytesIO()
        self._download(path, buffer)
        return buffer.getvalue()

    def download_file(self, path: str, local_path: str) -> None:
        logger.debug("Downloading file %s from %s to local %s", path, self._target, local_path)
        self._download(path, local_path)

    def write_file(self, path: str, content: bytes | str) -> None:
        """Write content to a remote file.

        With a prefix configured, SFTP cannot run privileged, so the content is
        staged in a temporary file and moved into place by a prefixed ``mv``.
        """
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        self._ensure_parent_dir(path)
        if self._options.prefix:
            staging = self._staging_path(path)
            logger.debug("Writing %d bytes to %s on %s", len(data), staging, self._target)
            with self._sftp() as sftp:
                sftp.putfo(io.BytesIO(data), staging)
            self._move_into_place(staging, path)
        else:
            logger.debug("Writing %d bytes to %s on %s", len(data), path, self._target)
            with self._sftp() as sftp:
                sftp.putfo(io.BytesIO(data), path)

    def upload_file(self, local_path: str, path: str) -> None:
        self._ensure_parent_dir(path)
        if self._options.prefix:
            staging = self._staging_path(path)
            logger.debug("Uploading %s to %s on %s", local_path, staging, self._target)
            with self._sftp() as sftp:
                sftp.put(local_path, staging)
            self._move_into_place(staging, path)
        else:
            logger.debug("Uploading %s to %s on %s", local_path, path, self._target)
            with self._sftp() as sftp:
                sftp.put(local_path, path)

    @contextmanager
    def _sftp(self) -> Iterator[paramiko.SFTPClient]:
        """Open an SFTP channel on the session; always closed on exit."""
        session = self._live_session()
        sftp = paramiko.SFTPClient.from_transport(session.transport)
        if sftp is None:
            raise TransportError("Failed to open SFTP session", host=self._target)
        try:
            yield sftp
        finally:
            sftp.close()

    def _download(self, path: str, sink: Union[str, BinaryIO]) -> None:
        with self._sftp() as sftp:
            try:
                if isinstance(sink, str):
                    sftp.get(path, sink)
                else:
                    sftp.getfo(path, sink)
            except (OSError, paramiko.SSHException) as e:
                if _TRANSFER_TEARDOWN.search(str(e)) is None:
                    raise
                logger.debug("Ignoring transfer teardown error for %s on %s: %s", path, self._target, e)

    def _ensure_parent_dir(self, path: str) -> None:
        parent = posixpath.dirname(path) or "."
        self.execute(f"mkdir -p {shlex.quote(parent)}").raise_for_status()

    def _staging_path(self, path: str) -> str:
        name = posixpath.basename(path)
        if not name:
            raise TransferError("Destination must name a file", path, host=self._target)
        return posixpath.join(config.remote_tmpdir(), f"{name}.{random.randrange(2**32)}")

    def _move_into_place(self, staging: str, path: str) -> None:
        result = self.execute(f"mv {shlex.quote(staging)} {shlex.quote(path)}")
        try:
            result.raise_for_status()
        except CommandError:
            self._discard_staging(staging)
            raise

    def _discard_staging(self, staging: str) -> None:
        try:
            self.execute(f"rm -f {shlex.quote(staging)}")
        except TransportError as e:
            logger.warning("Could not remove staging file %s on %s: %s", staging, self._target, e)

    # ── port forwarding ──

    def make_url_available_to_remote(self, local_url: str) -> str:
        """Forward the remote loopback port to a loopback URL on this machine.

        Non-loopback URLs are already reachable and are returned untouched.
        Repeated calls for the same port reuse the existing forward.
        """
        parts = urlsplit(local_url)
        if not parts.hostname:
            raise ValueError(f"URL has no host: {local_url!r}")
        port = parts.port or _DEFAULT_PORTS.get(parts.scheme)
        if port is None:
            raise ValueError(f"URL has no port and scheme {parts.scheme!r} has no default: {local_url!r}")

        address = socket.getaddrinfo(parts.hostname, port, type=socket.SOCK_STREAM)[0][4][0]
        if not ipaddress.ip_address(address.split("%", 1)[0]).is_loopback:
            return local_url

        session = self._live_session()
        if (_FORWARD_BIND, port) not in session.forwards:
            logger.debug("Forwarding local server %s:%d to port %d on %s", address, port, port, self._target)
            session.forward_remote(port, address, port)
        return local_url

    # ── availability ──

    def available(self) -> bool:
        """True if a trivial command completes within the probe timeout."""
        timeout = config.probe_timeout()
        try:
            self.execute("pwd", timeout=timeout)
            return True
        except _UNAVAILABLE_ERRORS as e:
            error: BaseException = e
        except OSError as e:
            if e.errno not in _UNREACHABLE_ERRNOS:
                raise
            error = e
        logger.debug("%s unavailable: could not execute 'pwd' on %s: %r", self._target, self._host, error)
        return False

    def __repr__(self):
        return f"SSHTransport({self._target}, {self._state.value})"


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())


__all__ = ["SSHTransport"]
