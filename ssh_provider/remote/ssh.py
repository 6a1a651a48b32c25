# ssh_provider/remote/ssh.py
from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, Optional, Sequence

import paramiko

from .auth import close_methods
from .errors import (
    AuthenticationExhaustedError,
    ConnectionTimeoutError,
    DialError,
    HandshakeError,
    SessionError,
    SSHProviderError,
)
from .hostkeys import HostKeyVerifier
from .keepalive import KEEPALIVE_INTERVAL, KeepaliveMonitor
from .models import Endpoint

log = logging.getLogger(__name__)

HANDSHAKE_TIMEOUT = 600.0
TCP_KEEPALIVE_PERIOD = 60

# a stored ssh-rsa key is negotiated under any of these signature algorithms
_RSA_HOST_KEY_TYPES = ("rsa-sha2-512", "rsa-sha2-256", "ssh-rsa")


class Connection:
    """An authenticated transport to one endpoint, plus its keepalive monitor."""

    def __init__(self, endpoint: Endpoint, transport, sock: Optional[socket.socket] = None) -> None:
        self.endpoint = endpoint
        self.transport = transport
        self._sock = sock
        self.keepalive: Optional[KeepaliveMonitor] = None
        self._closed = False

    # Context manager
    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start_keepalive(
        self,
        interval: float = KEEPALIVE_INTERVAL,
        on_failure: Optional[Callable[[Exception], None]] = None,
    ) -> KeepaliveMonitor:
        if self.keepalive is not None:
            raise RuntimeError(f"keepalive already running for {self.endpoint}")
        self.keepalive = KeepaliveMonitor(
            self.transport, interval=interval, name=self.endpoint.address, on_failure=on_failure
        )
        self.keepalive.start()
        return self.keepalive

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_active(self) -> bool:
        return not self._closed and bool(self.transport.is_active())

    @property
    def healthy(self) -> bool:
        if not self.is_active:
            return False
        return self.keepalive is None or self.keepalive.healthy

    def open_session(self, timeout: Optional[float] = None):
        if self._closed:
            raise SessionError(f"connection to {self.endpoint} is closed")
        try:
            return self.transport.open_session(timeout=timeout)
        except (paramiko.SSHException, EOFError, OSError) as e:
            raise SessionError(f"failed to create a session on {self.endpoint}: {e}") from e

    def open_sftp(self) -> paramiko.SFTPClient:
        if self._closed:
            raise SessionError(f"connection to {self.endpoint} is closed")
        try:
            sftp = paramiko.SFTPClient.from_transport(self.transport)
        except (paramiko.SSHException, EOFError, OSError) as e:
            raise SessionError(f"failed to open sftp session on {self.endpoint}: {e}") from e
        if sftp is None:
            raise SessionError(f"sftp subsystem refused by {self.endpoint}")
        return sftp

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.keepalive is not None:
            self.keepalive.cancel()
        try:
            self.transport.close()
        finally:
            if self._sock is not None:
                self._sock.close()
        # a probe blocked on the transport returns once it is closed
        if self.keepalive is not None:
            self.keepalive.stop()
        log.debug("closed connection to %s", self.endpoint)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Connection {self.endpoint} {state}>"


def dial_tcp(endpoint: Endpoint, timeout: float, keepalive_period: int = TCP_KEEPALIVE_PERIOD) -> socket.socket:
    try:
        sock = socket.create_connection((endpoint.host, endpoint.port), timeout=timeout)
    except socket.timeout as e:
        raise ConnectionTimeoutError(f"timed out dialing {endpoint.address}") from e
    except OSError as e:
        raise DialError(endpoint.address, e) from e
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        if hasattr(socket, "TCP_KEEPIDLE"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, keepalive_period)
        elif hasattr(socket, "TCP_KEEPALIVE"):  # macOS
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, keepalive_period)
        if hasattr(socket, "TCP_KEEPINTVL"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, keepalive_period)
    except OSError as e:
        sock.close()
        raise DialError(endpoint.address, f"enabling TCP keepalive: {e}") from e
    return sock


def prefer_host_key_types(transport, known: Sequence[str]) -> None:
    """Move host key types already on record to the front of the negotiation order."""
    if not known:
        return
    options = transport.get_security_options()
    offered = list(options.key_types)
    first = []
    for name in known:
        for alg in (_RSA_HOST_KEY_TYPES if name == "ssh-rsa" else (name,)):
            if alg in offered and alg not in first:
                first.append(alg)
    if first:
        options.key_types = first + [alg for alg in offered if alg not in first]
        log.debug("preferring host key types %s", first)


def _authenticate(transport, endpoint: Endpoint, methods: Sequence[object]) -> None:
    tried = []
    last: Optional[Exception] = None
    for method in methods:
        tried.append(method.name)
        try:
            if method.authenticate(transport, endpoint.username):
                log.info("Authenticated to %s using %s", endpoint, method.name)
                return
        except paramiko.AuthenticationException as e:
            log.debug("%s rejected by %s: %s", method.name, endpoint, e)
            last = e
            continue
        except (paramiko.SSHException, EOFError, OSError) as e:
            raise HandshakeError(f"handshake with {endpoint.address} failed: {e}") from e
    raise AuthenticationExhaustedError(endpoint.username, tried) from last


def establish_connection(
    endpoint: Endpoint,
    methods: Sequence[object],
    verifier: HostKeyVerifier,
    *,
    handshake_timeout: float = HANDSHAKE_TIMEOUT,
    tcp_keepalive: int = TCP_KEEPALIVE_PERIOD,
    keepalive_interval: float = KEEPALIVE_INTERVAL,
    on_keepalive_failure: Optional[Callable[[Exception], None]] = None,
    dial: Callable[..., socket.socket] = dial_tcp,
    transport_factory: Callable[[socket.socket], object] = paramiko.Transport,
) -> Connection:
    """
    Dial, negotiate, verify the host key and authenticate.

    The returned Connection already runs its keepalive monitor. The auth
    methods are consumed: agent channels are closed before returning,
    whether or not the handshake succeeded.
    """
    try:
        if not methods:
            raise AuthenticationExhaustedError(endpoint.username)

        sock = dial(endpoint, handshake_timeout, tcp_keepalive)
        transport = None
        try:
            transport = transport_factory(sock)
            transport.banner_timeout = handshake_timeout
            transport.auth_timeout = handshake_timeout
            transport.handshake_timeout = handshake_timeout
            prefer_host_key_types(transport, verifier.known_key_types(endpoint))

            done = threading.Event()
            transport.start_client(event=done, timeout=handshake_timeout)
            if not done.wait(handshake_timeout):
                raise ConnectionTimeoutError(
                    f"handshake with {endpoint.address} timed out after {handshake_timeout}s"
                )
            if not transport.is_active():
                err = transport.get_exception()
                raise HandshakeError(f"handshake with {endpoint.address} failed: {err}") from err

            verifier.verify(endpoint, transport.get_remote_server_key())
            _authenticate(transport, endpoint, methods)
        except SSHProviderError:
            _discard(transport, sock)
            raise
        except (paramiko.SSHException, EOFError, OSError) as e:
            _discard(transport, sock)
            raise HandshakeError(f"handshake with {endpoint.address} failed: {e}") from e
    finally:
        close_methods(methods)

    conn = Connection(endpoint, transport, sock)
    conn.start_keepalive(keepalive_interval, on_failure=on_keepalive_failure)
    return conn


def _discard(transport, sock: socket.socket) -> None:
    try:
        if transport is not None:
            transport.close()
    finally:
        sock.close()
