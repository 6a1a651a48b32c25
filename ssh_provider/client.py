# ssh_provider/client.py
"""
Provider-facing client: one Endpoint + Credential pair, one method per
remote operation. Without a pool every call is a full
connect -> act -> disconnect cycle.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Optional, Union

from .config import DEF_SETTINGS, Settings
from .remote import commands, sftp
from .remote.auth import CredentialProvider, EnvironmentCredentialProvider, resolve_auth_methods
from .remote.hostkeys import HostKeyVerifier, InsecureAcceptAllVerifier, KnownHostsVerifier
from .remote.models import CommandResult, Credential, Endpoint
from .remote.pool import ConnectionPool
from .remote.ssh import Connection, establish_connection

log = logging.getLogger(__name__)


def default_verifier(settings: Settings) -> HostKeyVerifier:
    if settings.insecure_skip_host_key:
        return InsecureAcceptAllVerifier()
    return KnownHostsVerifier(settings.known_hosts, strict=settings.strict_host_key_checking)


class SSHProviderClient:
    def __init__(
        self,
        endpoint: Endpoint,
        credential: Credential,
        *,
        settings: Settings = DEF_SETTINGS,
        credential_provider: Optional[CredentialProvider] = None,
        host_key_verifier: Optional[HostKeyVerifier] = None,
        pool: Optional[ConnectionPool] = None,
        connect: Optional[Callable[..., Connection]] = None,
    ) -> None:
        self.endpoint = endpoint
        self.credential = credential
        self.settings = settings
        self.credential_provider = (
            credential_provider
            if credential_provider is not None
            else EnvironmentCredentialProvider(settings.agent_env_var)
        )
        self.host_key_verifier = host_key_verifier or default_verifier(settings)
        self.pool = pool
        self._connect_fn = connect or establish_connection

    def connect(
        self,
        endpoint: Optional[Endpoint] = None,
        credential: Optional[Credential] = None,
        on_keepalive_failure: Optional[Callable[[Exception], None]] = None,
    ) -> Connection:
        """Open a fresh authenticated connection. Also the pool's connect function."""
        endpoint = endpoint or self.endpoint
        credential = credential or self.credential
        methods = resolve_auth_methods(credential, self.credential_provider)
        s = self.settings
        return self._connect_fn(
            endpoint,
            methods,
            self.host_key_verifier,
            handshake_timeout=s.handshake_timeout,
            tcp_keepalive=s.tcp_keepalive,
            keepalive_interval=s.keepalive_interval,
            on_keepalive_failure=on_keepalive_failure,
        )

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        if self.pool is not None:
            with self.pool.acquire(self.endpoint, self.credential) as conn:
                yield conn
            return
        with self.connect() as conn:
            yield conn

    def process_cmd(self, cmd: str) -> None:
        with self.connection() as conn:
            commands.run(conn, cmd)

    def process_cmd_with_output(self, cmd: str) -> CommandResult:
        with self.connection() as conn:
            return commands.run_output(conn, cmd)

    def get_kubeconfig(self) -> str:
        with self.connection() as conn:
            return commands.get_kubeconfig(conn, self.settings.kubeconfig_path)

    def get_kubeconfig_bytes(self) -> bytes:
        with self.connection() as conn:
            return commands.get_kubeconfig_bytes(conn, self.settings.kubeconfig_path)

    def write_file(self, content: Union[str, bytes], remote_path: str, mode: Optional[int] = None) -> None:
        with self.connection() as conn:
            sftp.write_file(conn, content, remote_path, mode=mode, tmp_dir=self.settings.tmp_dir)

    def write_public_keys(self, public_keys: Iterable[str]) -> None:
        keys = list(public_keys)
        if not keys:
            return
        with self.connection() as conn:
            commands.write_public_keys(conn, keys)

    def delete_public_keys(self, public_keys: Iterable[str]) -> None:
        keys = list(public_keys)
        if not keys:
            return
        with self.connection() as conn:
            commands.delete_public_keys(conn, keys)


def new_pool(client: SSHProviderClient) -> ConnectionPool:
    """A pool that builds connections with ``client``'s settings, verifier and agent provider."""
    return ConnectionPool(client.connect, idle_timeout=client.settings.pool_idle_timeout)
