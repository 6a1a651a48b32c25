"""
Remote utilities: paramiko connection setup, command sessions and SFTP upload.
Everything a caller needs is re-exported here.
"""

from .auth import (
    AgentAuth,
    CredentialProvider,
    EnvironmentCredentialProvider,
    PrivateKeyAuth,
    parse_private_key,
    resolve_auth_methods,
)
from .commands import (
    delete_public_keys,
    get_kubeconfig,
    get_kubeconfig_bytes,
    run,
    run_output,
    write_public_keys,
)
from .errors import (
    AuthenticationError,
    AuthenticationExhaustedError,
    ConnectionTimeoutError,
    DialError,
    HandshakeError,
    HostKeyVerificationError,
    KeyParseError,
    LocalStagingError,
    RemoteCommandError,
    SessionError,
    SSHProviderError,
    TransferError,
)
from .hostkeys import (
    HostKeyVerifier,
    InsecureAcceptAllVerifier,
    KnownHostsVerifier,
    PinnedHostKeyVerifier,
)
from .keepalive import KeepaliveMonitor
from .models import CommandResult, Credential, Endpoint
from .pool import ConnectionPool
from .sftp import write_file
from .ssh import Connection, establish_connection

__all__ = [
    "AgentAuth",
    "AuthenticationError",
    "AuthenticationExhaustedError",
    "CommandResult",
    "Connection",
    "ConnectionPool",
    "ConnectionTimeoutError",
    "Credential",
    "CredentialProvider",
    "DialError",
    "Endpoint",
    "EnvironmentCredentialProvider",
    "HandshakeError",
    "HostKeyVerificationError",
    "HostKeyVerifier",
    "InsecureAcceptAllVerifier",
    "KeepaliveMonitor",
    "KeyParseError",
    "KnownHostsVerifier",
    "LocalStagingError",
    "PinnedHostKeyVerifier",
    "PrivateKeyAuth",
    "RemoteCommandError",
    "SSHProviderError",
    "SessionError",
    "TransferError",
    "delete_public_keys",
    "establish_connection",
    "get_kubeconfig",
    "get_kubeconfig_bytes",
    "parse_private_key",
    "resolve_auth_methods",
    "run",
    "run_output",
    "write_file",
    "write_public_keys",
]
