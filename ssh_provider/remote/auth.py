# ssh_provider/remote/auth.py
"""
Credential resolution: turn a Credential (plus an optional agent channel) into
the ordered list of authentication methods tried during the handshake.

Order is fixed: private key first, agent second. Each method authenticates
explicitly against the transport, so the precedence does not depend on which
methods the server happens to offer first.
"""

from __future__ import annotations

import io
import logging
import os
import socket
from dataclasses import dataclass
from typing import List, Optional, Sequence

import paramiko
from paramiko.agent import AgentSSH

from .errors import KeyParseError
from .models import Credential

log = logging.getLogger(__name__)

AGENT_ENV_VAR = "SSH_AUTH_SOCK"

# DSA keys are gone from current paramiko releases
_KEY_CLASSES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


def parse_private_key(material: bytes, passphrase: str = "") -> paramiko.PKey:
    text = material.decode("utf-8", "ignore") if isinstance(material, bytes) else material
    password = passphrase or None
    last: Optional[Exception] = None
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(text), password=password)
        except (paramiko.SSHException, ValueError, TypeError) as e:
            last = e
    if password is None:
        log.error("could not parse private key: %s", last)
    else:
        log.error("could not parse private key with passphrase: %s", last)
    raise KeyParseError(f"could not parse private key: {last}") from last


class SocketAgent(AgentSSH):
    """Agent channel over an already-connected unix socket."""

    def __init__(self, conn: socket.socket) -> None:
        super().__init__()
        self._connect(conn)

    def close(self) -> None:
        self._close()


def _open_agent(path: str) -> SocketAgent:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(path)
        return SocketAgent(sock)
    except BaseException:
        sock.close()
        raise


class CredentialProvider:
    """Supplies the local agent channel, if any. The base provider never does."""

    def agent_channel(self):
        return None


class EnvironmentCredentialProvider(CredentialProvider):
    def __init__(self, env_var: str = AGENT_ENV_VAR) -> None:
        self.env_var = env_var

    def agent_channel(self) -> Optional[SocketAgent]:
        path = os.environ.get(self.env_var)
        if not path:
            return None
        try:
            return _open_agent(path)
        except (OSError, paramiko.SSHException) as e:
            log.debug("SSH agent at %s not reachable: %s", path, e)
            return None


@dataclass
class PrivateKeyAuth:
    key: paramiko.PKey
    passphrase_protected: bool = False

    @property
    def name(self) -> str:
        kind = "passphrase-key" if self.passphrase_protected else "private-key"
        return f"{kind}({self.key.get_name()})"

    def authenticate(self, transport, username: str) -> bool:
        transport.auth_publickey(username, self.key)
        return bool(transport.is_authenticated())

    def close(self) -> None:
        pass


@dataclass
class AgentAuth:
    agent: object

    @property
    def name(self) -> str:
        return "agent"

    def authenticate(self, transport, username: str) -> bool:
        keys = self.agent.get_keys()
        if not keys:
            raise paramiko.AuthenticationException("agent offered no keys")
        last: Optional[Exception] = None
        for key in keys:
            try:
                transport.auth_publickey(username, key)
            except paramiko.AuthenticationException as e:
                last = e
                continue
            if transport.is_authenticated():
                return True
        if last is not None:
            raise last
        return False

    def close(self) -> None:
        self.agent.close()


def resolve_auth_methods(
    credential: Credential,
    provider: Optional[CredentialProvider] = None,
) -> List[object]:
    methods: List[object] = []
    if credential.has_key:
        key = parse_private_key(credential.private_key, credential.passphrase)
        methods.append(PrivateKeyAuth(key, passphrase_protected=bool(credential.passphrase)))
    agent = provider.agent_channel() if provider is not None else None
    if agent is not None:
        methods.append(AgentAuth(agent))
    log.debug("resolved auth methods: %s", [m.name for m in methods])
    return methods


def close_methods(methods: Sequence[object]) -> None:
    for m in methods:
        try:
            m.close()
        except (OSError, paramiko.SSHException) as e:
            log.debug("error closing %s: %s", m.name, e)
