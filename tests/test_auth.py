import paramiko
import pytest

from conftest import FakeAgent, pem
from ssh_provider.remote import auth
from ssh_provider.remote.auth import (
    AgentAuth,
    CredentialProvider,
    EnvironmentCredentialProvider,
    PrivateKeyAuth,
    parse_private_key,
    resolve_auth_methods,
)
from ssh_provider.remote.errors import KeyParseError
from ssh_provider.remote.models import Credential


class StaticProvider(CredentialProvider):
    def __init__(self, agent):
        self.agent = agent

    def agent_channel(self):
        return self.agent


def test_parse_plain_key(client_key):
    key = parse_private_key(pem(client_key))
    assert key.asbytes() == client_key.asbytes()


def test_parse_passphrase_key(client_key):
    key = parse_private_key(pem(client_key, password="s3cret"), "s3cret")
    assert key.asbytes() == client_key.asbytes()


def test_parse_wrong_passphrase_fails(client_key):
    material = pem(client_key, password="s3cret")
    with pytest.raises(KeyParseError):
        parse_private_key(material, "wrong")


def test_parse_encrypted_key_without_passphrase_fails(client_key):
    with pytest.raises(KeyParseError):
        parse_private_key(pem(client_key, password="s3cret"))


def test_parse_garbage_fails():
    with pytest.raises(KeyParseError):
        parse_private_key(b"this is not a key")


def test_resolve_key_before_agent(client_key, agent_key):
    agent = FakeAgent([agent_key])
    methods = resolve_auth_methods(Credential(private_key=pem(client_key)), StaticProvider(agent))
    assert [type(m) for m in methods] == [PrivateKeyAuth, AgentAuth]
    assert methods[0].name.startswith("private-key(")
    assert methods[1].agent is agent


def test_resolve_marks_passphrase_protected(client_key):
    cred = Credential(private_key=pem(client_key, password="pw"), passphrase="pw")
    (method,) = resolve_auth_methods(cred, CredentialProvider())
    assert method.passphrase_protected
    assert method.name.startswith("passphrase-key(")


def test_resolve_agent_only_without_key(agent_key):
    methods = resolve_auth_methods(Credential(), StaticProvider(FakeAgent([agent_key])))
    assert [type(m) for m in methods] == [AgentAuth]


def test_resolve_nothing_available():
    assert resolve_auth_methods(Credential(), CredentialProvider()) == []


def test_resolve_parse_failure_aborts_even_with_agent(client_key, agent_key):
    agent = FakeAgent([agent_key])
    cred = Credential(private_key=pem(client_key, password="pw"), passphrase="nope")
    with pytest.raises(KeyParseError):
        resolve_auth_methods(cred, StaticProvider(agent))


def test_environment_provider_unset(monkeypatch):
    monkeypatch.delenv("SSH_AUTH_SOCK", raising=False)
    assert EnvironmentCredentialProvider().agent_channel() is None


def test_environment_provider_unreachable(monkeypatch, tmp_path):
    monkeypatch.setenv("TEST_AGENT_SOCK", str(tmp_path / "missing.sock"))
    assert EnvironmentCredentialProvider("TEST_AGENT_SOCK").agent_channel() is None


def test_environment_provider_reads_env_at_call_time(monkeypatch):
    seen = []

    def fake_open(path):
        seen.append(path)
        raise ConnectionRefusedError(path)

    monkeypatch.setattr(auth, "_open_agent", fake_open)
    provider = EnvironmentCredentialProvider("TEST_AGENT_SOCK")
    monkeypatch.setenv("TEST_AGENT_SOCK", "/run/a.sock")
    assert provider.agent_channel() is None
    monkeypatch.setenv("TEST_AGENT_SOCK", "/run/b.sock")
    assert provider.agent_channel() is None
    assert seen == ["/run/a.sock", "/run/b.sock"]


def test_environment_provider_returns_agent(monkeypatch, agent_key):
    agent = FakeAgent([agent_key])
    monkeypatch.setattr(auth, "_open_agent", lambda path: agent)
    monkeypatch.setenv("TEST_AGENT_SOCK", "/run/agent.sock")
    assert EnvironmentCredentialProvider("TEST_AGENT_SOCK").agent_channel() is agent


class RecordingTransport:
    def __init__(self, accept=None):
        self.accept = accept
        self.tried = []
        self.ok = False

    def auth_publickey(self, username, key):
        self.tried.append(key)
        if key is self.accept:
            self.ok = True
            return []
        raise paramiko.AuthenticationException("no")

    def is_authenticated(self):
        return self.ok


def test_agent_auth_tries_each_key(client_key, agent_key):
    t = RecordingTransport(accept=agent_key)
    assert AgentAuth(FakeAgent([client_key, agent_key])).authenticate(t, "core")
    assert t.tried == [client_key, agent_key]


def test_agent_auth_without_keys_is_rejected():
    with pytest.raises(paramiko.AuthenticationException):
        AgentAuth(FakeAgent()).authenticate(RecordingTransport(), "core")


def test_agent_auth_close_closes_agent():
    agent = FakeAgent()
    AgentAuth(agent).close()
    assert agent.closed
