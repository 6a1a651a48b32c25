import io
import threading

import paramiko
import pytest

from ssh_provider.remote.models import Credential, Endpoint


class FakeChannel:
    def __init__(self, stdout=b"", stderr=b"", rc=0, exec_error=None):
        self.stdout = stdout
        self.stderr = stderr
        self.rc = rc
        self.exec_error = exec_error
        self.command = None
        self.combine = False
        self.closed = False

    def set_combine_stderr(self, flag):
        self.combine = flag

    def exec_command(self, command):
        self.command = command
        if self.exec_error is not None:
            raise self.exec_error

    def makefile(self, mode="r"):
        data = self.stdout + self.stderr if self.combine else self.stdout
        return io.BytesIO(data)

    def makefile_stderr(self, mode="r"):
        return io.BytesIO(self.stderr)

    def recv_exit_status(self):
        return self.rc

    def close(self):
        self.closed = True


class FakeSecurityOptions:
    def __init__(self):
        self.key_types = ("ssh-ed25519", "ecdsa-sha2-nistp256", "rsa-sha2-512", "rsa-sha2-256", "ssh-rsa")


class FakeTransport:
    def __init__(self, server_key=None, accepted=(), channels=(), negotiate=True, hang=False):
        self.server_key = server_key
        self.accepted = [k.asbytes() for k in accepted]
        self.channels = channels if isinstance(channels, list) else list(channels)
        self.opened = []
        self.negotiate = negotiate
        self.hang = hang
        self.active = True
        self.authenticated = False
        self.auth_attempts = []
        self.requests = []
        self.fail_requests = False
        self.closed = False
        self._exc = None
        self._lock = threading.Lock()
        self.security_options = FakeSecurityOptions()

    def start_client(self, event=None, timeout=None):
        if self.hang:
            return
        if not self.negotiate:
            self.active = False
            self._exc = paramiko.SSHException("Negotiation failed.")
        event.set()

    def get_security_options(self):
        return self.security_options

    def get_exception(self):
        e, self._exc = self._exc, None
        return e

    def is_active(self):
        return self.active

    def get_remote_server_key(self):
        return self.server_key

    def auth_publickey(self, username, key):
        self.auth_attempts.append((username, key.asbytes()))
        if key.asbytes() in self.accepted:
            self.authenticated = True
            return []
        raise paramiko.AuthenticationException("Authentication failed.")

    def is_authenticated(self):
        return self.authenticated

    def open_session(self, timeout=None):
        if not self.channels:
            raise paramiko.SSHException("no channel")
        chan = self.channels.pop(0)
        self.opened.append(chan)
        return chan

    def global_request(self, kind, data=None, wait=True):
        with self._lock:
            if self.fail_requests or not self.active:
                raise EOFError("transport gone")
            self.requests.append(kind)

    def close(self):
        self.active = False
        self.closed = True


class FakeSocket:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class FakeAgent:
    def __init__(self, keys=()):
        self.keys = tuple(keys)
        self.closed = False

    def get_keys(self):
        return self.keys

    def close(self):
        self.closed = True


def pem(key, password=None):
    buf = io.StringIO()
    key.write_private_key(buf, password=password)
    return buf.getvalue().encode("ascii")


@pytest.fixture(scope="session")
def client_key():
    return paramiko.ECDSAKey.generate()


@pytest.fixture(scope="session")
def agent_key():
    return paramiko.ECDSAKey.generate()


@pytest.fixture(scope="session")
def host_key():
    return paramiko.ECDSAKey.generate()


@pytest.fixture
def endpoint():
    return Endpoint(host="10.0.0.5", port=22, username="core")


@pytest.fixture
def credential(client_key):
    return Credential(private_key=pem(client_key))
