# ssh_provider/remote/errors.py
"""
Exception hierarchy for the SSH provider client.

    SSHProviderError
    ├── DialError                     transport could not be opened
    ├── AuthenticationError
    │   ├── KeyParseError             malformed key / wrong passphrase
    │   └── AuthenticationExhaustedError
    ├── HandshakeError
    │   ├── ConnectionTimeoutError
    │   └── HostKeyVerificationError
    ├── SessionError                  channel could not be opened
    ├── RemoteCommandError            non-zero exit status
    ├── LocalStagingError             temp file create/write failed
    └── TransferError                 remote copy failed
"""

from __future__ import annotations

from typing import Optional, Sequence


class SSHProviderError(Exception):
    pass


class DialError(SSHProviderError):
    def __init__(self, address: str, reason: object = None) -> None:
        self.address = address
        msg = f"failed to dial {address}"
        if reason is not None:
            msg += f": {reason}"
        super().__init__(msg)


class AuthenticationError(SSHProviderError):
    pass


class KeyParseError(AuthenticationError):
    pass


class AuthenticationExhaustedError(AuthenticationError):
    def __init__(self, username: str, tried: Sequence[str] = ()) -> None:
        self.username = username
        self.tried = list(tried)
        if self.tried:
            msg = f"all authentication methods rejected for {username}: {', '.join(self.tried)}"
        else:
            msg = f"no authentication methods available for {username}"
        super().__init__(msg)


class HandshakeError(SSHProviderError):
    pass


class ConnectionTimeoutError(HandshakeError):
    pass


class HostKeyVerificationError(HandshakeError):
    def __init__(self, host: str, reason: str) -> None:
        self.host = host
        super().__init__(f"host key verification failed for {host}: {reason}")


class SessionError(SSHProviderError):
    pass


class RemoteCommandError(SSHProviderError):
    def __init__(
        self,
        command: str,
        exit_status: int,
        output: bytes = b"",
        stderr: bytes = b"",
    ) -> None:
        self.command = command
        self.exit_status = exit_status
        self.output = output
        self.stderr = stderr
        msg = f"remote command failed rc={exit_status}: {command}"
        detail = (stderr or b"").decode("utf-8", "ignore").strip()
        if detail:
            msg += f"\n{detail}"
        super().__init__(msg)


class LocalStagingError(SSHProviderError):
    pass


class TransferError(SSHProviderError):
    def __init__(self, remote_path: str, reason: Optional[object] = None) -> None:
        self.remote_path = remote_path
        msg = f"failed to copy to {remote_path}"
        if reason is not None:
            msg += f": {reason}"
        super().__init__(msg)
