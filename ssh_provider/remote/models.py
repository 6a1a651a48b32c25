# ssh_provider/remote/models.py
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Mapping, Optional, Union

from .errors import KeyParseError, RemoteCommandError


@dataclass(frozen=True)
class Endpoint:
    host: str
    username: str
    port: int = 22

    def __post_init__(self) -> None:
        if not self.host or not self.host.strip():
            raise ValueError("Endpoint host must be non-empty")
        if not self.username:
            raise ValueError("Endpoint username must be non-empty")
        if not 1 <= int(self.port) <= 65535:
            raise ValueError(f"Endpoint port must be 1-65535, got {self.port}")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.username}@{self.address}"


@dataclass(frozen=True)
class Credential:
    """Private key material plus optional passphrase. Never written to disk."""

    private_key: bytes = field(default=b"", repr=False)
    passphrase: str = field(default="", repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.private_key, str):
            object.__setattr__(self, "private_key", self.private_key.encode("utf-8"))

    @property
    def has_key(self) -> bool:
        return bool(self.private_key and self.private_key.strip())

    @classmethod
    def from_secret(
        cls,
        data: Mapping[str, Union[bytes, str]],
        key: str = "private-key",
        passphrase: str = "",
    ) -> "Credential":
        # secret payloads carry the key base64 encoded
        raw = data.get(key)
        if not raw:
            return cls(passphrase=passphrase)
        if isinstance(raw, str):
            raw = raw.encode("ascii", "replace")
        # wrapped output of base64(1) and encodebytes carries line breaks
        raw = raw.replace(b"\r", b"").replace(b"\n", b"")
        try:
            decoded = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise KeyParseError(f"secret entry {key!r} is not valid base64") from e
        return cls(private_key=decoded, passphrase=passphrase)


@dataclass
class CommandResult:
    output: bytes
    exit_error: Optional[RemoteCommandError] = None

    @property
    def ok(self) -> bool:
        return self.exit_error is None

    @property
    def text(self) -> str:
        return self.output.decode("utf-8", "replace")

    def check(self) -> bytes:
        if self.exit_error is not None:
            raise self.exit_error
        return self.output
