# ssh_provider/remote/hostkeys.py
from __future__ import annotations

import base64
import hashlib
import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional, Union

import paramiko

from .errors import HostKeyVerificationError
from .models import Endpoint

log = logging.getLogger(__name__)


def fingerprint(key: paramiko.PKey) -> str:
    """OpenSSH style SHA256 fingerprint, e.g. ``SHA256:nThbg6kXUpJWGl7E1IGOCspRomTxdCARLviKw6E5SY8``."""
    digest = hashlib.sha256(key.asbytes()).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


def known_hosts_name(endpoint: Endpoint) -> str:
    if endpoint.port == 22:
        return endpoint.host
    return f"[{endpoint.host}]:{endpoint.port}"


class HostKeyVerifier:
    def verify(self, endpoint: Endpoint, key: paramiko.PKey) -> None:
        raise NotImplementedError

    def known_key_types(self, endpoint: Endpoint) -> List[str]:
        """Key types already on record for ``endpoint``, offered first during negotiation."""
        return []


class InsecureAcceptAllVerifier(HostKeyVerifier):
    def verify(self, endpoint: Endpoint, key: paramiko.PKey) -> None:
        log.warning(
            "Host key checking disabled: accepting %s key %s for %s",
            key.get_name(), fingerprint(key), endpoint.address,
        )


class PinnedHostKeyVerifier(HostKeyVerifier):
    """Per-endpoint pinned fingerprints, keyed by ``host`` or ``host:port``."""

    def __init__(self, pins: Mapping[str, str], strict: bool = True) -> None:
        self.pins = dict(pins)
        self.strict = strict

    def _pin_for(self, endpoint: Endpoint) -> Optional[str]:
        return self.pins.get(endpoint.address) or self.pins.get(endpoint.host)

    def verify(self, endpoint: Endpoint, key: paramiko.PKey) -> None:
        expected = self._pin_for(endpoint)
        actual = fingerprint(key)
        if expected is None:
            if self.strict:
                raise HostKeyVerificationError(endpoint.address, "no pinned key")
            log.warning("No pinned key for %s; accepting %s", endpoint.address, actual)
            return
        if expected != actual:
            raise HostKeyVerificationError(
                endpoint.address, f"expected {expected}, server presented {actual}"
            )


class KnownHostsVerifier(HostKeyVerifier):
    def __init__(self, path: Union[str, os.PathLike, None] = None, strict: bool = True) -> None:
        self.path = Path(path).expanduser() if path else Path.home() / ".ssh" / "known_hosts"
        self.strict = strict
        self._host_keys: Optional[paramiko.HostKeys] = None

    def _load(self) -> Optional[paramiko.HostKeys]:
        if self._host_keys is None and self.path.exists():
            try:
                self._host_keys = paramiko.HostKeys(str(self.path))
            except OSError as e:
                log.warning("Could not read known_hosts %s: %s", self.path, e)
        return self._host_keys

    def known_key_types(self, endpoint: Endpoint) -> List[str]:
        host_keys = self._load()
        entry = host_keys.lookup(known_hosts_name(endpoint)) if host_keys is not None else None
        return list(entry.keys()) if entry is not None else []

    def verify(self, endpoint: Endpoint, key: paramiko.PKey) -> None:
        name = known_hosts_name(endpoint)
        host_keys = self._load()
        entry = host_keys.lookup(name) if host_keys is not None else None
        if entry is None:
            if self.strict:
                reason = "unknown host" if host_keys is not None else f"{self.path} not available"
                raise HostKeyVerificationError(endpoint.address, reason)
            log.warning("%s not in %s; accepting %s", name, self.path, fingerprint(key))
            return
        known = entry.get(key.get_name())
        if known is None:
            if self.strict:
                raise HostKeyVerificationError(
                    endpoint.address, f"no known {key.get_name()} key"
                )
            log.warning("No known %s key for %s; accepting", key.get_name(), name)
            return
        if known != key:
            raise HostKeyVerificationError(
                endpoint.address,
                f"key mismatch (known {fingerprint(known)}, got {fingerprint(key)})",
            )
