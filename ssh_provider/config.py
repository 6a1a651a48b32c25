# ssh_provider/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping, Optional


@dataclass(frozen=True)
class Settings:
    handshake_timeout: float = 600.0
    tcp_keepalive: int = 60
    keepalive_interval: float = 60.0
    agent_env_var: str = "SSH_AUTH_SOCK"
    known_hosts: Path = Path.home() / ".ssh" / "known_hosts"
    strict_host_key_checking: bool = True
    insecure_skip_host_key: bool = False
    pool_idle_timeout: float = 300.0
    kubeconfig_path: str = "/etc/kubernetes/admin.conf"
    tmp_dir: Optional[str] = None
    log_file: str = "ssh_provider.log"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, prefix: str = "SSH_PROVIDER_") -> "Settings":
        """Defaults overridden by ``SSH_PROVIDER_<FIELD>`` variables, e.g. SSH_PROVIDER_HANDSHAKE_TIMEOUT=30."""
        env = os.environ if environ is None else environ
        changes = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None:
                continue
            changes[f.name] = _coerce(f.name, getattr(DEF_SETTINGS, f.name), raw)
        return replace(DEF_SETTINGS, **changes)


def _coerce(name: str, default, raw: str):
    if isinstance(default, bool):
        v = raw.strip().lower()
        if v in ("1", "true", "yes", "on"):
            return True
        if v in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{name}: expected a boolean, got {raw!r}")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, Path):
        return Path(raw).expanduser()
    return raw or None if default is None else raw


DEF_SETTINGS = Settings()
