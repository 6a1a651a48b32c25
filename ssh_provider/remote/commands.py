# ssh_provider/remote/commands.py
from __future__ import annotations

import logging
import shlex
import threading
from typing import Iterable, List

from .errors import RemoteCommandError
from .models import CommandResult
from .ssh import Connection

log = logging.getLogger(__name__)

KUBECONFIG_PATH = "/etc/kubernetes/admin.conf"
AUTHORIZED_KEYS = "~/.ssh/authorized_keys"


def _exec(conn: Connection, cmd: str, *, combine_stderr: bool = False):
    chan = conn.open_session()
    try:
        if combine_stderr:
            chan.set_combine_stderr(True)
        chan.exec_command(cmd)
        err = []
        reader = None
        if not combine_stderr:
            # drain stderr alongside stdout so neither stream can fill the window
            stderr = chan.makefile_stderr("rb")
            reader = threading.Thread(target=lambda: err.append(stderr.read()), daemon=True)
            reader.start()
        out = chan.makefile("rb").read()
        if reader is not None:
            reader.join()
        rc = chan.recv_exit_status()
    finally:
        chan.close()
    return rc, out, b"".join(err)


def run(conn: Connection, cmd: str) -> None:
    """Run ``cmd`` and log its combined output. Raises RemoteCommandError on a non-zero exit."""
    rc, out, _ = _exec(conn, cmd, combine_stderr=True)
    log.info("Command output = %s", out.decode("utf-8", "replace"))
    if rc != 0:
        raise RemoteCommandError(cmd, rc, output=out)


def run_output(conn: Connection, cmd: str) -> CommandResult:
    """
    Run ``cmd`` and capture stdout only.

    Output is returned even when the command exits non-zero; ``exit_error``
    is set exactly in that case.
    """
    rc, out, err = _exec(conn, cmd)
    if rc != 0:
        log.debug("command %r exited rc=%s", cmd, rc)
        return CommandResult(out, RemoteCommandError(cmd, rc, output=out, stderr=err))
    return CommandResult(out)


def get_kubeconfig_bytes(conn: Connection, path: str = KUBECONFIG_PATH) -> bytes:
    return run_output(conn, f"cat {shlex.quote(path)}").check()


def get_kubeconfig(conn: Connection, path: str = KUBECONFIG_PATH) -> str:
    return get_kubeconfig_bytes(conn, path).decode("utf-8")


# ---------------- authorized_keys provisioning ----------------

def _clean_keys(keys: Iterable[str]) -> List[str]:
    out = []
    for k in keys:
        k = k.strip()
        if not k:
            continue
        if "\n" in k or "\r" in k:
            raise ValueError("public key must be a single line")
        if k not in out:
            out.append(k)
    return out


def write_public_keys(conn: Connection, keys: Iterable[str]) -> None:
    """Append each key to authorized_keys unless an identical line is already there."""
    keys = _clean_keys(keys)
    if not keys:
        return
    steps = [
        "umask 077",
        "mkdir -p ~/.ssh",
        f"touch {AUTHORIZED_KEYS}",
    ]
    for k in keys:
        q = shlex.quote(k)
        steps.append(f"(grep -qxF {q} {AUTHORIZED_KEYS} || echo {q} >> {AUTHORIZED_KEYS})")
    run(conn, " && ".join(steps))


def delete_public_keys(conn: Connection, keys: Iterable[str]) -> None:
    """Drop every authorized_keys line that exactly matches one of ``keys``."""
    keys = _clean_keys(keys)
    if not keys:
        return
    patterns = " ".join(f"-e {shlex.quote(k)}" for k in keys)
    f = AUTHORIZED_KEYS
    cmd = (
        f"[ -f {f} ] || exit 0; "
        f"grep -vxF {patterns} {f} > {f}.tmp; rc=$?; "
        # grep exits 1 when no line survives; anything above, or a temp file
        # that was never created, must leave authorized_keys untouched
        f"[ $rc -gt 1 ] || [ -f {f}.tmp ] || rc=2; "
        f"[ $rc -le 1 ] || {{ rm -f {f}.tmp; exit $rc; }}; "
        f"cat {f}.tmp > {f} && rm -f {f}.tmp"
    )
    run(conn, cmd)
