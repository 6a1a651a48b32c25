# ssh_provider/cli.py
from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .client import SSHProviderClient
from .config import Settings
from .logging_setup import setup_logging
from .remote.errors import RemoteCommandError, SSHProviderError
from .remote.models import Credential, Endpoint

# ---------------- version ----------------
try:
    from importlib.metadata import version as _pkg_version
    __VERSION__ = _pkg_version("ssh-provider")
except Exception:
    __VERSION__ = "0.0.0+dev"

log = logging.getLogger(__name__)


# ---------------- parser builders ----------------
def _common_parent(defaults: Settings) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)

    # Endpoint
    common.add_argument("--host", required=True)
    common.add_argument("--port", type=int, default=22)
    common.add_argument("--user", required=True)

    # Credential
    common.add_argument("--key-path", type=Path, default=None,
                        help="Private key file. Omit to rely on the SSH agent.")
    common.add_argument("--passphrase-env", default="SSH_PROVIDER_PASSPHRASE",
                        help="Environment variable holding the key passphrase.")

    # Host identity
    common.add_argument("--known-hosts", type=Path, default=defaults.known_hosts)
    common.add_argument("--accept-new", action="store_true",
                        help="Accept hosts missing from known_hosts (mismatches still fail).")
    common.add_argument("--insecure", action="store_true",
                        help="Skip host key verification entirely.")

    # Logging
    common.add_argument("-v", "--verbose", action="count", default=1)
    common.add_argument("--log-file", default=defaults.log_file)
    return common


def _build_parser(defaults: Settings) -> argparse.ArgumentParser:
    common = _common_parent(defaults)
    p = argparse.ArgumentParser(
        prog="ssh-provider",
        description="Run commands and upload files on a remote machine over SSH",
    )
    p.add_argument("--version", action="version", version=f"ssh-provider {__VERSION__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", parents=[common], help="Run a command, log its combined output")
    run.add_argument("command")

    out = sub.add_parser("output", parents=[common], help="Run a command, print its stdout")
    out.add_argument("command")

    sub.add_parser("kubeconfig", parents=[common], help="Print the cluster admin kubeconfig")

    put = sub.add_parser("put", parents=[common], help="Upload a local file's content")
    put.add_argument("local", type=Path)
    put.add_argument("remote")
    put.add_argument("--mode", type=lambda s: int(s, 8), default=None, help="Octal mode, e.g. 0644")
    return p


def _client_from_args(args: argparse.Namespace, defaults: Settings) -> SSHProviderClient:
    key = args.key_path.expanduser().read_bytes() if args.key_path else b""
    passphrase = os.environ.get(args.passphrase_env, "")
    settings = replace(
        defaults,
        known_hosts=args.known_hosts,
        strict_host_key_checking=not args.accept_new,
        insecure_skip_host_key=args.insecure,
        log_file=args.log_file,
    )
    return SSHProviderClient(
        Endpoint(host=args.host, port=args.port, username=args.user),
        Credential(private_key=key, passphrase=passphrase),
        settings=settings,
    )


# ---------------- handlers ----------------
def _do_run(client: SSHProviderClient, args: argparse.Namespace) -> int:
    client.process_cmd(args.command)
    return 0


def _do_output(client: SSHProviderClient, args: argparse.Namespace) -> int:
    result = client.process_cmd_with_output(args.command)
    sys.stdout.buffer.write(result.output)
    sys.stdout.flush()
    if result.exit_error is not None:
        log.error("%s", result.exit_error)
        return 1
    return 0


def _do_kubeconfig(client: SSHProviderClient, args: argparse.Namespace) -> int:
    sys.stdout.write(client.get_kubeconfig())
    return 0


def _do_put(client: SSHProviderClient, args: argparse.Namespace) -> int:
    client.write_file(args.local.read_bytes(), args.remote, mode=args.mode)
    log.info("Uploaded %s -> %s:%s", args.local, args.host, args.remote)
    return 0


# ---------------- entrypoint ----------------
def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    defaults = Settings.from_env()
    parser = _build_parser(defaults)
    if not argv:
        parser.print_help()
        return 2
    args = parser.parse_args(argv)
    setup_logging(verbosity=args.verbose, log_file=args.log_file)

    dispatch = {
        "run": _do_run,
        "output": _do_output,
        "kubeconfig": _do_kubeconfig,
        "put": _do_put,
    }
    func = dispatch[args.cmd]

    try:
        client = _client_from_args(args, defaults)
        return int(func(client, args))
    except RemoteCommandError as e:
        logging.error("%s", e)
        return 1
    except (SSHProviderError, OSError) as e:
        logging.error("%s failed: %s", args.cmd, e)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
