# ssh_provider/remote/sftp.py
from __future__ import annotations

import logging
import os
import tempfile
from typing import Optional, Union

import paramiko

from .errors import LocalStagingError, TransferError
from .ssh import Connection

log = logging.getLogger(__name__)


def _stage(fh, data: bytes) -> None:
    fh.write(data)
    fh.flush()


def write_file(
    conn: Connection,
    content: Union[str, bytes],
    remote_path: str,
    *,
    mode: Optional[int] = None,
    tmp_dir: Optional[str] = None,
) -> None:
    """
    Stage ``content`` in a local temp file and copy it to ``remote_path`` over SFTP.
    The temp file is removed on every exit path.
    """
    data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
    try:
        fd, tmp_path = tempfile.mkstemp(prefix="ssh-provider-", dir=tmp_dir)
    except OSError as e:
        raise LocalStagingError(f"could not create temporary file: {e}") from e
    try:
        try:
            with os.fdopen(fd, "wb") as fh:
                _stage(fh, data)
        except OSError as e:
            raise LocalStagingError(f"could not write temporary file {tmp_path}: {e}") from e

        sftp = conn.open_sftp()
        try:
            log.info("Uploading %d bytes -> %s:%s", len(data), conn.endpoint.host, remote_path)
            sftp.put(tmp_path, remote_path)
            if mode is not None:
                sftp.chmod(remote_path, mode)
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise TransferError(remote_path, e) from e
        finally:
            sftp.close()
    finally:
        try:
            os.remove(tmp_path)
        except FileNotFoundError:
            pass
