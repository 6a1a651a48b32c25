# ssh_provider/logging_setup.py
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional


def setup_logging(verbosity: int = 1, log_file: Optional[str] = "ssh_provider.log") -> None:
    level = logging.INFO if verbosity <= 1 else logging.DEBUG
    if verbosity <= 0:
        level = logging.WARNING

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", "%H:%M:%S")

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(fmt)
    root.addHandler(sh)
    if log_file:
        rf = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8")
        rf.setFormatter(fmt)
        root.addHandler(rf)

    # paramiko's transport logger is chatty at DEBUG
    logging.getLogger("paramiko").setLevel(logging.DEBUG if verbosity >= 3 else logging.WARNING)
