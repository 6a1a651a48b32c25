# ssh_provider/remote/keepalive.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import paramiko

log = logging.getLogger(__name__)

KEEPALIVE_REQUEST = "keepalive@openssh.com"
KEEPALIVE_INTERVAL = 60.0


class KeepaliveMonitor:
    """
    Periodic protocol-level liveness probe for one transport.

    The first failed probe ends the loop. The failure is recorded
    (``healthy`` turns False) and handed to ``on_failure`` but never raised;
    the next real operation on the connection reports the error itself.
    """

    def __init__(
        self,
        transport,
        interval: float = KEEPALIVE_INTERVAL,
        name: str = "",
        on_failure: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._transport = transport
        self.interval = interval
        self.name = name
        self.on_failure = on_failure
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.probes_sent = 0
        self.failures = 0
        self.last_error: Optional[Exception] = None

    @property
    def healthy(self) -> bool:
        return self.failures == 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("keepalive monitor already started")
        self._thread = threading.Thread(
            target=self._run, name=f"keepalive-{self.name}", daemon=True
        )
        self._thread.start()

    def cancel(self) -> None:
        """Ask the loop to end without waiting for it."""
        self._stop.set()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self.cancel()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout)

    def probe(self) -> bool:
        """Send one liveness request. Returns False once the transport is unusable."""
        if not self._transport.is_active():
            return self._failed(EOFError("transport is closed"))
        try:
            self._transport.global_request(KEEPALIVE_REQUEST, wait=True)
        except (paramiko.SSHException, EOFError, OSError) as e:
            return self._failed(e)
        self.probes_sent += 1
        # global_request returns None both for a refused request and a dead transport
        if not self._transport.is_active():
            return self._failed(EOFError("transport closed during keepalive"))
        return True

    def _failed(self, err: Exception) -> bool:
        self.failures += 1
        self.last_error = err
        log.debug("keepalive %s stopped: %s", self.name, err)
        if self.on_failure is not None and not self._stop.is_set():
            try:
                self.on_failure(err)
            except Exception:
                log.exception("keepalive failure callback raised")
        return False

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            if not self.probe():
                return
