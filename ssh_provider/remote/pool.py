# ssh_provider/remote/pool.py
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .models import Credential, Endpoint
from .ssh import Connection

log = logging.getLogger(__name__)

ConnectFn = Callable[[Endpoint, Credential, Optional[Callable[[Exception], None]]], Connection]
PoolKey = Tuple[Endpoint, Credential]


@dataclass
class _Entry:
    conn: Connection
    refs: int = 0
    idle_since: Optional[float] = None
    invalid: bool = False


class ConnectionPool:
    """
    Shares one Connection per (endpoint, credential) between callers.

    ``connect(endpoint, credential, on_keepalive_failure)`` builds new
    connections. Entries are reference counted; an entry with no users for
    ``idle_timeout`` seconds is closed by the pool's reaper thread, on the next
    acquire or release, or by an explicit ``evict_idle``. A keepalive failure
    invalidates the entry at once: it is closed when its last user
    releases it and never handed out again.
    """

    def __init__(
        self,
        connect: ConnectFn,
        idle_timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        reap_interval: Optional[float] = None,
    ) -> None:
        self._connect = connect
        self.idle_timeout = idle_timeout
        self.reap_interval = idle_timeout if reap_interval is None else reap_interval
        self._clock = clock
        self._reaper: Optional[threading.Thread] = None
        self._reaper_stop = threading.Event()
        self._lock = threading.Lock()
        self._entries: Dict[PoolKey, _Entry] = {}
        self._retired: Dict[int, _Entry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def acquire(self, endpoint: Endpoint, credential: Credential) -> Iterator[Connection]:
        conn = self._checkout(endpoint, credential)
        try:
            yield conn
        finally:
            self._release((endpoint, credential), conn)

    def _checkout(self, endpoint: Endpoint, credential: Credential) -> Connection:
        key = (endpoint, credential)
        stale: List[Connection] = []
        with self._lock:
            self._sweep(self._clock(), stale)
            entry = self._entries.get(key)
            if entry is not None and (entry.invalid or not entry.conn.healthy):
                self._retire(key, entry, stale)
                entry = None
            if entry is not None:
                entry.refs += 1
                entry.idle_since = None
                log.debug("reusing pooled connection %s", entry.conn)
        self._close_all(stale)
        if entry is not None:
            return entry.conn

        # handshake outside the lock; when two first callers race, the
        # later connection is closed and the pooled one shared
        holder: Dict[str, Connection] = {}
        conn = self._connect(
            endpoint, credential,
            lambda err: self.invalidate(endpoint, credential, holder.get("conn")),
        )
        holder["conn"] = conn
        loser: Optional[Connection] = None
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None and not existing.invalid and existing.conn.healthy:
                existing.refs += 1
                existing.idle_since = None
                loser, conn = conn, existing.conn
            else:
                if existing is not None:
                    self._retire(key, existing, stale)
                self._entries[key] = _Entry(conn, refs=1)
                self._start_reaper()
        if loser is not None:
            stale.append(loser)
        self._close_all(stale)
        return conn

    def _retire(self, key: PoolKey, entry: _Entry, stale: List[Connection]) -> None:
        # caller holds the lock; users still holding the connection keep it
        # until their release
        del self._entries[key]
        if entry.refs > 0:
            self._retired[id(entry.conn)] = entry
        else:
            stale.append(entry.conn)

    def _release(self, key: PoolKey, conn: Connection) -> None:
        stale: List[Connection] = []
        with self._lock:
            entry = self._entries.get(key)
            retired = entry is None or entry.conn is not conn
            if retired:
                entry = self._retired.get(id(conn))
            if entry is None:
                stale.append(conn)
            else:
                entry.refs -= 1
                if entry.refs <= 0:
                    entry.refs = 0
                    if retired:
                        del self._retired[id(conn)]
                        stale.append(conn)
                    elif entry.invalid or not conn.healthy:
                        del self._entries[key]
                        stale.append(conn)
                    else:
                        entry.idle_since = self._clock()
            self._sweep(self._clock(), stale)
        self._close_all(stale)

    def invalidate(
        self,
        endpoint: Endpoint,
        credential: Credential,
        conn: Optional[Connection] = None,
    ) -> None:
        """Stop handing out the pooled connection; ``conn`` limits this to that exact connection."""
        key = (endpoint, credential)
        stale: List[Connection] = []
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or (conn is not None and entry.conn is not conn):
                return
            entry.invalid = True
            self._retire(key, entry, stale)
        log.info("invalidated pooled connection to %s", endpoint)
        self._close_all(stale)

    def _sweep(self, now: float, stale: List[Connection]) -> None:
        # caller holds the lock
        for key, entry in list(self._entries.items()):
            if entry.refs == 0 and entry.idle_since is not None and now - entry.idle_since >= self.idle_timeout:
                del self._entries[key]
                stale.append(entry.conn)
                log.debug("evicting idle connection %s", entry.conn)

    def _start_reaper(self) -> None:
        # caller holds the lock
        if self._reaper is not None or self.reap_interval <= 0:
            return
        self._reaper_stop = threading.Event()
        self._reaper = threading.Thread(
            target=self._reap, args=(self._reaper_stop,), name="ssh-pool-reaper", daemon=True
        )
        self._reaper.start()

    def _reap(self, stop: threading.Event) -> None:
        while not stop.wait(self.reap_interval):
            self.evict_idle()

    def evict_idle(self) -> int:
        stale: List[Connection] = []
        with self._lock:
            self._sweep(self._clock(), stale)
        self._close_all(stale)
        return len(stale)

    def close(self) -> None:
        with self._lock:
            self._reaper_stop.set()
            self._reaper = None
            stale = [e.conn for e in self._entries.values()]
            stale.extend(e.conn for e in self._retired.values())
            self._entries.clear()
            self._retired.clear()
        self._close_all(stale)

    @staticmethod
    def _close_all(conns: List[Connection]) -> None:
        for c in conns:
            c.close()
