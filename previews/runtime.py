from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator


class AppLocks:
    """One lock per application name, so changes to the same app run one at a time.

    Only serializes callers inside this process. An entry is dropped once no
    caller holds or waits for it.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self._locks: dict[str, Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self.lock:
            return len(self._locks)

    def _acquire_entry(self, app_name: str) -> Lock:
        with self.lock:
            lock = self._locks.get(app_name)
            if lock is None:
                lock = self._locks[app_name] = Lock()
            self._users[app_name] = self._users.get(app_name, 0) + 1
            return lock

    def _release_entry(self, app_name: str) -> None:
        with self.lock:
            self._users[app_name] -= 1
            if self._users[app_name] == 0:
                del self._users[app_name]
                del self._locks[app_name]

    @contextmanager
    def hold(self, app_name: str) -> Iterator[None]:
        lock = self._acquire_entry(app_name)
        try:
            with lock:
                yield
        finally:
            self._release_entry(app_name)
