"""
Locking Primitives.

Shared tables (shield sets, calibration data, cases, sessions) are read
far more often than written, so they sit behind a reader/writer lock.
Case and session mutations additionally serialize on a per-key lock so that
work on different keys never contends.
"""

import threading
from contextlib import contextmanager
from typing import Any, Dict, Hashable, Iterator, List


class ReadWriteLock:
    """
    Many concurrent readers or one exclusive writer.

    Writers are preferred: once a writer is waiting, new readers block
    until it has finished, so a steady stream of readers cannot starve
    a writer.

    Example:
        >>> lock = ReadWriteLock()
        >>> with lock.read_locked():
        ...     snapshot = dict(table)
        >>> with lock.write_locked():
        ...     table[key] = value
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer_active = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer_active or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer_active or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer_active = True

    def release_write(self) -> None:
        with self._cond:
            self._writer_active = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class KeyedLocks:
    """
    One re-entrant lock per key, created on first use.

    Used to serialize concurrent transitions on the same case while
    leaving other cases free. An entry lives only while some thread
    holds or waits for it, so the table does not grow with the number
    of keys ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, threads holding or waiting]
        self._entries: Dict[Hashable, List[Any]] = {}

    @contextmanager
    def locked(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


__all__ = ['ReadWriteLock', 'KeyedLocks']
