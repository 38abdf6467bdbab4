"""In-process reader/writer lock guarding the load-mutate-save cycle."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from loguru import logger


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue behind
    it so a steady stream of reads cannot starve mutations. The lock is not
    reentrant; a thread holding it must not acquire it again.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            except BaseException:
                # Readers queued behind this writer must re-check.
                self._writers_waiting -= 1
                self._cond.notify_all()
                raise
            self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write() called without a matching acquire_write()")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self, operation_name: str = "read") -> Iterator[None]:
        thread_id = threading.current_thread().name
        logger.debug("Thread {} waiting for read lock ({})", thread_id, operation_name)
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()
            logger.debug("Thread {} released read lock ({})", thread_id, operation_name)

    @contextmanager
    def write_locked(self, operation_name: str = "write") -> Iterator[None]:
        thread_id = threading.current_thread().name
        logger.debug("Thread {} waiting for write lock ({})", thread_id, operation_name)
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
            logger.debug("Thread {} released write lock ({})", thread_id, operation_name)
