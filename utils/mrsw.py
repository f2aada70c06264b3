import threading
from contextlib import contextmanager


class ReadWriteLock:
    """Fair multiple-reader, single-writer lock.

    Readers share the lock, a writer holds it alone. Readers that queued while
    a writer was active are let in before that writer (or the next one) can
    lock again, so a writer updating in a loop cannot starve them.
    """

    __slots__ = ["_cond", "_readers", "_waiting_readers", "_writing"]

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._waiting_readers = 0
        self._writing = False

    @contextmanager
    def read(self):
        with self._cond:
            self._waiting_readers += 1
            self._cond.wait_for(lambda: not self._writing)
            self._waiting_readers -= 1
            self._readers += 1
            self._cond.notify_all()  # writers wait on the waiting count
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            self._cond.wait_for(
                lambda: not self._writing
                and self._readers == 0
                and self._waiting_readers == 0
            )
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()
