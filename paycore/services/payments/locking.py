"""Per-payment lock providers for the service's read-check-write sequences.

`NoLocks` is the default: two concurrent mutations of the same payment can
both pass their status check and the later save wins. `KeyedLocks`
serializes mutations per payment id within one process. Neither coordinates
across processes; that needs a version column or a database lock.
"""

import threading
import weakref
from contextlib import AbstractContextManager, nullcontext
from typing import Protocol


class LockProvider(Protocol):
    def for_payment(self, payment_id: str) -> AbstractContextManager: ...


class NoLocks:
    def for_payment(self, payment_id: str) -> AbstractContextManager:
        return nullcontext()


class KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        # Entries vanish once no caller holds the lock.
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def for_payment(self, payment_id: str) -> AbstractContextManager:
        with self._guard:
            lock = self._locks.get(payment_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[payment_id] = lock
            return lock
