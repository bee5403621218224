# Overview: Service-layer helpers for concurrency; critical sections around commit phases.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from ..validation import PersistenceError

_registry_lock = threading.Lock()
_scope_locks: dict[str, threading.RLock] = {}


def lock_for_scope(key: str) -> threading.RLock:
    """Return the re-entrant lock guarding one ledger scope (created on first use)."""
    with _registry_lock:
        lock = _scope_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _scope_locks[key] = lock
        return lock


@contextmanager
def scope_lock(key: str):
    """
    Critical section for a ledger scope.

    Stock check, deduction and ledger append must run under one of these so a
    host running several checkouts at once keeps the all-or-nothing guarantee.
    Single-actor use never contends.
    """
    lock = lock_for_scope(key)
    with lock:
        yield


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a file operation with retry on transient I/O failures.

    Retries on PersistenceError; the last failure is re-raised.
    """
    for attempt in range(attempts):
        try:
            return func()
        except PersistenceError:
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
