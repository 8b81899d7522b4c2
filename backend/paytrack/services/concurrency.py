# Overview: Service-layer helpers for transactions and locking around critical writes.

from __future__ import annotations

import threading
from contextlib import contextmanager

from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class _ScopeLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


# key -> lock plus count of holders and waiters; an entry leaves when the count drops to zero
_scope_locks: dict[str, _ScopeLock] = {}
_scope_locks_guard = threading.Lock()


def _acquire_entry(key: str) -> _ScopeLock:
    with _scope_locks_guard:
        entry = _scope_locks.get(key)
        if entry is None:
            entry = _ScopeLock()
            _scope_locks[key] = entry
        entry.users += 1
        return entry


def _release_entry(key: str, entry: _ScopeLock) -> None:
    with _scope_locks_guard:
        entry.users -= 1
        if entry.users == 0:
            del _scope_locks[key]


@contextmanager
def scope_lock(key: str):
    """
    Process-local mutual exclusion keyed by scope.

    Two waterfalls on the same scope run one after the other; different scopes
    proceed in parallel.
    """
    entry = _acquire_entry(key)
    try:
        with entry.lock:
            yield
    finally:
        _release_entry(key, entry)


@contextmanager
def atomic(session=None):
    """
    Commit on success, roll back and re-raise on any failure.

    A version-counter mismatch (another writer got there first) surfaces as
    ConflictError. No retry: callers see the failure.
    """
    session = session if session is not None else db.session
    try:
        yield session
        session.commit()
    except StaleDataError as e:
        session.rollback()
        raise ConflictError("The record was changed by another request; retry") from e
    except Exception:
        session.rollback()
        raise
