"""
Patient Locks - serialize evaluation and commit per patient
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from medsafety.config import settings
from medsafety.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

# SQLSTATEs meaning "someone else got there first": serialization failure,
# deadlock detected, lock not available
CONFLICT_SQLSTATES = ('40001', '40P01', '55P03')

# Distinguishes our advisory locks from any other application's on the same server
ADVISORY_LOCK_NAMESPACE = 7420


def is_conflict_error(error: Exception) -> bool:
    """True when a driver error is a serialization/lock conflict rather than a fault"""
    if not isinstance(error, DBAPIError):
        return False
    orig = error.orig
    sqlstate = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True
    return 'database is locked' in str(orig).lower()


class PatientLockRegistry:
    """
    One in-process lock per patient.

    Entries are reference counted and dropped once no caller holds or waits
    for them, so the registry does not grow with the patient population.
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self.timeout_seconds = (
            settings.PATIENT_LOCK_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._users: Dict[int, int] = {}

    def _checkout(self, patient_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.setdefault(patient_id, threading.Lock())
            self._users[patient_id] = self._users.get(patient_id, 0) + 1
            return lock

    def _checkin(self, patient_id: int):
        with self._guard:
            remaining = self._users[patient_id] - 1
            if remaining:
                self._users[patient_id] = remaining
            else:
                del self._users[patient_id]
                del self._locks[patient_id]

    @contextmanager
    def hold(self, patient_id: int):
        lock = self._checkout(patient_id)
        try:
            if not lock.acquire(timeout=self.timeout_seconds):
                logger.warning(f"Timed out waiting for prescribing lock on patient {patient_id}")
                raise ConcurrencyConflictError(
                    f"Another prescription for patient {patient_id} is being processed; retry",
                    {'patient_id': patient_id}
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(patient_id)

    def is_held(self, patient_id: int) -> bool:
        with self._guard:
            lock = self._locks.get(patient_id)
        return lock is not None and lock.locked()


def acquire_transaction_lock(session: Session, patient_id: int,
                             timeout_seconds: Optional[float] = None):
    """
    Cross-process lock for the current transaction.

    On PostgreSQL this takes a transaction-scoped advisory lock. On SQLite a
    no-op write on the patient row takes the database-wide write lock, so a
    second process blocks (up to the busy timeout) before it can evaluate.
    Both are released at commit or rollback.
    """
    dialect = session.get_bind().dialect.name
    if timeout_seconds is None:
        timeout_seconds = settings.PATIENT_LOCK_TIMEOUT_SECONDS
    try:
        if dialect == 'postgresql':
            session.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_seconds * 1000)}ms'"))
            session.execute(
                text("SELECT pg_advisory_xact_lock(:namespace, :patient_id)"),
                {'namespace': ADVISORY_LOCK_NAMESPACE, 'patient_id': int(patient_id)}
            )
        elif dialect == 'sqlite':
            session.execute(
                text("UPDATE patients SET is_active = is_active WHERE id = :patient_id"),
                {'patient_id': int(patient_id)}
            )
    except DBAPIError as e:
        if is_conflict_error(e):
            logger.warning(f"Could not lock patient {patient_id} for prescribing: {e}")
            raise ConcurrencyConflictError(
                f"Could not lock patient {patient_id} for prescribing; retry",
                {'patient_id': patient_id}
            ) from e
        raise
