"""
Admission strategy factory.
Configures which admission control strategy to use.
"""

from typing import Optional

from app.core.config import get_settings
from app.services.admission_service import RedisAdmission
from app.services.interfaces.admission import AdmissionStrategy
from app.services.interfaces.optimistic_admission import OptimisticAdmission


def get_admission_strategy() -> AdmissionStrategy:
    """
    Build the configured admission strategy.

    ADMISSION_STRATEGY=redis enables the Redis gate; anything else keeps
    plain optimistic locking.
    """
    if get_settings().ADMISSION_STRATEGY == "redis":
        return RedisAdmission()
    return OptimisticAdmission()


# Singleton instance
_strategy: Optional[AdmissionStrategy] = None


def get_admission() -> AdmissionStrategy:
    """Get admission strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_admission_strategy()
    return _strategy


# Gate bookkeeping for the current transaction, kept in Session.info.
# The gate only learns about counter changes once they are committed.
PENDING_SYNCS = "admission_pending_syncs"
ADMITTED_UNITS = "admission_admitted_units"


def defer_sync(db, event_id: int, remaining: int) -> None:
    """Queue a gate sync to run after the session commits; the last value wins."""
    db.info.setdefault(PENDING_SYNCS, {})[event_id] = remaining


def track_admitted(db, event_id: int, quantity: int) -> None:
    """Remember units taken at the gate so a rollback can give them back."""
    db.info.setdefault(ADMITTED_UNITS, []).append((event_id, quantity))


async def apply_after_commit(db) -> None:
    db.info.pop(ADMITTED_UNITS, None)
    admission = get_admission()
    for event_id, remaining in db.info.pop(PENDING_SYNCS, {}).items():
        await admission.sync(event_id, remaining)


async def discard_after_rollback(db) -> None:
    db.info.pop(PENDING_SYNCS, None)
    admission = get_admission()
    for event_id, quantity in db.info.pop(ADMITTED_UNITS, []):
        await admission.release(event_id, quantity)
