"""
Optimistic admission strategy - no pre-check.
Relies entirely on the database conditional update.
"""

from app.services.interfaces.admission import AdmissionStrategy


class OptimisticAdmission(AdmissionStrategy):
    """
    No admission control - always admit.

    Use when:
    - <100 concurrent organizers per event
    - Normal load scenarios
    """

    async def admit(self, event_id: int, quantity: int = 1) -> bool:
        """Always admit - let DB handle conflicts."""
        return True

    async def release(self, event_id: int, quantity: int = 1) -> None:
        """No-op - nothing to release."""

    async def sync(self, event_id: int, remaining: int) -> None:
        """No-op - no state to sync."""
