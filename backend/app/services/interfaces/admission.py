"""
Admission control strategy interface.
Allows swapping between different pre-checks in front of reserve().
"""

from abc import ABC, abstractmethod


class AdmissionStrategy(ABC):
    """
    Interface for admission control strategies.

    Implementations:
    - OptimisticAdmission: No pre-check, rely on the versioned conditional update
    - RedisAdmission: Fail-fast check in Redis before the database
    """

    @abstractmethod
    async def admit(self, event_id: int, quantity: int = 1) -> bool:
        """
        Check if a reservation request should reach the database.

        Returns:
            True if admitted (proceed to DB)
            False if rejected (fail fast)
        """

    @abstractmethod
    async def release(self, event_id: int, quantity: int = 1) -> None:
        """Give back units taken by admit() when the DB rejected the request."""

    @abstractmethod
    async def sync(self, event_id: int, remaining: int) -> None:
        """Overwrite the gate's view with the database's sellable remainder."""
