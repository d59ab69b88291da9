"""
Admission control service for high-contention events.
Implements AdmissionStrategy using a Redis counter and a Lua script.

Circuit Breaker Pattern:
  On Redis failure, the gate "fails open" (admits all requests).
  The database remains authoritative; Redis only sheds load early.
  During an outage reserve() falls back to plain optimistic locking.
"""

import os

from app.core.logging import get_logger
from app.core.metrics import record_admission, redis_connection_errors, redis_circuit_breaker_open
from app.infrastructure.redis_client import get_redis
from app.services.interfaces.admission import AdmissionStrategy

logger = get_logger(__name__)

SCRIPT_PATH = os.path.join(os.path.dirname(__file__), '../infrastructure/admission_lua.lua')
with open(SCRIPT_PATH, 'r') as f:
    ADMISSION_SCRIPT = f.read()


def _remaining_key(event_id: int) -> str:
    return f"capacity:remaining:{event_id}"


class RedisAdmission(AdmissionStrategy):
    """
    Redis-based admission control.

    Strategy: fail fast at the Redis gate before hitting the database.

    Use when:
    - Flash sales, hundreds of organizers racing for one event
    - Need to protect the database from retry storms
    """

    def __init__(self):
        self._script = None

    async def _get_script(self):
        client = await get_redis()
        if client is None:
            return None, None
        if self._script is None:
            self._script = client.register_script(ADMISSION_SCRIPT)
        return client, self._script

    async def admit(self, event_id: int, quantity: int = 1) -> bool:
        try:
            client, script = await self._get_script()
            if script is None:
                return True
            result = await script(keys=[_remaining_key(event_id)], args=[quantity])
            redis_circuit_breaker_open.set(0)
            record_admission(bool(result))
            return bool(result)
        except Exception as e:
            # Circuit breaker: on Redis failure, fail open (admit all)
            redis_connection_errors.inc()
            redis_circuit_breaker_open.set(1)
            logger.warning("admission_fail_open", event_id=event_id, error=str(e))
            return True

    async def release(self, event_id: int, quantity: int = 1) -> None:
        try:
            client = await get_redis()
            if client is not None and await client.exists(_remaining_key(event_id)):
                await client.incrby(_remaining_key(event_id), quantity)
        except Exception as e:
            # Best effort: the next sync() overwrites the counter anyway
            logger.warning("admission_release_failed", event_id=event_id, error=str(e))

    async def sync(self, event_id: int, remaining: int) -> None:
        try:
            client = await get_redis()
            if client is not None:
                await client.set(_remaining_key(event_id), max(remaining, 0))
        except Exception as e:
            logger.warning("admission_sync_failed", event_id=event_id, error=str(e))
