"""
Connections to external systems: Redis for caching, the admission gate
and notification pub/sub.
"""

from .redis_client import get_redis, close_redis, RedisClient

__all__ = ["get_redis", "close_redis", "RedisClient"]
