"""
Redis cache for slow-changing external lookups (map boundaries, postcodes)
Every operation degrades to a miss when Redis is unreachable
"""

import json
import logging
from typing import Any, Optional

from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)

KEY_PREFIX = "cleanops"


class Cache:
    """JSON values under a shared key namespace"""

    def __init__(self, prefix: str = KEY_PREFIX):
        self.prefix = prefix
        self._client = None

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _redis(self):
        if self._client is None:
            try:
                self._client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Cache disabled, Redis unavailable: {e}")
                return None
        return self._client

    def get(self, key: str) -> Optional[Any]:
        client = self._redis()
        if client is None:
            return None

        try:
            raw = client.get(self._key(key))
        except Exception as e:
            logger.error(f"❌ Cache read failed for {key}: {e}")
            return None

        if raw is None:
            logger.debug(f"Cache miss: {key}")
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Store a JSON-serialisable value for ttl seconds"""
        client = self._redis()
        if client is None:
            return False

        try:
            client.setex(self._key(key), ttl, json.dumps(value))
        except Exception as e:
            logger.error(f"❌ Cache write failed for {key}: {e}")
            return False
        return True


cache = Cache()
