"""
Redis connection and per-decision word count cache.
Word counts of each decision are kept in a hash so the word index listing
does not have to aggregate the occurrences table on every request. Hashes are
keyed by the decision's index generation, so counts computed from a replaced
index can never be served for a newer one.
"""
import logging
from typing import Dict, Optional

import redis

from app.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper for caching word counts per decision."""

    # Redis key prefix for word counts (decision:generation -> hash of word: count)
    WORD_COUNTS_PREFIX = "decision_words:"

    def __init__(self, url: Optional[str] = None):
        """Initialize Redis connection."""
        self.url = url or settings.redis_url
        self.client: Optional[redis.Redis] = None
        self._connect()

    def _connect(self):
        """Establish Redis connection."""
        try:
            self.client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            # Test connection
            self.client.ping()
        except redis.RedisError as e:
            logger.warning("Could not connect to Redis, word counts will not be cached: %s", e)
            self.client = None

    def is_available(self) -> bool:
        """Check if Redis is available."""
        if self.client is None:
            return False
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False

    def _key(self, decision_id: int, generation: int) -> str:
        return f"{self.WORD_COUNTS_PREFIX}{decision_id}:{generation}"

    def cache_word_counts(self, decision_id: int, generation: int, counts: Dict[str, int]) -> None:
        """
        Replace the cached word counts of one index generation of a decision.
        Delete and refill run in one MULTI block so readers never see a partial hash.

        Args:
            decision_id: Decision the counts belong to
            generation: Index generation the counts were computed from
            counts: Mapping of word to number of occurrences
        """
        if not self.is_available():
            return

        try:
            key = self._key(decision_id, generation)
            pipe = self.client.pipeline(transaction=True)
            pipe.delete(key)
            if counts:
                pipe.hset(key, mapping=counts)
                pipe.expire(key, settings.word_cache_ttl)
            pipe.execute()
        except redis.RedisError as e:
            logger.warning("Error caching word counts for decision %s: %s", decision_id, e)

    def get_word_counts(self, decision_id: int, generation: int) -> Optional[Dict[str, int]]:
        """
        Get the cached word counts of one index generation of a decision.

        Returns:
            Mapping of word to count, or None on a cache miss
        """
        if not self.is_available():
            return None

        try:
            raw = self.client.hgetall(self._key(decision_id, generation))
        except redis.RedisError as e:
            logger.warning("Error reading word counts for decision %s: %s", decision_id, e)
            return None
        if not raw:
            return None
        return {word: int(count) for word, count in raw.items()}

    def invalidate_decision(self, decision_id: int) -> None:
        """Drop the cached word counts of every generation of a decision."""
        if not self.is_available():
            return

        try:
            keys = list(self.client.scan_iter(match=f"{self.WORD_COUNTS_PREFIX}{decision_id}:*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Error invalidating word counts for decision %s: %s", decision_id, e)

    def clear_word_counts(self) -> None:
        """
        Clear every cached word count.
        Useful for testing or reset.
        """
        if not self.is_available():
            return

        try:
            keys = list(self.client.scan_iter(match=f"{self.WORD_COUNTS_PREFIX}*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Error clearing word counts: %s", e)


# Global Redis client instance
redis_client = RedisClient()


def get_redis_client() -> RedisClient:
    """Get the global Redis client instance."""
    return redis_client
