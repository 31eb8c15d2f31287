"""Database cache backend with atomic counters for django-ratelimit."""

from typing import Optional

from django.core.cache.backends.db import DatabaseCache
from django.db import router, transaction


class AtomicIncrementDatabaseCache(DatabaseCache):
    """
    Database cache whose ``incr`` runs inside a single transaction.

    The stock ``DatabaseCache.incr`` reads and writes in separate statements,
    which lets two concurrent requests store the same counter value.
    """

    def incr(self, key: str, delta: int = 1, version: Optional[int] = None) -> int:
        """Increment ``key`` by ``delta``, creating it when absent."""
        db = router.db_for_write(self.cache_model_class)
        with transaction.atomic(using=db):
            if self.add(key, delta, version=version):
                return delta

            current = self.get(key, version=version)
            try:
                value = int(current) + delta
            except (TypeError, ValueError):
                # Counter was overwritten with something non-numeric
                value = delta
            self.set(key, value, version=version)
            return value

    def decr(self, key: str, delta: int = 1, version: Optional[int] = None) -> int:
        """Decrement cache value atomically."""
        return self.incr(key, -delta, version=version)
