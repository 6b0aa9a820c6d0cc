# storefront/services/lock_service.py
from contextlib import contextmanager
from uuid import uuid4

import redis

from storefront.domain.errors import ConcurrencyConflict
from storefront.utils.logging import get_logger
from storefront.utils.retry import redis_retry
from storefront.utils.settings import ORDER_LOCK_TTL_SECONDS, REDIS_URL

logger = get_logger(__name__)

# compare-and-delete, runs atomically inside redis
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived mutual exclusion over redis.

    - acquire: SET key token NX EX ttl
    - release: only the holder's token can delete the key (lua)
    - the TTL bounds how long a crashed holder blocks everybody else
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def acquire(self, key: str, token: str, ttl: int) -> bool:
        logger.debug("acquire lock", key=key)
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, token: str) -> bool:
        logger.debug("release lock", key=key)
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, token))

    @contextmanager
    def hold(self, key: str, ttl: int = ORDER_LOCK_TTL_SECONDS):
        token = uuid4().hex
        if not self.acquire(key, token, ttl):
            raise ConcurrencyConflict(f"Resource {key} is locked by another operation, retry later", key=key)
        try:
            yield token
        finally:
            if not self.release(key, token):
                logger.warning("lock expired before release", key=key)

    def order_lock(self, order_id: int, ttl: int = ORDER_LOCK_TTL_SECONDS):
        return self.hold(f"order:{order_id}:lock", ttl)

    def checkout_lock(self, checkout_id: int, ttl: int = ORDER_LOCK_TTL_SECONDS):
        return self.hold(f"checkout:{checkout_id}:lock", ttl)
