import logging
import time
import redis
from examsim.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.Redis.from_url(
    settings.REDIS_URL,
    decode_responses=True,
    socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
)

def rate_limit_key(scope: str, identifier: str, window: int) -> str:
    bucket = int(time.time() // window)
    return f"rate_limit:{scope}:{identifier}:{bucket}"

def check_rate_limit(scope: str, identifier: str, limit: int, window: int) -> tuple[bool, int]:
    """Fixed-window counter. Fails open when redis is unreachable."""
    key = rate_limit_key(scope, identifier, window)
    try:
        pipe = redis_client.pipeline()
        pipe.incr(key, 1)
        pipe.expire(key, window)
        results = pipe.execute()
    except redis.RedisError as e:
        logger.error(f"Rate limit check error: {e}")
        return True, 0
    current = int(results[0])
    return current <= limit, current
