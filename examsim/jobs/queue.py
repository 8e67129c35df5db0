from rq import Queue
from redis import Redis
from examsim.core.config import settings

# No socket timeout or decode_responses: the worker blocks on dequeue and rq stores pickled payloads
redis = Redis.from_url(settings.REDIS_URL)
queue = Queue(settings.RQ_QUEUE, connection=redis, default_timeout=settings.RQ_JOB_TIMEOUT)
