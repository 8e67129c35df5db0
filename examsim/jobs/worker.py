import logging
from rq import Worker
from examsim.core.config import settings
from examsim.jobs.queue import queue, redis

logger = logging.getLogger(__name__)

def main():
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL),
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    logger.info(f"Starting stats worker on queue '{settings.RQ_QUEUE}'")
    w = Worker([queue], connection=redis)
    w.work(with_scheduler=True)

if __name__ == "__main__":
    main()
