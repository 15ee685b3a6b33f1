from __future__ import annotations

import os

from redis import Redis
from rq import SimpleWorker, Worker

from assessment_api.config import GRADING_QUEUE_NAME, REDIS_URL
from assessment_api.observability import get_logger, log_event

logger = get_logger("assessment.worker")


def main() -> None:
    redis_url = os.getenv("REDIS_URL", REDIS_URL)
    conn = Redis.from_url(redis_url)
    worker_cls = SimpleWorker if os.name == "nt" else Worker
    worker = worker_cls([GRADING_QUEUE_NAME], connection=conn)
    log_event(logger, "worker.listening", queue=GRADING_QUEUE_NAME, redis=redis_url)
    worker.work()


if __name__ == "__main__":
    main()
