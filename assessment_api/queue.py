from __future__ import annotations

from redis import Redis
from rq import Queue

from assessment_api.config import GRADING_JOB_TIMEOUT_SECONDS, GRADING_QUEUE_NAME, REDIS_URL

redis_conn = Redis.from_url(REDIS_URL)
grading_queue = Queue(GRADING_QUEUE_NAME, connection=redis_conn, default_timeout=GRADING_JOB_TIMEOUT_SECONDS)

AUTO_GRADE_JOB = "assessment_api.worker_tasks.auto_grade_attempt_job"


def check_redis_connection() -> bool:
    try:
        return bool(redis_conn.ping())
    except Exception:
        return False


def enqueue_auto_grade(attempt_id: int) -> str:
    job = grading_queue.enqueue(AUTO_GRADE_JOB, attempt_id)
    return job.id
