from __future__ import annotations

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_api.db import AsyncSessionLocal
from assessment_api.errors import NotFoundError
from assessment_api.observability import get_logger, log_event
from assessment_api.repositories import SqlAttemptStore, SqlCatalogReader, SqlResponseStore
from assessment_api.services import AttemptService

logger = get_logger("assessment.worker")


def auto_grade_attempt_job(attempt_id: int) -> dict[str, object]:
    log_event(logger, "grading.job.started", attempt_id=attempt_id)
    result = asyncio.run(_auto_grade_async(attempt_id))
    log_event(logger, "grading.job.finished", **result)
    return result


async def _auto_grade_async(
    attempt_id: int,
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> dict[str, object]:
    async with session_factory() as session:
        service = AttemptService(
            catalog=SqlCatalogReader(session),
            attempts=SqlAttemptStore(session),
            responses=SqlResponseStore(session),
        )
        try:
            result = await service.auto_grade_attempt(attempt_id)
        except NotFoundError:
            log_event(logger, "grading.job.attempt_missing", attempt_id=attempt_id)
            return {"attempt_id": attempt_id, "status": "missing", "graded_responses_count": 0}

    return {
        "attempt_id": attempt_id,
        "status": result.attempt.status,
        "graded_responses_count": result.graded_responses_count,
    }
