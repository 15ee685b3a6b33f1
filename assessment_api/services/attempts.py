"""Attempt lifecycle: start, answer, submit, grade.

Status only ever moves forward (``in_progress -> submitted -> graded``).
Auto-grading may run at any status and always re-scores every auto-gradable
response, but it only closes an attempt that was submitted and has no
unevaluated response left.

The grading pass reads, scores, writes and re-reads inside one transaction
and asks for a row lock on the attempt. Two passes on the same attempt are
serialized where the database honours the lock; a manual grade committed
between two passes is still overwritten by the later pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from assessment_api.config import PAGE_DEFAULT_LIMIT, PAGE_MAX_LIMIT
from assessment_api.errors import NotFoundError
from assessment_api.grading import ZERO, MarkingPolicy, is_auto_gradable
from assessment_api.grading import grade_response as score_response
from assessment_api.models import Attempt, AttemptStatus, Response
from assessment_api.observability import get_logger, log_event
from assessment_api.repositories.base import AttemptStore, CatalogReader, Page, ResponseStore

logger = get_logger()


@dataclass
class AutoGradeResult:
    attempt: Attempt
    graded_responses_count: int


def page_window(limit: int | None, offset: int | None) -> tuple[int, int]:
    window = PAGE_DEFAULT_LIMIT if not limit or limit < 1 else min(limit, PAGE_MAX_LIMIT)
    return window, max(offset or 0, 0)


def next_status(current: str, unevaluated_count: int) -> str:
    if current == AttemptStatus.GRADED.value:
        return current
    if current == AttemptStatus.SUBMITTED.value and unevaluated_count == 0:
        return AttemptStatus.GRADED.value
    return current


class AttemptService:
    def __init__(self, catalog: CatalogReader, attempts: AttemptStore, responses: ResponseStore) -> None:
        self.catalog = catalog
        self.attempts = attempts
        self.responses = responses

    async def _require_attempt(self, attempt_id: int, *, for_update: bool = False) -> Attempt:
        attempt = await self.attempts.get(attempt_id, for_update=for_update)
        if attempt is None:
            raise NotFoundError("Attempt")
        return attempt

    async def start_attempt(self, test_id: int, user_id: int) -> Attempt:
        test = await self.catalog.get_test(test_id)
        if test is None:
            raise NotFoundError("Test")

        attempt = await self.attempts.create(test_id, user_id, datetime.now(timezone.utc))
        log_event(logger, "attempt.started", attempt_id=attempt.id, test_id=test_id, user_id=user_id)
        return attempt

    async def get_attempt(self, attempt_id: int) -> tuple[Attempt, list[Response]]:
        attempt = await self._require_attempt(attempt_id)
        return attempt, await self.responses.list_for_attempt(attempt_id)

    async def list_attempts(
        self, user_id: int | None = None, limit: int | None = None, offset: int | None = None
    ) -> Page[Attempt]:
        window, skip = page_window(limit, offset)
        return await self.attempts.list(user_id, window, skip)

    async def submit_attempt(self, attempt_id: int, submit_time: datetime | None = None) -> Attempt:
        attempt = await self._require_attempt(attempt_id)
        attempt = await self.attempts.mark_submitted(attempt, submit_time or datetime.now(timezone.utc))
        log_event(logger, "attempt.submitted", attempt_id=attempt_id, submitted_at=attempt.submitted_at)
        return attempt

    async def submit_response(
        self,
        attempt_id: int,
        question_id: int,
        selected_option_ids: list[int] | None = None,
        answer_text: str | None = None,
        score: Decimal | None = None,
    ) -> Response:
        await self._require_attempt(attempt_id)
        if await self.catalog.get_question(question_id) is None:
            raise NotFoundError("Question")

        response = await self.responses.upsert(
            attempt_id,
            question_id,
            list(selected_option_ids or []),
            answer_text,
            score,
        )
        log_event(
            logger,
            "response.submitted",
            attempt_id=attempt_id,
            question_id=question_id,
            response_id=response.id,
        )
        return response

    async def get_response(self, response_id: int) -> Response:
        response = await self.responses.get(response_id)
        if response is None:
            raise NotFoundError("Response")
        return response

    async def list_responses(
        self,
        attempt_id: int | None = None,
        question_id: int | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Page[Response]:
        window, skip = page_window(limit, offset)
        return await self.responses.list(attempt_id, question_id, window, skip)

    async def grade_response(self, response_id: int, score: Decimal, comment: str | None = None) -> Response:
        """Manual grade. The comment is only logged; callers keep their own audit trail."""
        response = await self.get_response(response_id)
        response = await self.responses.grade(response, score)
        log_event(
            logger,
            "response.graded",
            response_id=response_id,
            attempt_id=response.attempt_id,
            score=score,
            comment=comment,
        )
        return response

    async def auto_grade_attempt(self, attempt_id: int) -> AutoGradeResult:
        attempt = await self._require_attempt(attempt_id, for_update=True)
        test = await self.catalog.get_test(attempt.test_id)
        policy = MarkingPolicy.from_test(test) if test is not None else MarkingPolicy()

        responses = await self.responses.list_for_attempt(attempt_id)
        question_ids = sorted({response.question_id for response in responses})
        questions = await self.catalog.get_questions(question_ids)
        options = await self.catalog.get_options(question_ids)

        graded_count = 0
        pass_total = ZERO
        for response in responses:
            question = questions.get(response.question_id)
            if question is None or not is_auto_gradable(question.type):
                continue
            score = score_response(question, options.get(question.id, []), response, policy)
            if score is None:
                continue
            await self.responses.record_score(response, score)
            graded_count += 1
            pass_total += score

        unevaluated = sum(1 for response in await self.responses.list_for_attempt(attempt_id) if not response.evaluated)
        status = next_status(attempt.status, unevaluated)
        attempt = await self.attempts.finish_grading(attempt, pass_total, status)

        log_event(
            logger,
            "attempt.auto_graded",
            attempt_id=attempt_id,
            graded_responses_count=graded_count,
            unevaluated_count=unevaluated,
            status=status,
            total_score=pass_total,
        )
        return AutoGradeResult(attempt=attempt, graded_responses_count=graded_count)
