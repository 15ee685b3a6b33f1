from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from assessment_api.errors import NotFoundError
from assessment_api.grading import ZERO
from assessment_api.models import Attempt, Response
from assessment_api.repositories.base import AttemptStore, ResponseStore


@dataclass
class ScoreReport:
    attempt: Attempt
    responses: list[Response]
    total_score: Decimal


class ReportService:
    """Read-only score projections.

    The report total is always recomputed from the stored response scores.
    ``Attempt.total_score`` only reflects the last auto-grading pass and can
    differ after manual grading.
    """

    def __init__(self, attempts: AttemptStore, responses: ResponseStore) -> None:
        self.attempts = attempts
        self.responses = responses

    async def get_attempt_score_report(self, attempt_id: int) -> ScoreReport:
        attempt = await self.attempts.get(attempt_id)
        if attempt is None:
            raise NotFoundError("Attempt")

        responses = await self.responses.list_for_attempt(attempt_id)
        total = sum((response.score for response in responses if response.score is not None), ZERO)
        return ScoreReport(attempt=attempt, responses=responses, total_score=total)
