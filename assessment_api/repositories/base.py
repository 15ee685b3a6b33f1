from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Generic, Protocol, TypeVar

from assessment_api.models import Attempt, Option, Question, Response, Test

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total: int = 0
    limit: int = 0
    offset: int = 0


class CatalogReader(Protocol):
    async def get_test(self, test_id: int) -> Test | None:
        ...

    async def get_question(self, question_id: int) -> Question | None:
        ...

    async def get_questions(self, question_ids: list[int]) -> dict[int, Question]:
        ...

    async def get_options(self, question_ids: list[int]) -> dict[int, list[Option]]:
        ...


class AttemptStore(Protocol):
    async def create(self, test_id: int, user_id: int, started_at: datetime) -> Attempt:
        ...

    async def get(self, attempt_id: int, *, for_update: bool = False) -> Attempt | None:
        ...

    async def list(self, user_id: int | None, limit: int, offset: int) -> Page[Attempt]:
        ...

    async def mark_submitted(self, attempt: Attempt, submitted_at: datetime) -> Attempt:
        ...

    async def finish_grading(self, attempt: Attempt, total_score: Decimal, status: str) -> Attempt:
        ...


class ResponseStore(Protocol):
    async def upsert(
        self,
        attempt_id: int,
        question_id: int,
        selected_option_ids: list[int],
        answer_text: str | None,
        score: Decimal | None,
    ) -> Response:
        ...

    async def get(self, response_id: int) -> Response | None:
        ...

    async def list(
        self, attempt_id: int | None, question_id: int | None, limit: int, offset: int
    ) -> Page[Response]:
        ...

    async def list_for_attempt(self, attempt_id: int) -> list[Response]:
        ...

    async def record_score(self, response: Response, score: Decimal) -> Response:
        """Set a score and mark evaluated without committing."""
        ...

    async def grade(self, response: Response, score: Decimal) -> Response:
        """Set a score, mark evaluated and commit."""
        ...
