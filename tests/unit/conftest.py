from __future__ import annotations

import sys
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from assessment_api.models import AttemptStatus
from assessment_api.repositories.base import Page
from assessment_api.services import AttemptService, ReportService


class FakeCatalog:
    def __init__(self) -> None:
        self.tests: dict[int, SimpleNamespace] = {}
        self.questions: dict[int, SimpleNamespace] = {}
        self.options: dict[int, list[SimpleNamespace]] = defaultdict(list)

    def add_test(self, test_id: int, *, allow_partial_marking: bool = False, allow_negative_marking: bool = False):
        test = SimpleNamespace(
            id=test_id,
            allow_partial_marking=allow_partial_marking,
            allow_negative_marking=allow_negative_marking,
        )
        self.tests[test_id] = test
        return test

    def add_question(
        self,
        question_id: int,
        type: str,
        *,
        ans: str | None = None,
        max_score: str = "1",
        negative_score: str = "0",
        partial_marking: bool = False,
        options: tuple[tuple[int, bool, str], ...] = (),
    ):
        question = SimpleNamespace(
            id=question_id,
            type=type,
            ans=ans,
            max_score=Decimal(max_score),
            negative_score=Decimal(negative_score),
            partial_marking=partial_marking,
        )
        self.questions[question_id] = question
        self.options[question_id] = [
            SimpleNamespace(id=option_id, question_id=question_id, is_correct=is_correct, weight=Decimal(weight))
            for option_id, is_correct, weight in options
        ]
        return question

    async def get_test(self, test_id: int):
        return self.tests.get(test_id)

    async def get_question(self, question_id: int):
        return self.questions.get(question_id)

    async def get_questions(self, question_ids: list[int]):
        return {qid: self.questions[qid] for qid in question_ids if qid in self.questions}

    async def get_options(self, question_ids: list[int]):
        return {qid: list(self.options.get(qid, [])) for qid in question_ids}


class FakeAttemptStore:
    def __init__(self) -> None:
        self.rows: dict[int, SimpleNamespace] = {}
        self.locked: list[int] = []

    async def create(self, test_id: int, user_id: int, started_at: datetime):
        attempt = SimpleNamespace(
            id=len(self.rows) + 1,
            test_id=test_id,
            user_id=user_id,
            started_at=started_at,
            submitted_at=None,
            total_score=None,
            status=AttemptStatus.IN_PROGRESS.value,
        )
        self.rows[attempt.id] = attempt
        return attempt

    async def get(self, attempt_id: int, *, for_update: bool = False):
        if for_update:
            self.locked.append(attempt_id)
        return self.rows.get(attempt_id)

    async def list(self, user_id: int | None, limit: int, offset: int):
        rows = [row for row in self.rows.values() if user_id is None or row.user_id == user_id]
        rows.sort(key=lambda row: (row.started_at, row.id), reverse=True)
        return Page(items=rows[offset : offset + limit], total=len(rows), limit=limit, offset=offset)

    async def mark_submitted(self, attempt, submitted_at: datetime):
        if attempt.status != AttemptStatus.GRADED.value:
            attempt.status = AttemptStatus.SUBMITTED.value
        attempt.submitted_at = submitted_at
        return attempt

    async def finish_grading(self, attempt, total_score: Decimal, status: str):
        attempt.total_score = total_score
        attempt.status = status
        return attempt


class FakeResponseStore:
    def __init__(self) -> None:
        self.rows: dict[int, SimpleNamespace] = {}
        self._next_id = 1

    async def upsert(self, attempt_id, question_id, selected_option_ids, answer_text, score):
        existing = next(
            (row for row in self.rows.values() if row.attempt_id == attempt_id and row.question_id == question_id),
            None,
        )
        if existing is None:
            existing = SimpleNamespace(
                id=self._next_id,
                attempt_id=attempt_id,
                question_id=question_id,
                selected_option_ids=list(selected_option_ids),
                answer_text=answer_text,
                score=score,
                evaluated=False,
            )
            self.rows[existing.id] = existing
            self._next_id += 1
            return existing

        existing.selected_option_ids = list(selected_option_ids)
        existing.answer_text = answer_text
        if score is not None:
            existing.score = score
        return existing

    async def get(self, response_id: int):
        return self.rows.get(response_id)

    async def list(self, attempt_id, question_id, limit, offset):
        rows = [
            row
            for row in sorted(self.rows.values(), key=lambda row: row.id)
            if (attempt_id is None or row.attempt_id == attempt_id)
            and (question_id is None or row.question_id == question_id)
        ]
        return Page(items=rows[offset : offset + limit], total=len(rows), limit=limit, offset=offset)

    async def list_for_attempt(self, attempt_id: int):
        return [row for row in sorted(self.rows.values(), key=lambda row: row.id) if row.attempt_id == attempt_id]

    async def record_score(self, response, score: Decimal):
        response.score = score
        response.evaluated = True
        return response

    async def grade(self, response, score: Decimal):
        return await self.record_score(response, score)


@dataclass
class Engine:
    catalog: FakeCatalog
    attempts: FakeAttemptStore
    responses: FakeResponseStore
    service: AttemptService
    reports: ReportService


@pytest.fixture()
def engine() -> Engine:
    catalog = FakeCatalog()
    attempts = FakeAttemptStore()
    responses = FakeResponseStore()
    return Engine(
        catalog=catalog,
        attempts=attempts,
        responses=responses,
        service=AttemptService(catalog=catalog, attempts=attempts, responses=responses),
        reports=ReportService(attempts=attempts, responses=responses),
    )


@pytest.fixture()
def fixed_now() -> datetime:
    return datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
