from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_api.db import dialect_name
from assessment_api.errors import UnsupportedDatabaseError
from assessment_api.models import Attempt, AttemptStatus, Option, Question, Response, Test
from assessment_api.repositories.base import Page

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class SqlCatalogReader:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_test(self, test_id: int) -> Test | None:
        return await self.session.scalar(select(Test).where(Test.id == test_id))

    async def get_question(self, question_id: int) -> Question | None:
        return await self.session.scalar(select(Question).where(Question.id == question_id))

    async def get_questions(self, question_ids: list[int]) -> dict[int, Question]:
        if not question_ids:
            return {}
        rows = await self.session.execute(select(Question).where(Question.id.in_(question_ids)))
        return {question.id: question for question in rows.scalars().all()}

    async def get_options(self, question_ids: list[int]) -> dict[int, list[Option]]:
        grouped: dict[int, list[Option]] = defaultdict(list)
        if not question_ids:
            return grouped
        rows = await self.session.execute(
            select(Option).where(Option.question_id.in_(question_ids)).order_by(Option.id.asc())
        )
        for option in rows.scalars().all():
            grouped[option.question_id].append(option)
        return grouped


class SqlAttemptStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, test_id: int, user_id: int, started_at: datetime) -> Attempt:
        attempt = Attempt(
            test_id=test_id,
            user_id=user_id,
            started_at=started_at,
            status=AttemptStatus.IN_PROGRESS.value,
            total_score=None,
        )
        self.session.add(attempt)
        await self.session.commit()
        await self.session.refresh(attempt)
        return attempt

    async def get(self, attempt_id: int, *, for_update: bool = False) -> Attempt | None:
        query = select(Attempt).where(Attempt.id == attempt_id).execution_options(populate_existing=True)
        if for_update:
            # Dialects without row locks (SQLite) render no FOR UPDATE clause.
            query = query.with_for_update()
        return await self.session.scalar(query)

    async def list(self, user_id: int | None, limit: int, offset: int) -> Page[Attempt]:
        filters = [Attempt.user_id == user_id] if user_id is not None else []
        total = await self.session.scalar(select(func.count(Attempt.id)).where(*filters))
        rows = await self.session.execute(
            select(Attempt)
            .where(*filters)
            .order_by(Attempt.started_at.desc(), Attempt.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return Page(items=list(rows.scalars().all()), total=int(total or 0), limit=limit, offset=offset)

    async def mark_submitted(self, attempt: Attempt, submitted_at: datetime) -> Attempt:
        if attempt.status != AttemptStatus.GRADED.value:
            attempt.status = AttemptStatus.SUBMITTED.value
        attempt.submitted_at = submitted_at
        await self.session.commit()
        return attempt

    async def finish_grading(self, attempt: Attempt, total_score: Decimal, status: str) -> Attempt:
        attempt.total_score = total_score
        attempt.status = status
        await self.session.commit()
        return attempt


class SqlResponseStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert(
        self,
        attempt_id: int,
        question_id: int,
        selected_option_ids: list[int],
        answer_text: str | None,
        score: Decimal | None,
    ) -> Response:
        dialect = dialect_name(self.session)
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise UnsupportedDatabaseError("response upsert", dialect)

        statement = insert(Response).values(
            attempt_id=attempt_id,
            question_id=question_id,
            selected_option_ids=selected_option_ids,
            answer_text=answer_text,
            score=score,
            evaluated=False,
        )
        # evaluated is never touched on conflict; score only when supplied.
        changes = {
            "selected_option_ids": statement.excluded.selected_option_ids,
            "answer_text": statement.excluded.answer_text,
        }
        if score is not None:
            changes["score"] = statement.excluded.score
        statement = statement.on_conflict_do_update(
            index_elements=[Response.attempt_id, Response.question_id],
            set_=changes,
        ).returning(Response.id)

        response_id = (await self.session.execute(statement)).scalar_one()
        await self.session.commit()

        response = await self.get(response_id)
        if response is None:
            raise RuntimeError(f"response {response_id} vanished after upsert")
        return response

    async def get(self, response_id: int) -> Response | None:
        return await self.session.scalar(
            select(Response).where(Response.id == response_id).execution_options(populate_existing=True)
        )

    async def list(
        self, attempt_id: int | None, question_id: int | None, limit: int, offset: int
    ) -> Page[Response]:
        filters = []
        if attempt_id is not None:
            filters.append(Response.attempt_id == attempt_id)
        if question_id is not None:
            filters.append(Response.question_id == question_id)

        total = await self.session.scalar(select(func.count(Response.id)).where(*filters))
        rows = await self.session.execute(
            select(Response).where(*filters).order_by(Response.id.asc()).limit(limit).offset(offset)
        )
        return Page(items=list(rows.scalars().all()), total=int(total or 0), limit=limit, offset=offset)

    async def list_for_attempt(self, attempt_id: int) -> list[Response]:
        rows = await self.session.execute(
            select(Response)
            .where(Response.attempt_id == attempt_id)
            .order_by(Response.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(rows.scalars().all())

    async def record_score(self, response: Response, score: Decimal) -> Response:
        response.score = score
        response.evaluated = True
        await self.session.flush()
        return response

    async def grade(self, response: Response, score: Decimal) -> Response:
        await self.record_score(response, score)
        await self.session.commit()
        return response
