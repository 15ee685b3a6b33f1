from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PositiveInt

# Exact decimals internally, plain JSON numbers on the wire.
ScoreValue = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class AttemptStartRequest(BaseModel):
    test_id: PositiveInt


class AttemptSubmitRequest(BaseModel):
    submit_time: datetime | None = None


class ResponseSubmitRequest(BaseModel):
    attempt_id: PositiveInt
    question_id: PositiveInt
    selected_option_ids: list[PositiveInt] | None = None
    answer_text: str | None = None
    score: Decimal | None = None


class ResponseEvaluateRequest(BaseModel):
    score: Decimal = Field(ge=0)
    comment: str | None = None


class ManualGradeRequest(ResponseEvaluateRequest):
    response_id: PositiveInt


class AutoGradeRequest(BaseModel):
    attempt_id: PositiveInt


class AttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    test_id: int
    user_id: int
    started_at: datetime
    submitted_at: datetime | None = None
    total_score: ScoreValue | None = None
    status: str


class ResponseDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    attempt_id: int
    question_id: int
    selected_option_ids: list[int] = Field(default_factory=list)
    answer_text: str | None = None
    score: ScoreValue | None = None
    evaluated: bool = False


class AttemptDetailResponse(AttemptResponse):
    responses: list[ResponseDetail]


class AttemptPage(BaseModel):
    items: list[AttemptResponse]
    total: int
    limit: int
    offset: int


class ResponsePage(BaseModel):
    items: list[ResponseDetail]
    total: int
    limit: int
    offset: int


class AutoGradeResponse(BaseModel):
    attempt: AttemptResponse
    graded_responses_count: int


class QueuedGradingResponse(BaseModel):
    status: str
    attempt_id: int
    job_id: str
    message: str


class ScoreReportResponse(BaseModel):
    attempt: AttemptResponse
    responses: list[ResponseDetail]
    total_score: ScoreValue
