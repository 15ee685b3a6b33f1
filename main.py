from __future__ import annotations

import time
from typing import Annotated, Any
from uuid import uuid4

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_api.config import ALLOWED_ORIGINS
from assessment_api.db import check_db_connection, get_async_session
from assessment_api.deps import get_attempt_service, get_current_user, get_report_service, require_grader
from assessment_api.errors import NotFoundError
from assessment_api.models import AdminAuditLog, Attempt, Response, User
from assessment_api.observability import get_logger, log_event
from assessment_api.queue import check_redis_connection, enqueue_auto_grade
from assessment_api.schemas import (
    AttemptDetailResponse,
    AttemptPage,
    AttemptResponse,
    AttemptStartRequest,
    AttemptSubmitRequest,
    AutoGradeRequest,
    AutoGradeResponse,
    ManualGradeRequest,
    QueuedGradingResponse,
    ResponseDetail,
    ResponseEvaluateRequest,
    ResponsePage,
    ResponseSubmitRequest,
    ScoreReportResponse,
)
from assessment_api.services import AttemptService, ReportService

app = FastAPI(title="Assessment grading API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
logger = get_logger()


def _request_context(request: Request) -> dict[str, str | None]:
    return {
        "method": request.method,
        "path": request.url.path,
        "request_id": getattr(request.state, "request_id", None),
        "client_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def _write_audit_log(
    session: AsyncSession,
    request: Request,
    actor_user_id: int | None,
    action: str,
    resource_type: str,
    resource_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    ctx = _request_context(request)
    session.add(
        AdminAuditLog(
            actor_user_id=actor_user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            method=ctx["method"] or "UNKNOWN",
            path=ctx["path"] or "",
            request_id=ctx["request_id"],
            client_ip=ctx["client_ip"],
            user_agent=ctx["user_agent"],
            metadata_json=metadata,
        )
    )
    await session.commit()


def _to_attempt_response(attempt: Attempt) -> AttemptResponse:
    return AttemptResponse.model_validate(attempt)


def _to_response_detail(response: Response) -> ResponseDetail:
    return ResponseDetail.model_validate(response)


@app.middleware("http")
async def add_request_id_and_logging(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    request.state.request_id = request_id
    started_at = time.monotonic()
    response = None

    try:
        response = await call_next(request)
        return response
    finally:
        duration_ms = int((time.monotonic() - started_at) * 1000)
        if response is not None:
            response.headers["X-Request-ID"] = request_id
            status_code = response.status_code
        else:
            status_code = 500
        log_event(
            logger,
            "request.completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=duration_ms,
            client=(request.client.host if request.client else "unknown"),
        )


@app.exception_handler(NotFoundError)
async def handle_not_found(_: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/db")
async def health_db() -> JSONResponse:
    ok = await check_db_connection()
    if ok:
        return JSONResponse(content={"db": "ok"}, status_code=status.HTTP_200_OK)
    return JSONResponse(content={"db": "error"}, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


@app.get("/health/redis")
def health_redis() -> JSONResponse:
    ok = check_redis_connection()
    if ok:
        return JSONResponse(content={"redis": "ok"}, status_code=status.HTTP_200_OK)
    return JSONResponse(content={"redis": "error"}, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


@app.post("/attempts", response_model=AttemptResponse, status_code=status.HTTP_201_CREATED)
async def start_attempt(
    payload: AttemptStartRequest,
    user: Annotated[User, Depends(get_current_user)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
) -> AttemptResponse:
    attempt = await service.start_attempt(payload.test_id, user.id)
    return _to_attempt_response(attempt)


@app.get("/attempts", response_model=AttemptPage)
async def list_attempts(
    _: Annotated[User, Depends(get_current_user)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
    user_id: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
    offset: Annotated[int | None, Query()] = None,
) -> AttemptPage:
    page = await service.list_attempts(user_id=user_id, limit=limit, offset=offset)
    return AttemptPage(
        items=[_to_attempt_response(attempt) for attempt in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@app.get("/attempts/{attempt_id}", response_model=AttemptDetailResponse)
async def get_attempt(
    attempt_id: int,
    _: Annotated[User, Depends(get_current_user)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
) -> AttemptDetailResponse:
    attempt, responses = await service.get_attempt(attempt_id)
    return AttemptDetailResponse(
        **_to_attempt_response(attempt).model_dump(),
        responses=[_to_response_detail(response) for response in responses],
    )


@app.post("/attempts/{attempt_id}", response_model=AttemptResponse)
async def submit_attempt(
    attempt_id: int,
    _: Annotated[User, Depends(get_current_user)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
    payload: AttemptSubmitRequest | None = None,
) -> AttemptResponse:
    submit_time = payload.submit_time if payload is not None else None
    attempt = await service.submit_attempt(attempt_id, submit_time)
    return _to_attempt_response(attempt)


@app.post("/responses", response_model=ResponseDetail, status_code=status.HTTP_201_CREATED)
async def submit_response(
    payload: ResponseSubmitRequest,
    _: Annotated[User, Depends(get_current_user)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
) -> ResponseDetail:
    response = await service.submit_response(
        payload.attempt_id,
        payload.question_id,
        selected_option_ids=payload.selected_option_ids,
        answer_text=payload.answer_text,
        score=payload.score,
    )
    return _to_response_detail(response)


@app.get("/responses", response_model=ResponsePage)
async def list_responses(
    _: Annotated[User, Depends(get_current_user)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
    attempt_id: Annotated[int | None, Query()] = None,
    question_id: Annotated[int | None, Query()] = None,
    limit: Annotated[int | None, Query()] = None,
    offset: Annotated[int | None, Query()] = None,
) -> ResponsePage:
    page = await service.list_responses(attempt_id=attempt_id, question_id=question_id, limit=limit, offset=offset)
    return ResponsePage(
        items=[_to_response_detail(response) for response in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@app.get("/responses/{response_id}", response_model=ResponseDetail)
async def get_response(
    response_id: int,
    _: Annotated[User, Depends(get_current_user)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
) -> ResponseDetail:
    return _to_response_detail(await service.get_response(response_id))


async def _manual_grade(
    response_id: int,
    payload: ResponseEvaluateRequest,
    request: Request,
    actor: User,
    session: AsyncSession,
    service: AttemptService,
) -> ResponseDetail:
    response = await service.grade_response(response_id, payload.score, payload.comment)
    await _write_audit_log(
        session=session,
        request=request,
        actor_user_id=actor.id,
        action="response.grade",
        resource_type="response",
        resource_id=str(response_id),
        metadata={"score": str(payload.score), "comment": payload.comment, "attempt_id": response.attempt_id},
    )
    return _to_response_detail(response)


@app.patch("/responses/{response_id}", response_model=ResponseDetail)
async def evaluate_response(
    response_id: int,
    payload: ResponseEvaluateRequest,
    request: Request,
    user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
) -> ResponseDetail:
    return await _manual_grade(response_id, payload, request, user, session, service)


@app.post("/grading/manual", response_model=ResponseDetail)
async def manual_grade_response(
    payload: ManualGradeRequest,
    request: Request,
    grader: Annotated[User, Depends(require_grader)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
) -> ResponseDetail:
    return await _manual_grade(payload.response_id, payload, request, grader, session, service)


@app.post("/grading/auto", response_model=AutoGradeResponse)
async def auto_grade_attempt(
    payload: AutoGradeRequest,
    request: Request,
    grader: Annotated[User, Depends(require_grader)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
) -> AutoGradeResponse:
    result = await service.auto_grade_attempt(payload.attempt_id)
    await _write_audit_log(
        session=session,
        request=request,
        actor_user_id=grader.id,
        action="attempt.auto_grade",
        resource_type="attempt",
        resource_id=str(payload.attempt_id),
        metadata={"graded_responses_count": result.graded_responses_count, "status": result.attempt.status},
    )
    return AutoGradeResponse(
        attempt=_to_attempt_response(result.attempt),
        graded_responses_count=result.graded_responses_count,
    )


@app.post("/grading/auto/queue", response_model=QueuedGradingResponse, status_code=status.HTTP_202_ACCEPTED)
async def queue_auto_grade_attempt(
    payload: AutoGradeRequest,
    request: Request,
    grader: Annotated[User, Depends(require_grader)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    service: Annotated[AttemptService, Depends(get_attempt_service)],
) -> QueuedGradingResponse:
    await service.get_attempt(payload.attempt_id)
    job_id = enqueue_auto_grade(payload.attempt_id)
    await _write_audit_log(
        session=session,
        request=request,
        actor_user_id=grader.id,
        action="attempt.auto_grade.queue",
        resource_type="attempt",
        resource_id=str(payload.attempt_id),
        metadata={"job_id": job_id},
    )
    return QueuedGradingResponse(
        status="queued",
        attempt_id=payload.attempt_id,
        job_id=job_id,
        message="Auto-grading job enqueued",
    )


@app.get("/reports/attempt/{attempt_id}/score", response_model=ScoreReportResponse)
async def get_attempt_score_report(
    attempt_id: int,
    _: Annotated[User, Depends(get_current_user)],
    reports: Annotated[ReportService, Depends(get_report_service)],
) -> ScoreReportResponse:
    report = await reports.get_attempt_score_report(attempt_id)
    return ScoreReportResponse(
        attempt=_to_attempt_response(report.attempt),
        responses=[_to_response_detail(response) for response in report.responses],
        total_score=report.total_score,
    )
