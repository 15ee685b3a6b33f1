from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_api.db import get_async_session
from assessment_api.models import User, UserType
from assessment_api.repositories import SqlAttemptStore, SqlCatalogReader, SqlResponseStore
from assessment_api.security import decode_access_token
from assessment_api.services import AttemptService, ReportService

bearer_scheme = HTTPBearer(auto_error=False)

GRADER_TYPES = {UserType.TESTER.value, UserType.ADMIN.value}


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> User:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload") from exc

    user = await session.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user


async def require_grader(user: Annotated[User, Depends(get_current_user)]) -> User:
    if user.type not in GRADER_TYPES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tester or admin role required")
    return user


async def get_attempt_service(session: Annotated[AsyncSession, Depends(get_async_session)]) -> AttemptService:
    return AttemptService(
        catalog=SqlCatalogReader(session),
        attempts=SqlAttemptStore(session),
        responses=SqlResponseStore(session),
    )


async def get_report_service(session: Annotated[AsyncSession, Depends(get_async_session)]) -> ReportService:
    return ReportService(attempts=SqlAttemptStore(session), responses=SqlResponseStore(session))
