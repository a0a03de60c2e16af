"""
HTTP роуты для расписаний.

- GET    /v1/schedules?requester_id=...
- POST   /v1/schedules
- DELETE /v1/schedules/{schedule_id}

Авторизация: Depends(auth_dep)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from apps.api_gateway.deps import auth_dep, session_dep
from pagespeed_dispatch.analysis.base import validate_subject
from pagespeed_dispatch.common.errors import AnalysisInvalid, ErrCode
from pagespeed_dispatch.common.logging import get_project_logger
from pagespeed_dispatch.contracts.http_api import (
    ScheduleCreateRequest,
    ScheduleListResponse,
    ScheduleResponse,
)
from pagespeed_dispatch.domain.schedule import Schedule
from pagespeed_dispatch.storage.repositories import ScheduleRepository

log = get_project_logger()

router = APIRouter(dependencies=[Depends(auth_dep)])


def _to_response(s: Schedule) -> ScheduleResponse:
    return ScheduleResponse(
        id=s.id,
        requester_id=s.requester_id,
        subject=s.subject,
        hour=s.hour,
        minute=s.minute,
        time=s.hhmm,
        created_at=s.created_at,
    )


@router.get("/schedules", response_model=ScheduleListResponse)
def list_schedules(
    requester_id: int | None = Query(default=None),
    session: Session = Depends(session_dep),
) -> ScheduleListResponse:
    repo = ScheduleRepository(session)
    items = repo.list_all() if requester_id is None else repo.list_by_requester(requester_id)
    return ScheduleListResponse(schedules=[_to_response(s) for s in items])


@router.post("/schedules", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    req: ScheduleCreateRequest,
    session: Session = Depends(session_dep),
) -> ScheduleResponse:
    try:
        subject = validate_subject(req.subject)
    except AnalysisInvalid as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": ErrCode.VALIDATION, "message": e.message},
        ) from e

    schedule = ScheduleRepository(session).create(
        requester_id=req.requester_id, subject=subject, hour=req.hour, minute=req.minute
    )
    log.info(
        "schedule_created",
        extra={
            "payload": {
                "schedule_id": schedule.id,
                "requester_id": schedule.requester_id,
                "at": schedule.hhmm,
            }
        },
    )
    return _to_response(schedule)


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: int,
    requester_id: int | None = Query(default=None),
    session: Session = Depends(session_dep),
) -> None:
    removed = ScheduleRepository(session).delete(schedule_id, requester_id=requester_id)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": ErrCode.NOT_FOUND, "message": "Расписание не найдено"},
        )
    log.info("schedule_deleted", extra={"payload": {"schedule_id": schedule_id}})
