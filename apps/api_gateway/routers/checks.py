"""
HTTP роуты для разовых проверок.

- POST /v1/checks

Авторизация: Depends(auth_dep)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from apps.api_gateway.deps import auth_dep
from pagespeed_dispatch.analysis.base import validate_subject
from pagespeed_dispatch.common.errors import AnalysisInvalid, ErrCode, TransportError
from pagespeed_dispatch.contracts.http_api import CheckRequest, CheckResponse
from pagespeed_dispatch.domain.enums import DispatchSource
from pagespeed_dispatch.queue.dispatcher import enqueue_dispatch

router = APIRouter()


@router.post(
    "/checks",
    response_model=CheckResponse,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(auth_dep)],
)
def create_check(req: CheckRequest) -> CheckResponse:
    try:
        subject = validate_subject(req.subject)
    except AnalysisInvalid as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": ErrCode.VALIDATION, "message": e.message},
        ) from e

    try:
        event_id = enqueue_dispatch(
            subject=subject, requester_id=req.requester_id, source=DispatchSource.api
        )
    except TransportError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": e.code, "message": e.message},
        ) from e
    return CheckResponse(event_id=event_id)
