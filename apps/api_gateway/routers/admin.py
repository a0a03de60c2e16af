"""
Admin endpoints для эксплуатации.

- GET /v1/admin/queue: глубина очереди, pending, DLQ
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from redis.exceptions import RedisError

from apps.api_gateway.deps import auth_dep
from pagespeed_dispatch.common.errors import ErrCode
from pagespeed_dispatch.contracts.http_api import QueueHealthItem, QueueHealthResponse
from pagespeed_dispatch.queue.streams import queue_stats

router = APIRouter()


@router.get(
    "/admin/queue",
    response_model=QueueHealthResponse,
    dependencies=[Depends(auth_dep)],
)
def admin_queue_health() -> QueueHealthResponse:
    try:
        stats = queue_stats()
    except RedisError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "code": ErrCode.REDIS_ERROR,
                "message": "Не удалось получить состояние очереди",
                "details": {"err": str(e)[:200]},
            },
        ) from e

    return QueueHealthResponse(
        queues=[
            QueueHealthItem(
                queue=st.queue,
                group=st.group,
                depth=st.depth,
                pending=st.pending,
                dlq_depth=st.dlq_depth,
            )
            for st in stats
        ]
    )
