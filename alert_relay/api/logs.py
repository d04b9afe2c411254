"""Activity log API."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from alert_relay.api.deps import get_current_user
from alert_relay.database import get_session
from alert_relay.services.activity_log import clear_logs, query_logs
from alert_relay.utils.constants import MAX_LOG_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/logs", tags=["logs"], dependencies=[Depends(get_current_user)])


@router.get("")
def list_logs(
    level: str | None = None,
    category: str | None = None,
    search: str | None = None,
    limit: int = Query(default=100, ge=1, le=MAX_LOG_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    session: Session = Depends(get_session),
):
    rows, total = query_logs(session, level=level, category=category, search=search, limit=limit, offset=offset)
    return {
        "logs": rows,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
    }


@router.delete("")
def delete_logs(session: Session = Depends(get_session)):
    deleted = clear_logs(session)
    logger.info(f"Cleared {deleted} activity log rows")
    return {"success": True, "deleted": deleted}
