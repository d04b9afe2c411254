"""Activity log queries and retention."""

import logging

from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlmodel import Session, select, func, col

from alert_relay.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)


def prune_activity_log(session: Session, keep: int) -> int:
    """Delete all but the newest ``keep`` rows. Returns the number deleted."""
    cutoff_id = session.exec(
        select(ActivityLog.id).order_by(ActivityLog.id.desc()).offset(keep).limit(1)
    ).first()
    if cutoff_id is None:
        return 0
    result = session.exec(delete(ActivityLog).where(ActivityLog.id <= cutoff_id))  # type: ignore[call-overload]
    session.commit()
    return result.rowcount


def run_prune(engine: Engine, keep: int) -> int:
    with Session(engine) as session:
        deleted = prune_activity_log(session, keep)
    if deleted:
        logger.info(f"Pruned {deleted} activity log rows (keeping {keep})")
    return deleted


def query_logs(
    session: Session,
    *,
    level: str | None = None,
    category: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[ActivityLog], int]:
    stmt = select(ActivityLog)
    count_stmt = select(func.count()).select_from(ActivityLog)
    filters = []
    if level:
        filters.append(ActivityLog.level == level)
    if category:
        filters.append(ActivityLog.category == category)
    if search:
        filters.append(col(ActivityLog.message).contains(search))
    for clause in filters:
        stmt = stmt.where(clause)
        count_stmt = count_stmt.where(clause)
    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).offset(offset).limit(limit)
    return list(session.exec(stmt).all()), session.exec(count_stmt).one()


def clear_logs(session: Session) -> int:
    result = session.exec(delete(ActivityLog))  # type: ignore[call-overload]
    session.commit()
    return result.rowcount
