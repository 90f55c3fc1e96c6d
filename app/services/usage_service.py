"""
Daily per-user quotas for search, import and AI analysis.

Counters live in usage_logs, one row per (user, action, UTC day). A new UTC day
starts a fresh row, so nothing has to be reset.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.exceptions import LimitReachedError
from app.models import UsageLog

logger = logging.getLogger(__name__)

UNLIMITED = -1

USAGE_LIMITS: dict[str, dict[str, int]] = {
    "free": {"search": 10, "import": 5, "ai_analysis": 3},
    "pro": {"search": UNLIMITED, "import": UNLIMITED, "ai_analysis": UNLIMITED},
}


def utc_today(now: Callable[[], datetime] | None = None) -> date:
    current = now() if now else datetime.now(timezone.utc)
    return current.astimezone(timezone.utc).date()


def get_limit(tier: str | None, action: str) -> int:
    limits = USAGE_LIMITS.get(tier or "free") or USAGE_LIMITS["free"]
    if action in limits:
        return limits[action]
    return USAGE_LIMITS["free"].get(action, 0)


def get_usage_count(session: Session, user_id: uuid.UUID, action: str, day: date | None = None) -> int:
    count = session.scalar(
        select(UsageLog.count).where(
            UsageLog.user_id == user_id,
            UsageLog.action == action,
            UsageLog.day == (day or utc_today()),
        )
    )
    return int(count or 0)


def check_usage_limit(
    session: Session,
    user_id: uuid.UUID,
    action: str,
    tier: str | None = "free",
    day: date | None = None,
) -> bool:
    limit = get_limit(tier, action)
    if limit == UNLIMITED:
        return True
    return get_usage_count(session, user_id, action, day) < limit


def enforce_usage_limit(
    session: Session,
    user_id: uuid.UUID,
    action: str,
    tier: str | None = "free",
    day: date | None = None,
) -> None:
    if not check_usage_limit(session, user_id, action, tier, day):
        limit = get_limit(tier, action)
        logger.info(f"Usage limit reached: user={user_id} action={action} limit={limit}")
        raise LimitReachedError(action, limit)


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite_insert
    return pg_insert


def track_usage(session: Session, user_id: uuid.UUID, action: str, day: date | None = None) -> None:
    """Insert-or-increment in a single statement, safe under concurrent requests."""
    insert = _insert_for(session)
    table = UsageLog.__table__
    stmt = insert(table).values(
        {"id": uuid.uuid4(), "user_id": user_id, "action": action, "date": day or utc_today(), "count": 1}
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "action", "date"],
        set_={"count": table.c["count"] + 1},
    )
    session.execute(stmt)
    session.flush()


def get_usage_summary(
    session: Session,
    user_id: uuid.UUID,
    tier: str | None = "free",
    day: date | None = None,
) -> dict[str, dict[str, Any]]:
    rows = session.execute(
        select(UsageLog.action, UsageLog.count).where(
            UsageLog.user_id == user_id,
            UsageLog.day == (day or utc_today()),
        )
    ).all()
    used_by_action = {action: int(count or 0) for action, count in rows}

    summary: dict[str, dict[str, Any]] = {}
    limits = USAGE_LIMITS.get(tier or "free") or USAGE_LIMITS["free"]
    for action, limit in limits.items():
        used = used_by_action.get(action, 0)
        summary[action] = {
            "used": used,
            "limit": "unlimited" if limit == UNLIMITED else limit,
            "remaining": "unlimited" if limit == UNLIMITED else max(0, limit - used),
        }
    return summary
