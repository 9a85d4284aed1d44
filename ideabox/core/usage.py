"""Usage recording for AI dispatches and the admin log query."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ideabox.models.usage_log import UsageLog


@dataclass
class UsageEvent:
    """Outcome of one dispatch attempt, successful or not."""
    operation: str
    service: str
    model: Optional[str] = None
    usage: Optional[Dict] = None
    tokens_used: Optional[int] = None
    successful: bool = False
    error: Optional[str] = None
    api_key_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


UsageRecorder = Callable[[UsageEvent], None]


class SqlUsageRecorder:
    """Appends one ai_usage_logs row per event."""

    def __init__(self, db: Session):
        self.db = db

    def __call__(self, event: UsageEvent) -> None:
        self.db.add(UsageLog(
            operation=event.operation,
            service=event.service,
            model=event.model,
            tokens_used=event.tokens_used,
            successful=event.successful,
            error=event.error,
            api_key_id=event.api_key_id,
            user_id=event.user_id,
            created_at=event.created_at,
        ))
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


TIMEFRAMES: Dict[str, Optional[timedelta]] = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "all": None,
}


def list_usage_logs(
    db: Session,
    timeframe: str = "week",
    search: Optional[str] = None,
    limit: int = 100,
) -> List[UsageLog]:
    """Newest-first usage rows within a timeframe, optionally text-filtered."""
    if timeframe not in TIMEFRAMES:
        raise ValueError(f"Unknown timeframe: {timeframe}. Available: {list(TIMEFRAMES)}")

    query = db.query(UsageLog)
    delta = TIMEFRAMES[timeframe]
    if delta is not None:
        query = query.filter(UsageLog.created_at >= datetime.now(UTC) - delta)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            UsageLog.operation.ilike(pattern),
            UsageLog.service.ilike(pattern),
            UsageLog.model.ilike(pattern),
        ))
    return query.order_by(UsageLog.created_at.desc()).limit(limit).all()
