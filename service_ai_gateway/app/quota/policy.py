"""
Quota policy: one UTC-day window with a fixed ceiling.
"""

from datetime import datetime, timezone
from typing import Optional

from ..models import QuotaRecord

DAILY_CALL_LIMIT = 20


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def apply_daily_reset(record: QuotaRecord, now: Optional[datetime] = None) -> QuotaRecord:
    """Zero the counter when the last call happened on an earlier UTC day."""
    now = now or utc_now()
    last_day = record.last_call_date.astimezone(timezone.utc).date()
    if last_day != now.astimezone(timezone.utc).date():
        return record.with_count(0)
    return record


def admit(record: QuotaRecord, ceiling: int = DAILY_CALL_LIMIT) -> bool:
    return record.call_count < ceiling
