"""
Value types passed between gateway components.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class AccessToken:
    """Short-lived OAuth2 bearer token. Minted per request, never cached."""

    value: str
    expires_in: Optional[int] = None

    def __repr__(self) -> str:
        return f"AccessToken(value='***', expires_in={self.expires_in})"


@dataclass(frozen=True)
class IdentityClaim:
    """Verified end-user identity."""

    uid: str


@dataclass(frozen=True)
class QuotaRecord:
    """Per-user usage counter as stored remotely.

    ``update_time`` is the store's revision stamp of the document the record
    was read from, or None when the document does not exist yet.
    """

    uid: str
    call_count: int = 0
    last_call_date: datetime = EPOCH
    update_time: Optional[str] = None

    def __post_init__(self):
        if self.call_count < 0:
            raise ValueError("call_count must be non-negative")
        if self.last_call_date.tzinfo is None:
            raise ValueError("last_call_date must be timezone-aware")

    @classmethod
    def empty(cls, uid: str) -> "QuotaRecord":
        return cls(uid=uid)

    def with_count(self, call_count: int) -> "QuotaRecord":
        return replace(self, call_count=call_count)
