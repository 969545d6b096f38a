"""
Daily per-user call quota.

- codec: QuotaRecord <-> document store typed-field JSON
- policy: daily reset and admission rules (pure)
- store: document store REST client
"""

from .policy import DAILY_CALL_LIMIT, admit, apply_daily_reset
from .store import QuotaStore

__all__ = [
    "DAILY_CALL_LIMIT",
    "QuotaStore",
    "admit",
    "apply_daily_reset",
]
