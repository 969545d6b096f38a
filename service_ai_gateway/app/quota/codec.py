"""
Serialization between QuotaRecord and the document store's typed fields.

Documents look like::

    {"fields": {"callCount": {"integerValue": "3"},
                "lastCallDate": {"timestampValue": "2024-05-01T08:15:00.000000Z"}},
     "updateTime": "2024-05-01T08:15:00.123456Z"}
"""

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from ..models import EPOCH, QuotaRecord

CALL_COUNT_FIELD = "callCount"
LAST_CALL_DATE_FIELD = "lastCallDate"
QUOTA_FIELDS = (CALL_COUNT_FIELD, LAST_CALL_DATE_FIELD)

_FRACTION = re.compile(r"\.(\d+)")


class CodecError(ValueError):
    """Stored document does not hold a readable quota record."""


def encode_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: str) -> datetime:
    """Parse RFC 3339 timestamps, including nanosecond fractions and bare dates."""
    candidate = value.strip()
    if len(candidate) == 10:
        parsed_date = date.fromisoformat(candidate)
        return datetime(parsed_date.year, parsed_date.month, parsed_date.day, tzinfo=timezone.utc)

    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    # datetime only keeps microseconds
    candidate = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), candidate, count=1)

    parsed = datetime.fromisoformat(candidate)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _decode_integer(field: Dict[str, Any]) -> int:
    if "integerValue" in field:
        return int(field["integerValue"])
    if "doubleValue" in field:
        return int(field["doubleValue"])
    raise CodecError(f"{CALL_COUNT_FIELD} is not numeric")


def _decode_datetime(field: Dict[str, Any]) -> datetime:
    for key in ("timestampValue", "stringValue"):
        if key in field:
            return parse_timestamp(field[key])
    raise CodecError(f"{LAST_CALL_DATE_FIELD} is not a timestamp")


def decode_document(uid: str, document: Dict[str, Any]) -> QuotaRecord:
    """Build a QuotaRecord from a stored document. Missing fields read as zero."""
    fields = document.get("fields") or {}
    try:
        call_count = _decode_integer(fields[CALL_COUNT_FIELD]) if CALL_COUNT_FIELD in fields else 0
        last_call_date = _decode_datetime(fields[LAST_CALL_DATE_FIELD]) if LAST_CALL_DATE_FIELD in fields else EPOCH
    except (TypeError, ValueError) as exc:
        raise CodecError(str(exc)) from exc

    return QuotaRecord(
        uid=uid,
        call_count=max(call_count, 0),
        last_call_date=last_call_date,
        update_time=document.get("updateTime"),
    )


def encode_fields(call_count: int, last_call_date: datetime) -> Dict[str, Dict[str, Any]]:
    return {
        "fields": {
            CALL_COUNT_FIELD: {"integerValue": str(call_count)},
            LAST_CALL_DATE_FIELD: {"timestampValue": encode_timestamp(last_call_date)},
        }
    }


def update_mask_params(precondition_update_time: Optional[str] = None, must_not_exist: bool = False):
    """Query parameters restricting a PATCH to the quota fields."""
    params = [("updateMask.fieldPaths", name) for name in QUOTA_FIELDS]
    if precondition_update_time:
        params.append(("currentDocument.updateTime", precondition_update_time))
    elif must_not_exist:
        params.append(("currentDocument.exists", "false"))
    return params
