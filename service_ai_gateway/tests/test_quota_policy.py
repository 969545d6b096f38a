"""
Unit tests for the daily quota policy and the document codec.
"""

from datetime import datetime, timedelta, timezone

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_ai_gateway.app.models import EPOCH, QuotaRecord
from service_ai_gateway.app.quota.codec import (
    CodecError,
    decode_document,
    encode_fields,
    parse_timestamp,
    update_mask_params,
)
from service_ai_gateway.app.quota.policy import DAILY_CALL_LIMIT, admit, apply_daily_reset

NOW = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)


class TestApplyDailyReset:
    """Daily reset law."""

    def test_same_day_keeps_count(self):
        record = QuotaRecord(uid="u1", call_count=7, last_call_date=NOW.replace(hour=0, minute=0))
        assert apply_daily_reset(record, NOW) is record

    def test_previous_day_resets(self):
        record = QuotaRecord(uid="u1", call_count=20, last_call_date=NOW - timedelta(days=1))

        reset = apply_daily_reset(record, NOW)

        assert reset.call_count == 0
        assert reset.last_call_date == record.last_call_date
        assert record.call_count == 20

    def test_day_boundary_is_utc(self):
        """23:59 UTC yesterday is 'yesterday' even if local time says otherwise."""
        late = datetime(2026, 10, 17, 23, 59, 59, tzinfo=timezone.utc)
        early = datetime(2026, 10, 18, 0, 0, 1, tzinfo=timezone.utc)
        record = QuotaRecord(uid="u1", call_count=5, last_call_date=late)

        assert apply_daily_reset(record, early).call_count == 0

    def test_offset_timestamps_compare_in_utc(self):
        # 2026-10-18 01:00 at +05:00 is 2026-10-17 20:00 UTC
        offset = timezone(timedelta(hours=5))
        record = QuotaRecord(uid="u1", call_count=5, last_call_date=datetime(2026, 10, 18, 1, 0, tzinfo=offset))

        assert apply_daily_reset(record, NOW).call_count == 0

    def test_epoch_record_resets(self):
        assert apply_daily_reset(QuotaRecord.empty("u1"), NOW).call_count == 0

    @pytest.mark.parametrize("days_ago,count", [(0, 0), (0, 19), (0, 20), (1, 20), (30, 3)])
    def test_idempotent(self, days_ago, count):
        record = QuotaRecord(uid="u1", call_count=count, last_call_date=NOW - timedelta(days=days_ago))

        once = apply_daily_reset(record, NOW)
        twice = apply_daily_reset(once, NOW)

        assert twice == once


class TestAdmit:
    """Admission law."""

    def test_ceiling_is_twenty(self):
        assert DAILY_CALL_LIMIT == 20

    @pytest.mark.parametrize("count,allowed", [(0, True), (1, True), (19, True), (20, False), (21, False)])
    def test_default_ceiling(self, count, allowed):
        record = QuotaRecord(uid="u1", call_count=count, last_call_date=NOW)
        assert admit(record) is allowed

    @pytest.mark.parametrize("ceiling", [1, 5, 100])
    def test_admits_iff_below_ceiling(self, ceiling):
        for count in range(ceiling + 2):
            record = QuotaRecord(uid="u1", call_count=count, last_call_date=NOW)
            assert admit(record, ceiling) is (count < ceiling)


class TestQuotaRecord:

    def test_rejects_negative_count(self):
        with pytest.raises(ValueError):
            QuotaRecord(uid="u1", call_count=-1)

    def test_rejects_naive_dates(self):
        with pytest.raises(ValueError):
            QuotaRecord(uid="u1", last_call_date=datetime(2026, 1, 1))


class TestCodec:
    """Typed-field wire format."""

    def test_encode_fields(self):
        assert encode_fields(3, NOW) == {
            "fields": {
                "callCount": {"integerValue": "3"},
                "lastCallDate": {"timestampValue": "2026-10-18T09:30:00.000000Z"},
            }
        }

    def test_decode_document(self):
        document = {
            "name": "projects/p/databases/(default)/documents/usage/u1",
            "fields": {
                "callCount": {"integerValue": "12"},
                "lastCallDate": {"timestampValue": "2026-10-18T09:30:00.123456789Z"},
                "displayName": {"stringValue": "kept as-is"},
            },
            "updateTime": "2026-10-18T09:30:00.200000Z",
        }

        record = decode_document("u1", document)

        assert record == QuotaRecord(
            uid="u1",
            call_count=12,
            last_call_date=datetime(2026, 10, 18, 9, 30, 0, 123456, tzinfo=timezone.utc),
            update_time="2026-10-18T09:30:00.200000Z",
        )

    def test_decode_document_without_quota_fields(self):
        record = decode_document("u1", {"fields": {}, "updateTime": "t"})

        assert record.call_count == 0
        assert record.last_call_date == EPOCH
        assert record.update_time == "t"

    def test_decode_accepts_iso_date_strings(self):
        record = decode_document("u1", {"fields": {
            "callCount": {"integerValue": "2"},
            "lastCallDate": {"stringValue": "2026-10-17"},
        }})
        assert record.last_call_date == datetime(2026, 10, 17, tzinfo=timezone.utc)

    @pytest.mark.parametrize("fields", [
        {"callCount": {"stringValue": "many"}},
        {"callCount": {"integerValue": "abc"}},
        {"lastCallDate": {"booleanValue": True}},
        {"lastCallDate": {"timestampValue": "yesterday"}},
    ])
    def test_decode_rejects_garbage(self, fields):
        with pytest.raises(CodecError):
            decode_document("u1", {"fields": fields})

    @pytest.mark.parametrize("value,expected", [
        ("2026-10-18T09:30:00Z", datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)),
        ("2026-10-18T09:30:00.5Z", datetime(2026, 10, 18, 9, 30, 0, 500000, tzinfo=timezone.utc)),
        ("2026-10-18T11:30:00+02:00", datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)),
    ])
    def test_parse_timestamp(self, value, expected):
        assert parse_timestamp(value) == expected

    def test_update_mask_params(self):
        assert update_mask_params() == [
            ("updateMask.fieldPaths", "callCount"),
            ("updateMask.fieldPaths", "lastCallDate"),
        ]
        assert ("currentDocument.updateTime", "rev-1") in update_mask_params("rev-1")
        assert ("currentDocument.exists", "false") in update_mask_params(None, must_not_exist=True)
