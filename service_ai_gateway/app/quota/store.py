"""
Quota document store client (Firestore REST).

The default write is an unconditional read-then-PATCH. Two concurrent
requests for the same uid can both read 19, both be admitted and both
write 20, so the ceiling can be overrun under concurrent load. With
``conditional_writes`` the PATCH carries the read revision as a
precondition; a lost race re-reads and writes again so no increment is lost.
Admission itself is still decided on the value read before the upstream call.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from shared.errors import QuotaConflictError, QuotaStoreError
from shared.logging import get_logger

from ..models import AccessToken, QuotaRecord
from .codec import CodecError, decode_document, encode_fields, update_mask_params
from .policy import apply_daily_reset, utc_now

_CONFLICT_STATUSES = {"FAILED_PRECONDITION", "ALREADY_EXISTS", "ABORTED", "NOT_FOUND"}


class QuotaStore:
    """Reads and updates per-user quota documents."""

    def __init__(
        self,
        base_url: str,
        project_id: str,
        collection: str,
        client: httpx.AsyncClient,
        *,
        conditional_writes: bool = False,
        max_write_attempts: int = 3,
    ):
        self.documents_url = (
            f"{base_url.rstrip('/')}/projects/{quote(project_id, safe='')}"
            f"/databases/(default)/documents/{quote(collection, safe='')}"
        )
        self.client = client
        self.conditional_writes = conditional_writes
        self.max_write_attempts = max(1, max_write_attempts)
        self.logger = get_logger("gateway.quota_store")

    def document_url(self, uid: str) -> str:
        return f"{self.documents_url}/{quote(uid, safe='')}"

    async def read_quota(self, uid: str, access_token: AccessToken) -> QuotaRecord:
        """Fetch the uid's record; a missing document is a zero record."""
        try:
            response = await self.client.get(self.document_url(uid), headers=_auth(access_token))
        except httpx.HTTPError as e:
            self.logger.error("Quota store unreachable", operation="read", error_type=type(e).__name__)
            raise QuotaStoreError("Quota store unreachable", details={"http_error": type(e).__name__}) from e

        if response.status_code == 404:
            return QuotaRecord.empty(uid)

        if not response.is_success:
            self.logger.error("Quota read failed", status_code=response.status_code)
            raise QuotaStoreError(
                f"Quota read failed: {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            return decode_document(uid, response.json())
        except (CodecError, ValueError) as e:
            raise QuotaStoreError("Quota document is unreadable", details={"error": str(e)}) from e

    async def record_success(
        self,
        uid: str,
        record: QuotaRecord,
        access_token: AccessToken,
        now: Optional[datetime] = None,
    ) -> QuotaRecord:
        """Write ``call_count + 1`` and the current timestamp for ``uid``.

        ``record`` must already have the daily reset applied. Returns the
        record as written.
        """
        now = now or utc_now()

        if not self.conditional_writes:
            written = QuotaRecord(uid=uid, call_count=record.call_count + 1, last_call_date=now)
            await self._patch(uid, written, access_token)
            return written

        current = record
        for attempt in range(1, self.max_write_attempts + 1):
            written = QuotaRecord(uid=uid, call_count=current.call_count + 1, last_call_date=now)
            conflict = await self._patch(
                uid,
                written,
                access_token,
                precondition_update_time=current.update_time,
                must_not_exist=current.update_time is None,
            )
            if not conflict:
                return written

            self.logger.warning("Quota write conflict, re-reading", uid=uid, attempt=attempt)
            current = apply_daily_reset(await self.read_quota(uid, access_token), now)

        raise QuotaConflictError(
            "Quota write kept conflicting",
            details={"uid": uid, "attempts": self.max_write_attempts}
        )

    async def _patch(
        self,
        uid: str,
        written: QuotaRecord,
        access_token: AccessToken,
        *,
        precondition_update_time: Optional[str] = None,
        must_not_exist: bool = False,
    ) -> bool:
        """PATCH the quota fields. Returns True when a precondition failed."""
        conditional = precondition_update_time is not None or must_not_exist
        try:
            response = await self.client.patch(
                self.document_url(uid),
                params=update_mask_params(precondition_update_time, must_not_exist),
                json=encode_fields(written.call_count, written.last_call_date),
                headers=_auth(access_token),
            )
        except httpx.HTTPError as e:
            self.logger.error("Quota store unreachable", operation="write", error_type=type(e).__name__)
            raise QuotaStoreError("Quota store unreachable", details={"http_error": type(e).__name__}) from e

        if response.is_success:
            return False

        if conditional and _is_precondition_failure(response):
            return True

        self.logger.error("Quota write failed", status_code=response.status_code)
        raise QuotaStoreError(
            f"Quota write failed: {response.status_code}",
            details={"status_code": response.status_code}
        )


def _auth(access_token: AccessToken) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token.value}"}


def _is_precondition_failure(response: httpx.Response) -> bool:
    if response.status_code in (409, 412):
        return True
    if response.status_code not in (400, 404):
        return False
    try:
        payload: Any = response.json()
    except ValueError:
        return False
    error = payload.get("error") if isinstance(payload, dict) else None
    return isinstance(error, dict) and error.get("status") in _CONFLICT_STATUSES
