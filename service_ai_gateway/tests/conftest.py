"""
Shared fixtures for gateway tests.

``FakeGoogleBackend`` stands in for every external endpoint the gateway
calls (OAuth2 token, identity lookup, Firestore documents, Gemini) behind a
single ``httpx.MockTransport``.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import GatewaySettings
from service_ai_gateway.app.quota.codec import encode_fields

PROJECT_ID = "demo-project"
CLIENT_EMAIL = "quota-writer@demo-project.iam.gserviceaccount.com"
VALID_ID_TOKEN = "id-token-u1"
UPSTREAM_API_KEY = "server-side-gemini-key"
IDENTITY_API_KEY = "identity-platform-key"

GEMINI_REPLY = {
    "candidates": [
        {"content": {"parts": [{"text": "Hello from Gemini"}], "role": "model"}}
    ]
}

CHAT_BODY = {
    "systemInstruction": {"parts": [{"text": "You are terse."}]},
    "contents": [{"role": "user", "parts": [{"text": "Hi"}]}],
}


@pytest.fixture(scope="session")
def rsa_private_key():
    """2048-bit RSA key shared by the whole test session."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    """PKCS#8 PEM encoding of the session RSA key."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def service_account_json(private_key_pem) -> str:
    """Service-account key JSON as downloaded from the console."""
    return json.dumps({
        "type": "service_account",
        "project_id": PROJECT_ID,
        "private_key_id": "abc123",
        "private_key": private_key_pem,
        "client_email": CLIENT_EMAIL,
        "client_id": "1234567890",
        "token_uri": "https://oauth2.googleapis.com/token",
    })


@pytest.fixture
def settings(service_account_json) -> GatewaySettings:
    """Fully configured quota-gated settings, isolated from the environment."""
    return GatewaySettings(
        _env_file=None,
        upstream_adapter="gemini",
        upstream_api_key=UPSTREAM_API_KEY,
        identity_api_key=IDENTITY_API_KEY,
        service_account_json=service_account_json,
        quota_enabled=True,
    )


class FakeGoogleBackend:
    """In-memory token endpoint, identity lookup, Firestore and Gemini."""

    def __init__(self, uid: str = "u1"):
        self.uid = uid
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.token_status = 200
        self.write_status = 200
        self.timeout_hosts: List[str] = []
        self.upstream_status = 200
        self.upstream_reason: Optional[bytes] = None
        self.upstream_payload: Any = GEMINI_REPLY
        self.upstream_gate: Optional[Callable[[], Awaitable[None]]] = None
        self._revision = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport())

    # Inspection helpers

    def calls_to(self, host: str, method: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.host == host and (method is None or r.method == method)
        ]

    @property
    def upstream_calls(self) -> List[httpx.Request]:
        return self.calls_to("generativelanguage.googleapis.com")

    @property
    def store_writes(self) -> List[httpx.Request]:
        return self.calls_to("firestore.googleapis.com", "PATCH")

    def seed(self, uid: str, call_count: int, last_call_date: datetime) -> None:
        document = encode_fields(call_count, last_call_date)
        document["updateTime"] = self._next_revision()
        self.documents[uid] = document

    def stored_count(self, uid: str) -> int:
        return int(self.documents[uid]["fields"]["callCount"]["integerValue"])

    def stored_date(self, uid: str) -> str:
        return self.documents[uid]["fields"]["lastCallDate"]["timestampValue"]

    # Transport

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        await asyncio.sleep(0)
        host = request.url.host
        if host in self.timeout_hosts:
            raise httpx.ReadTimeout("timed out", request=request)
        if host == "oauth2.googleapis.com":
            return self._token(request)
        if host == "identitytoolkit.googleapis.com":
            return self._identity(request)
        if host == "firestore.googleapis.com":
            return self._firestore(request)
        if host == "generativelanguage.googleapis.com":
            if self.upstream_gate is not None:
                await self.upstream_gate()
            return self._upstream(request)
        return httpx.Response(404, json={"error": "unknown host"})

    def _next_revision(self) -> str:
        self._revision += 1
        return f"2026-01-01T00:00:00.{self._revision:06d}123Z"

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode("ascii"))
        if form.get("grant_type") != ["urn:ietf:params:oauth:grant-type:jwt-bearer"] or not form.get("assertion"):
            return httpx.Response(400, json={"error": "invalid_grant"})
        if self.token_status != 200:
            return httpx.Response(self.token_status, json={"error": "invalid_grant"})
        return httpx.Response(200, json={"access_token": "ya29.test-token", "expires_in": 3599, "token_type": "Bearer"})

    def _identity(self, request: httpx.Request) -> httpx.Response:
        if request.url.params.get("key") != IDENTITY_API_KEY:
            return httpx.Response(400, json={"error": {"message": "API key not valid"}})
        payload = json.loads(request.content)
        if payload.get("idToken") != VALID_ID_TOKEN:
            return httpx.Response(400, json={"error": {"message": "INVALID_ID_TOKEN"}})
        return httpx.Response(200, json={"users": [{"localId": self.uid, "email": "u1@example.com"}]})

    def _firestore(self, request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") != "Bearer ya29.test-token":
            return httpx.Response(401, json={"error": {"status": "UNAUTHENTICATED"}})

        uid = request.url.path.rsplit("/", 1)[-1]
        existing = self.documents.get(uid)

        if request.method == "GET":
            if existing is None:
                return httpx.Response(404, json={"error": {"status": "NOT_FOUND"}})
            return httpx.Response(200, json=existing)

        if request.method == "PATCH":
            if self.write_status != 200:
                return httpx.Response(self.write_status, json={"error": {"status": "UNAVAILABLE"}})
            params = request.url.params
            expected_revision = params.get("currentDocument.updateTime")
            if expected_revision is not None:
                if existing is None:
                    return httpx.Response(404, json={"error": {"status": "NOT_FOUND"}})
                if existing["updateTime"] != expected_revision:
                    return httpx.Response(400, json={"error": {"status": "FAILED_PRECONDITION"}})
            if params.get("currentDocument.exists") == "false" and existing is not None:
                return httpx.Response(409, json={"error": {"status": "ALREADY_EXISTS"}})

            mask = params.get_list("updateMask.fieldPaths")
            fields = json.loads(request.content)["fields"]
            document = existing or {"fields": {}}
            for name in mask:
                document["fields"][name] = fields[name]
            document["updateTime"] = self._next_revision()
            self.documents[uid] = document
            return httpx.Response(200, json=document)

        return httpx.Response(405)

    def _upstream(self, request: httpx.Request) -> httpx.Response:
        if request.url.params.get("key") != UPSTREAM_API_KEY:
            return httpx.Response(403, json={"error": {"message": "API key not valid"}})
        if self.upstream_status != 200:
            extensions = {"reason_phrase": self.upstream_reason} if self.upstream_reason else {}
            return httpx.Response(
                self.upstream_status,
                json={"error": {"message": "quota details with internal project ids"}},
                extensions=extensions,
            )
        return httpx.Response(200, json=self.upstream_payload)


@pytest.fixture
def backend() -> FakeGoogleBackend:
    """Fresh fake backend per test."""
    return FakeGoogleBackend()
