"""
AI proxy gateway service package.

The gateway sits in front of an upstream generative-AI API, enforcing:
- Credential hiding: the upstream API key never leaves the server
- Identity: end-user ID tokens verified against the identity platform
- Daily quota: per-user call counter kept in a remote document store

Structure:
- app.main: FastAPI app and route wiring.
- app.auth: Service-account key import and JWT assertion signing.
- app.adapters: HTTP clients for the token, identity and upstream endpoints.
- app.upstream: Provider adapters and chat schema translation.
- app.quota: Quota record codec, daily policy and document store client.
- app.domain: Per-request orchestration.
"""
