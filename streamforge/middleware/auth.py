"""
API-key authentication middleware.

Set API_KEY=<secret> in .env (or the environment) to require it on every
request except the public paths below. Without API_KEY, access is open.

Clients send the key as either header:
  Authorization: Bearer <key>
  X-API-Key: <key>
"""
from __future__ import annotations

import hmac
import os

from fastapi import Request
from fastapi.responses import JSONResponse

_PUBLIC_PATHS = {"/api/health", "/docs", "/openapi.json"}


def _provided_key(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    return request.headers.get("X-API-Key", "").strip()


async def api_key_middleware(request: Request, call_next):
    api_key = os.getenv("API_KEY", "").strip()

    if not api_key or request.method == "OPTIONS" or request.url.path in _PUBLIC_PATHS:
        return await call_next(request)

    if not hmac.compare_digest(_provided_key(request).encode(), api_key.encode()):
        return JSONResponse(
            {"error": "Unauthorized", "detail": "API key required"},
            status_code=401,
        )

    return await call_next(request)
