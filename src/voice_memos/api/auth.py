from __future__ import annotations

import hmac

from starlette.requests import Request

OWNER_HEADER = "x-user-id"


def resolve_owner(request: Request, api_key: str | None) -> str | None:
    """Owner identity set by the upstream identity proxy, or None.

    When an API key is configured the caller must also present it as a bearer
    token; otherwise the owner header is not trusted.
    """
    if api_key:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), api_key):
            return None

    owner = request.headers.get(OWNER_HEADER, "").strip()
    return owner or None
