"""
Pseudo-user identity.

There is no sign-in: a stable user id is derived from the client's
forwarded address and user agent. This scopes conversations per browser;
it is not authentication.
"""

from __future__ import annotations

import hashlib

from fastapi import Request

USER_ID_PREFIX = "user_"
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_ID_CHARS = 8


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def derive_user_id(forwarded_for: str | None, user_agent: str | None) -> str:
    """
    Derive a pseudo-user id from request headers.

    Args:
        forwarded_for: X-Forwarded-For header value
        user_agent: User-Agent header value

    Returns:
        "user_" followed by 8 base-36 characters
    """
    source = (forwarded_for or "anonymous") + (user_agent or "unknown")
    digest = int.from_bytes(hashlib.sha256(source.encode("utf-8")).digest()[:8], "big")
    return USER_ID_PREFIX + _base36(digest)[:_ID_CHARS].rjust(_ID_CHARS, "0")


async def get_user_id(request: Request) -> str:
    """FastAPI dependency returning the caller's pseudo-user id."""
    return derive_user_id(request.headers.get("x-forwarded-for"), request.headers.get("user-agent"))
