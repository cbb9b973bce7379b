"""
Tandem — Request identity and capability dependencies

Authentication happens upstream.  The gateway forwards the resolved user id
in ``X-User-Id`` and any granted capabilities in ``X-Capabilities``
(comma-separated).  A missing or malformed id makes the request anonymous:
queries then return neutral results and mutations fail with
``Unauthenticated``.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import Header

logger = structlog.get_logger("tandem.api.deps")


async def get_current_user_id(
    x_user_id: str | None = Header(default=None),
) -> uuid.UUID | None:
    if not x_user_id:
        return None
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        logger.warning("invalid_user_id_header")
        return None


async def get_capabilities(
    x_capabilities: str | None = Header(default=None),
) -> frozenset[str]:
    if not x_capabilities:
        return frozenset()
    return frozenset(c.strip() for c in x_capabilities.split(",") if c.strip())
