"""
Tandem — Main API Router

Aggregates all sub-routers under a single prefix so that ``tandem.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from tandem.api import conversations, matches, swipes

router = APIRouter()

router.include_router(swipes.router, prefix="/swipes", tags=["Swipes"])
router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
