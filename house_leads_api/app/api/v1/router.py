"""
Top-level router for version 1 of the API.

This router aggregates the domain routers (auth, accounts, houses,
guests, statistics, info) under a unified prefix.  When new domains
are introduced, update this file to include their routers.
"""

from fastapi import APIRouter

from .endpoints import (
    auth,
    accounts,
    houses,
    guests,
    statistics,
    info,
)

# Create a router for version 1 and include sub-routers for each domain.
router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(accounts.router, prefix="/accounts", tags=["accounts"])
router.include_router(houses.router, prefix="/houses", tags=["houses"])
# The guests router also serves the ``/guests/changes`` websocket.
router.include_router(guests.router, prefix="/guests", tags=["guests"])
router.include_router(statistics.router, prefix="/statistics", tags=["statistics"])
router.include_router(info.router, prefix="/info", tags=["info"])
