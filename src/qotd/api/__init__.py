"""API route aggregation.

All routers registered here get mounted in main.py. The WebSocket route
lives in qotd.realtime and is mounted separately.
"""

from fastapi import APIRouter

from qotd.api.health import router as health_router
from qotd.api.quotes import router as quotes_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(quotes_router, tags=["quotes"])
