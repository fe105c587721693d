"""
Versioned API surface. Health and metrics live outside the prefix.
"""

from fastapi import APIRouter

from events_platform.api.routes import events, payments, tickets

API_PREFIX = "/api/v1"

api_router = APIRouter(prefix=API_PREFIX)

for module in (events, tickets, payments):
    api_router.include_router(module.router)
