"""
Main API router for AutoInterview

Aggregates all API routes and provides the main application router.
"""

from fastapi import APIRouter

from autointerview.api.endpoints import session, devices

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(
    session.router,
    prefix="/session",
    tags=["Session"]
)

api_router.include_router(
    devices.router,
    prefix="/devices",
    tags=["Devices"]
)
