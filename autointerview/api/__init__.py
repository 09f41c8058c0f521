"""
API layer for AutoInterview

Contains FastAPI routers for:
- Session lifecycle and user intents
- Capture device listing
- WebSocket snapshot streaming
"""

from autointerview.api.router import api_router

__all__ = ["api_router"]
