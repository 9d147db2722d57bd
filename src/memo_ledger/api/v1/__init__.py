"""Version 1 API endpoints."""

from .endpoints import auth_router, memos_router

__all__ = [
    "auth_router",
    "memos_router",
]
