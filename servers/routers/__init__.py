"""API routers for the Nova backend."""

from .projects import router as projects_router
from .chat import router as chat_router
from .bluechat import router as bluechat_router

__all__ = [
    "projects_router",
    "chat_router",
    "bluechat_router"
]
