"""Business logic services for the Nova backend."""

from .project_service import ProjectService
from .chat_service import ChatService, build_full_query

__all__ = [
    "ProjectService",
    "ChatService",
    "build_full_query"
]
