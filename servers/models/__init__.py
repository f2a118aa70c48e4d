"""API models for the Nova backend."""

from .api_models import (
    ProjectCreateRequest,
    ProjectUpdateRequest,
    CardCreateRequest,
    CardUpdateRequest,
    ReferenceItem,
    ChatStreamRequest,
    DeepSeekChatRequest,
    BluechatStreamRequest
)

__all__ = [
    "ProjectCreateRequest",
    "ProjectUpdateRequest",
    "CardCreateRequest",
    "CardUpdateRequest",
    "ReferenceItem",
    "ChatStreamRequest",
    "DeepSeekChatRequest",
    "BluechatStreamRequest"
]
