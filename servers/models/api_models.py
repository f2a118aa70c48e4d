"""
Pydantic models for API requests and responses.
"""

from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field


class ProjectCreateRequest(BaseModel):
    """Request to create a project."""
    title: str
    user_id: str = ""
    user_background: Optional[Dict] = None


class ProjectUpdateRequest(BaseModel):
    """Partial project update."""
    title: Optional[str] = None
    user_background: Optional[Dict] = None


class CardCreateRequest(BaseModel):
    """Request to create a draft card."""
    title: Optional[str] = None
    content: str = ""
    card_order: int = 0


class CardUpdateRequest(BaseModel):
    """Partial card update."""
    title: Optional[str] = None
    content: Optional[str] = None
    card_order: Optional[int] = None


class ReferenceItem(BaseModel):
    """A card (or a snippet of one) the user attached to a request."""
    card_id: str
    card_friendly_title: str = ""
    type: Literal["full_card", "text_snippet"] = "full_card"
    user_remark: str = ""
    snippet_content: Optional[str] = None


class ChatStreamRequest(BaseModel):
    """Request to stream an assistant turn for a project."""
    project_id: str
    core_instruction: str
    references: List[ReferenceItem] = []
    system_messages: List[str] = []


class DeepSeekChatRequest(BaseModel):
    """Request for a single non-streaming completion."""
    project_id: str
    core_instruction: str
    references: List[ReferenceItem] = []


class BluechatStreamRequest(BaseModel):
    """Request to stream research results from the bluechat service."""
    stage: Literal["STAGE_1", "STAGE_2"] = "STAGE_1"
    query: str
    user_id: str
    session_id: str
    ids: List[str] = Field(default_factory=list, validation_alias=AliasChoices("ids", "selected_ids"))
    limit: int = 3
    count: int = 5
