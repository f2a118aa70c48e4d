"""
Chat business logic.
Builds the assistant query for a project turn and opens the upstream streams
the routers relay back to the browser.
"""

from typing import Dict, List, Optional

from ..logging_config import get_logger
from ..models import BluechatStreamRequest, ChatStreamRequest, DeepSeekChatRequest, ReferenceItem
from xhsnova.database import Database
from xhsnova.exceptions import ValidationError
from xhsnova.relay import ChatRelay, RelayFrames, forward_events
from xhsnova.upstream import BluechatClient, DeepSeekClient, DifyClient

logger = get_logger(__name__)

REFERENCE_TYPE_LABELS = {
    "full_card": "整个卡片",
    "text_snippet": "文本片段",
}


def build_reference_block(db: Database, project_id: str, references: List[ReferenceItem]) -> str:
    """Describe the referenced cards so the assistant can use them."""
    block = "\n\n用户为本次创作提供了以下参考信息：\n\n"
    for index, ref in enumerate(references, start=1):
        card = db.get_card(ref.card_id, project_id)
        if not card:
            logger.error(f"Reference card {ref.card_id} not found in project {project_id}, skipping")
            continue

        block += f"参考项{index}：\n"
        block += f"  来源：卡片\"{ref.card_friendly_title or card['title']}\"\n"
        block += f"  类型：{REFERENCE_TYPE_LABELS[ref.type]}\n"
        if ref.user_remark:
            block += f"  用户备注：\"{ref.user_remark}\"\n"

        if ref.type == "full_card":
            block += f"  内容：\n  ---\n  {card['content']}\n  ---\n\n"
        elif ref.snippet_content:
            block += f"  片段内容：\n  ---\n  {ref.snippet_content}\n  ---\n\n"
    return block


def build_full_query(
    db: Database,
    project_id: str,
    core_instruction: str,
    references: Optional[List[ReferenceItem]] = None,
    system_messages: Optional[List[str]] = None
) -> str:
    """
    Assemble the text sent upstream for one turn.

    System messages come first separated by blank lines, then the user's
    instruction, then a block describing any referenced cards.
    """
    if system_messages:
        full_query = "\n\n".join(system_messages) + f"\n\n用户当前请求：{core_instruction}"
    else:
        full_query = core_instruction

    if references:
        full_query += build_reference_block(db, project_id, references)
    return full_query


def _require_instruction(core_instruction: str) -> None:
    if not core_instruction.strip():
        raise ValidationError("core_instruction must not be empty", field="core_instruction")


class ChatService:
    """Service for assistant turns: Dify streaming, bluechat research and DeepSeek completions."""

    def __init__(
        self,
        db: Database = None,
        dify_client: DifyClient = None,
        bluechat_client: BluechatClient = None,
        deepseek_client: DeepSeekClient = None
    ):
        self.db = db or Database()
        self.db.initialize_schema()
        self.dify_client = dify_client or DifyClient()
        self.bluechat_client = bluechat_client or BluechatClient()
        self.deepseek_client = deepseek_client or DeepSeekClient()

    async def open_chat_stream(self, request: ChatStreamRequest) -> RelayFrames:
        """
        Start an assistant turn and return the SSE frame generator.

        The upstream call is made here so that a failure is raised before any
        response is started.

        Raises:
            ProjectNotFoundError: unknown project
            UpstreamError: upstream answered with a non-success status
            StreamTransportError: upstream could not be reached
            ConfigurationError: no API key configured
        """
        _require_instruction(request.core_instruction)
        project = self.db.require_project(request.project_id)
        self.db.create_message(request.project_id, role="user", content=request.core_instruction)

        conversation_id = project.get("conversation_id") or ""
        query = build_full_query(
            self.db,
            request.project_id,
            request.core_instruction,
            request.references,
            request.system_messages
        )

        upstream = await self.dify_client.open_chat_stream(
            query,
            conversation_id,
            user=f"project_{request.project_id}"
        )
        relay = ChatRelay(self.db, request.project_id, conversation_id)
        return relay.stream(upstream)

    async def open_bluechat_stream(self, request: BluechatStreamRequest) -> RelayFrames:
        """Open the research stream and return a plain relay over it."""
        payload = {
            "stage": request.stage,
            "query": request.query,
            "user_id": request.user_id,
            "session_id": request.session_id,
            "limit": request.limit,
            "ids": request.ids,
            "count": request.count
        }
        upstream = await self.bluechat_client.open_stream(payload)
        return forward_events(upstream)

    async def deepseek_chat(self, request: DeepSeekChatRequest) -> Dict:
        """Run one non-streaming completion and store both sides of the exchange."""
        _require_instruction(request.core_instruction)
        self.db.require_project(request.project_id)
        query = build_full_query(self.db, request.project_id, request.core_instruction, request.references)

        result = await self.deepseek_client.complete(query)

        self.db.create_message(request.project_id, role="user", content=request.core_instruction)
        message = self.db.create_message(
            request.project_id,
            role="assistant",
            content=result["content"],
            llm_raw_output=result["raw"]
        )
        logger.info(f"DeepSeek reply stored for project {request.project_id}")
        return {"content": result["content"], "role": result["role"], "message_id": message["id"]}
