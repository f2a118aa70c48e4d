"""
Routes for assistant turns.

POST /api/chat/stream relays the Dify stream as SSE and persists the turn.
POST /api/chat/deepseek returns a single completion.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from ..logging_config import get_logger
from ..models import ChatStreamRequest, DeepSeekChatRequest
from ..services import ChatService
from xhsnova.exceptions import NovaError, ProjectNotFoundError, ValidationError, create_error_response

logger = get_logger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])
chat_service = ChatService()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def error_response(error: NovaError) -> JSONResponse:
    """Map a failure that happened before streaming to a JSON error body."""
    if isinstance(error, ProjectNotFoundError):
        status_code = 404
    elif isinstance(error, ValidationError):
        status_code = 400
    else:
        status_code = 500
        logger.error(f"Request failed: {error.message}")
    return JSONResponse(status_code=status_code, content=create_error_response(error))


@router.post("/stream")
async def chat_stream(request: ChatStreamRequest):
    """Stream one assistant turn for a project."""
    logger.info(f"Chat request for project {request.project_id}: {request.core_instruction[:100]!r}")
    try:
        frames = await chat_service.open_chat_stream(request)
    except NovaError as e:
        return error_response(e)

    return StreamingResponse(
        frames,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        # Runs after the response ends, including on disconnect
        background=BackgroundTask(frames.aclose)
    )


@router.post("/deepseek")
async def deepseek_chat(request: DeepSeekChatRequest):
    """Single non-streaming completion."""
    try:
        return await chat_service.deepseek_chat(request)
    except NovaError as e:
        return error_response(e)
