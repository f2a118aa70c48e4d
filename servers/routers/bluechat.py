"""
Routes for the bluechat research service relay.
"""

from fastapi import APIRouter
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..logging_config import get_logger
from ..models import BluechatStreamRequest
from .chat import SSE_HEADERS, chat_service, error_response
from xhsnova.exceptions import NovaError

logger = get_logger(__name__)

router = APIRouter(prefix="/api/bluechat", tags=["bluechat"])


@router.post("/stream")
async def bluechat_stream(request: BluechatStreamRequest):
    """Relay keywords, cards and insights for a research query."""
    logger.info(f"Bluechat {request.stage} request: {request.query!r}")
    try:
        frames = await chat_service.open_bluechat_stream(request)
    except NovaError as e:
        return error_response(e)

    return StreamingResponse(
        frames,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        # Runs after the response ends, including on disconnect
        background=BackgroundTask(frames.aclose)
    )
