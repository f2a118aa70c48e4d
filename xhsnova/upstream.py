"""
Upstream service clients.

- DifyClient: streaming chat-messages API (the main writing assistant)
- BluechatClient: research service that streams keywords, cards and insights
- DeepSeekClient: plain (non-streaming) OpenAI-compatible chat completion

Streaming calls are opened eagerly so a non-success status is reported
before any SSE response is started. The returned UpstreamStream must be
closed by whoever consumes it.
"""

import asyncio
from typing import AsyncIterator, Dict, List, Optional

import aiohttp
from openai import APIError, AsyncOpenAI

from .config import config
from .exceptions import AIGenerationError, ConfigurationError, StreamTransportError, UpstreamError
from .logging_config import get_logger
from .streaming import StreamEvent, aiter_events

logger = get_logger(__name__)

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=300)

NOVA_SYSTEM_PROMPT = """你是 Nova，一个专业的小红书创作助手。你的任务是帮用户创作优质的小红书内容。

核心指令：
1. 根据用户需求创作小红书风格的内容
2. 使用 <new_xhs_card title="标题"> 标签来创建新的卡片内容
3. 使用 <update_xhs_card card_ref_id="卡片标题"> 标签来更新已有卡片
4. 内容要符合小红书用户喜好：有趣、实用、易读
5. 适当使用emoji和小红书常用词汇
6. 内容要有价值，避免空泛

请用中文回复，语气亲切自然。"""


class UpstreamStream:
    """An open streaming HTTP response plus the session that owns it."""

    def __init__(self, service: str, session: aiohttp.ClientSession, response: aiohttp.ClientResponse):
        self.service = service
        self.session = session
        self.response = response
        self.closed = False

    async def chunks(self) -> AsyncIterator[bytes]:
        """Raw body chunks as they arrive; transport failures become StreamTransportError."""
        try:
            async for chunk in self.response.content.iter_any():
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise StreamTransportError(f"Error reading {self.service} stream: {e}", original_error=e) from e

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Synchronous close releases the connection even if the await below is cancelled
        self.response.close()
        await asyncio.shield(self.session.close())


async def open_stream(
    service: str,
    url: str,
    payload: Dict,
    headers: Optional[Dict[str, str]] = None,
    timeout: aiohttp.ClientTimeout = DEFAULT_TIMEOUT
) -> UpstreamStream:
    """
    POST a JSON body and return the open response stream.

    Raises:
        UpstreamError: upstream answered with a non-2xx status
        StreamTransportError: the request could not be sent
    """
    session = aiohttp.ClientSession(timeout=timeout)
    try:
        response = await session.post(url, json=payload, headers=headers)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        await session.close()
        logger.error(f"{service} request failed: {e}")
        raise StreamTransportError(f"{service} request failed: {e}", original_error=e) from e

    logger.info(f"{service} API response status: {response.status}")
    if not 200 <= response.status < 300:
        try:
            error_text = await response.text()
        finally:
            response.release()
            await session.close()
        logger.error(f"{service} API error details: {error_text}")
        raise UpstreamError(service, response.status, error_text)

    return UpstreamStream(service, session, response)


class DifyClient:
    """Client for the Dify chat-messages streaming API."""

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None):
        self.api_url = (api_url or config.dify_api_url).rstrip('/')
        self.api_key = api_key if api_key is not None else config.dify_api_key

    async def open_chat_stream(self, query: str, conversation_id: str, user: str) -> UpstreamStream:
        if not self.api_key:
            raise ConfigurationError("DIFY_API_KEY not configured", config_key="DIFY_API_KEY")

        payload = {
            "inputs": {},
            "query": query,
            "response_mode": "streaming",
            "conversation_id": conversation_id or "",
            "user": user,
            "auto_generate_name": False
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        logger.info(f"Sending to Dify: query={query[:500]!r} conversation_id={conversation_id!r}")
        return await open_stream("Dify", f"{self.api_url}/chat-messages", payload, headers)


class BluechatClient:
    """Client for the bluechat research service."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or config.bluechat_api_url

    async def open_stream(self, request: Dict) -> UpstreamStream:
        logger.info(f"Sending to Bluechat: {request}")
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        return await open_stream("Bluechat", self.url, request, headers)

    async def stream_chat(self, request: Dict) -> AsyncIterator[StreamEvent]:
        """Open the research stream and yield decoded events until it ends."""
        upstream = await self.open_stream(request)
        events = aiter_events(upstream.chunks())
        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()
            await upstream.close()


class DeepSeekClient:
    """Non-streaming chat completion against the DeepSeek OpenAI-compatible API."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.deepseek_api_key
        self.base_url = base_url or config.deepseek_base_url
        self.model = model or config.deepseek_model
        self._client = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("DEEPSEEK_API_KEY not configured", config_key="DEEPSEEK_API_KEY")
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def complete(self, user_message: str, system_prompt: str = NOVA_SYSTEM_PROMPT) -> Dict:
        """
        Run one completion.

        Returns:
            {"content": str, "role": "assistant", "raw": dict}
        """
        messages: List[Dict] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message}
        ]
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.7,
                max_tokens=2000
            )
        except APIError as e:
            logger.error(f"DeepSeek API error: {e}")
            raise AIGenerationError(f"DeepSeek API error: {e}", model=self.model) from e

        if not response.choices:
            raise AIGenerationError("Invalid response from DeepSeek API", model=self.model)

        return {
            "content": response.choices[0].message.content or "",
            "role": "assistant",
            "raw": response.model_dump()
        }
