from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from ragagent.core.exceptions import UpstreamLLMError
from ragagent.core.logger import setup_logger
from ragagent.core.settings import settings
from ragagent.models.chat_model import ChatCompletion, TokenUsage

logger = setup_logger(__name__)


@runtime_checkable
class ChatModel(Protocol):
    """Text-in/text-out chat collaborator the orchestrator drives once per iteration."""

    async def answer(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        ...


class UpstreamChatModel:
    """
    ChatModel over an OpenAI-compatible `/chat/completions` endpoint.

    Transport and HTTP errors are raised as UpstreamLLMError so the caller can
    apply its own retry policy; nothing here retries.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.UPSTREAM_OPENAI_BASE).rstrip("/")
        self.model = model or settings.CHAT_MODEL_NAME
        self.temperature = settings.CHAT_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens if max_tokens is not None else settings.CHAT_MAX_TOKENS
        self.timeout_s = timeout_s or settings.UPSTREAM_TIMEOUT_S
        self._transport = transport

        key = api_key if api_key is not None else settings.UPSTREAM_OPENAI_API_KEY
        self._headers = {"Authorization": f"Bearer {key}"} if key else {}

    def _payload(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.temperature,
            "stream": False,
        }
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload

    async def answer(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        payload = self._payload(system_prompt, user_prompt)

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            try:
                logger.info(f"POST {self.base_url}/chat/completions model={self.model}")
                resp = await client.post("/chat/completions", json=payload)
                resp.raise_for_status()
                data = resp.json()
            except httpx.HTTPStatusError as e:
                logger.error(f"Upstream returned HTTP error {e.response.status_code}: {e.response.text}")
                raise UpstreamLLMError(f"Upstream returned HTTP {e.response.status_code}") from e
            except httpx.HTTPError as e:
                logger.error(f"Unexpected upstream error: {str(e)}")
                raise UpstreamLLMError(f"Upstream request failed: {e}") from e
            except ValueError as e:
                raise UpstreamLLMError("Upstream returned a non-JSON body") from e

        if "error" in data:
            raise UpstreamLLMError(f"Upstream returned an error payload: {data['error']}")

        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamLLMError(
                "Upstream LLM returned a malformed response (missing 'choices')."
            ) from e

        usage = data.get("usage") or {}
        return ChatCompletion(
            answer=message.get("content") or "",
            usage=TokenUsage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                completion_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
            ),
            model=data.get("model") or self.model,
        )

    async def check_health(self) -> bool:
        async with httpx.AsyncClient(
            base_url=self.base_url, headers=self._headers, timeout=3, transport=self._transport
        ) as client:
            try:
                resp = await client.get("/models")
            except httpx.HTTPError:
                logger.warning("Upstream health check failed")
                return False
        return resp.status_code == 200
