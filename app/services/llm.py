import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

logger = logging.getLogger("uvicorn.error")

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
COACH_AGENT_MODEL = os.getenv("COACH_AGENT_MODEL", "minimax/minimax-m2.5")
COACH_AGENT_BASE_URL = os.getenv("COACH_AGENT_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
COACH_APP_URL = os.getenv("COACH_APP_URL", "http://localhost:8000")

LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_CONNECT_TIMEOUT_SECONDS = float(os.getenv("LLM_CONNECT_TIMEOUT_SECONDS", "10"))
LLM_WRITE_TIMEOUT_SECONDS = float(os.getenv("LLM_WRITE_TIMEOUT_SECONDS", "30"))
LLM_POOL_TIMEOUT_SECONDS = float(os.getenv("LLM_POOL_TIMEOUT_SECONDS", "60"))
LLM_RETRY_COUNT = int(os.getenv("LLM_RETRY_COUNT", "1"))
LLM_RETRY_BACKOFF_SECONDS = float(os.getenv("LLM_RETRY_BACKOFF_SECONDS", "0.75"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "900"))

RETRYABLE_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}


def _http_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        connect=LLM_CONNECT_TIMEOUT_SECONDS,
        read=LLM_TIMEOUT_SECONDS,
        write=LLM_WRITE_TIMEOUT_SECONDS,
        pool=LLM_POOL_TIMEOUT_SECONDS,
    )


class LLMRequestError(RuntimeError):
    def __init__(self, provider: str, model: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


@dataclass
class AgentToolCall:
    id: str
    name: str
    # Raw JSON text as produced by the model; the planner decodes it per call.
    arguments: str = "{}"


@dataclass
class AgentMessage:
    content: Optional[str] = None
    tool_calls: list[AgentToolCall] = field(default_factory=list)

    def to_history(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": self.content or ""}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message


class AgentRuntime(Protocol):
    model: str

    async def complete(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> AgentMessage:
        ...


def parse_agent_message(data: Any) -> AgentMessage:
    try:
        message = data["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError("Chat completion returned no message") from exc

    calls = []
    for index, raw in enumerate(message.get("tool_calls") or []):
        function = raw.get("function") or {}
        name = str(function.get("name") or "").strip()
        if not name:
            continue
        arguments = function.get("arguments")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments if arguments is not None else {})
        calls.append(AgentToolCall(id=str(raw.get("id") or f"call_{index}"), name=name, arguments=arguments))

    content = message.get("content")
    return AgentMessage(content=str(content).strip() if content else None, tool_calls=calls)


class OpenRouterAgentRuntime:
    provider = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str = COACH_AGENT_MODEL,
        base_url: str = COACH_AGENT_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": COACH_APP_URL,
            "X-Title": "Volume Coach",
        }

    def _payload(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": LLM_MAX_TOKENS,
            "temperature": 0.2,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        return payload

    def _error(self, message: str, status_code: Optional[int] = None) -> LLMRequestError:
        return LLMRequestError(provider=self.provider, model=self.model, message=message, status_code=status_code)

    async def complete(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> AgentMessage:
        attempts = max(1, LLM_RETRY_COUNT + 1)
        last_error = "unknown error"
        async with httpx.AsyncClient(timeout=_http_timeout(), transport=self._transport) as client:
            for idx in range(attempts):
                retry = idx < attempts - 1
                try:
                    response = await client.post(
                        f"{self.base_url}/chat/completions",
                        headers=self._headers(),
                        json=self._payload(messages, tools),
                    )
                    response.raise_for_status()
                    return parse_agent_message(response.json())
                except httpx.TimeoutException as exc:
                    last_error = "request timed out"
                    if retry:
                        await asyncio.sleep(LLM_RETRY_BACKOFF_SECONDS * (idx + 1))
                        continue
                    raise self._error("OpenRouter request timed out while waiting for response.") from exc
                except httpx.HTTPStatusError as exc:
                    status = exc.response.status_code
                    detail = (exc.response.text or "").strip()[:220]
                    last_error = f"status={status}"
                    if retry and status in RETRYABLE_STATUS_CODES:
                        logger.info("coach agent retry model=%s status=%s attempt=%s", self.model, status, idx + 1)
                        await asyncio.sleep(LLM_RETRY_BACKOFF_SECONDS * (idx + 1))
                        continue
                    raise self._error(
                        f"OpenRouter request failed (status={status}): {detail or 'no response body'}",
                        status_code=status,
                    ) from exc
                except (httpx.TransportError, ValueError) as exc:
                    last_error = str(exc)[:220]
                    if retry:
                        await asyncio.sleep(LLM_RETRY_BACKOFF_SECONDS * (idx + 1))
                        continue
                    raise self._error(f"OpenRouter request failed: {last_error}") from exc
        raise self._error(f"OpenRouter request failed: {last_error}")


def get_agent_runtime() -> Optional[AgentRuntime]:
    if not OPENROUTER_API_KEY:
        return None
    return OpenRouterAgentRuntime(api_key=OPENROUTER_API_KEY)
