"""
Streaming chat-completion client.

Posts to an OpenAI-compatible chat endpoint (Volcengine Ark / Doubao) and
decodes the SSE-shaped body into reasoning ("thinking") and answer
("content") deltas.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from coach.config import settings
from coach.errors import ConfigurationError, UpstreamError
from coach.models.conversation import HistoryMessage

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data:"
_DONE = "[DONE]"


@dataclass(frozen=True)
class ModelDelta:
    """One decoded piece of a streamed completion."""

    kind: Literal["thinking", "content"]
    text: str


@dataclass(frozen=True)
class GenerationOptions:
    """Per-call overrides; None falls back to the client defaults."""

    temperature: float | None = None
    max_tokens: int | None = None
    use_deep_thinking: bool = False


def parse_frame(line: str) -> list[ModelDelta] | None:
    """
    Decode one line of the streaming body.

    Returns:
        The deltas carried by the frame (possibly empty), or None when the
        line is the end-of-stream marker.

    Raises:
        UpstreamError: If the frame reports an API error
    """
    line = line.strip()
    if not line.startswith(_DATA_PREFIX):
        return []

    payload = line[len(_DATA_PREFIX) :].strip()
    if payload == _DONE:
        return None
    if not payload:
        return []

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("model_client: skipping unparseable frame: %r", payload[:100])
        return []

    if not isinstance(data, dict):
        logger.warning("model_client: skipping non-object frame: %r", payload[:100])
        return []

    if data.get("error"):
        error = data["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise UpstreamError(f"model stream error: {message}")

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return []

    delta = choices[0].get("delta") or {}
    if not isinstance(delta, dict):
        logger.warning("model_client: skipping frame with malformed delta: %r", payload[:100])
        return []
    deltas: list[ModelDelta] = []
    reasoning = delta.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        deltas.append(ModelDelta("thinking", reasoning))
    content = delta.get("content")
    if isinstance(content, str) and content:
        deltas.append(ModelDelta("content", content))
    return deltas


class ModelClient:
    """Streams completions from the chat model endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "doubao-seed-1-6-251015",
        endpoint: str = "https://ark.cn-beijing.volces.com/api/v3/chat/completions",
        temperature: float = 0.7,
        max_tokens: int = 2000,
        thinking_budget_tokens: int = 2000,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the model client.

        Args:
            api_key: Bearer token for the endpoint
            model: Model identifier
            endpoint: Chat completions URL
            temperature: Default sampling temperature
            max_tokens: Default completion token cap
            thinking_budget_tokens: Reasoning budget when deep thinking is on
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)

        Raises:
            ConfigurationError: If api_key is empty
        """
        if not api_key:
            raise ConfigurationError("DOUBAO_API_KEY is not set")
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.thinking_budget_tokens = thinking_budget_tokens
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> ModelClient:
        return cls(
            api_key=settings.DOUBAO_API_KEY,
            model=settings.DOUBAO_MODEL,
            endpoint=settings.DOUBAO_ENDPOINT,
            temperature=settings.DOUBAO_TEMPERATURE,
            max_tokens=settings.DOUBAO_MAX_TOKENS,
            thinking_budget_tokens=settings.THINKING_BUDGET_TOKENS,
            timeout=settings.MODEL_TIMEOUT_SECONDS,
        )

    def build_request_body(self, messages: Sequence[HistoryMessage], options: GenerationOptions) -> dict[str, Any]:
        """Build the JSON body for one completion request."""
        if options.use_deep_thinking:
            thinking = {"type": "enabled", "emit": True, "budget_tokens": self.thinking_budget_tokens}
        else:
            thinking = {"type": "disabled"}

        return {
            "model": self.model,
            "messages": [{"role": m.role.value, "content": m.content} for m in messages],
            "stream": True,
            "temperature": options.temperature if options.temperature is not None else self.temperature,
            "max_tokens": options.max_tokens if options.max_tokens is not None else self.max_tokens,
            "thinking": thinking,
        }

    async def stream(
        self,
        messages: Sequence[HistoryMessage],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[ModelDelta]:
        """
        Stream a completion.

        The HTTP response is closed when the stream finishes, fails, or the
        caller stops iterating early.

        Args:
            messages: Role-tagged messages, oldest first
            options: Per-call overrides

        Yields:
            ModelDelta items in arrival order

        Raises:
            UpstreamError: On non-success status, transport failure, or an
                error frame in the body
        """
        options = options or GenerationOptions()
        body = self.build_request_body(messages, options)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        logger.info(
            "model_client: request model=%s messages=%d deep_thinking=%s",
            self.model,
            len(body["messages"]),
            options.use_deep_thinking,
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                async with client.stream("POST", self.endpoint, json=body, headers=headers) as response:
                    if not response.is_success:
                        detail = (await response.aread()).decode("utf-8", errors="replace")
                        logger.error("model_client: API error status=%d body=%s", response.status_code, detail[:500])
                        raise UpstreamError(
                            f"model API error: {response.status_code} - {detail[:200]}",
                            status_code=response.status_code,
                        )

                    # aiter_lines buffers partial lines across network reads
                    async for line in response.aiter_lines():
                        deltas = parse_frame(line)
                        if deltas is None:
                            break
                        for delta in deltas:
                            yield delta
        except httpx.HTTPError as e:
            logger.error("model_client: transport failure: %s", e)
            raise UpstreamError(f"model request failed: {e}") from e

    async def invoke(
        self,
        messages: Sequence[HistoryMessage],
        options: GenerationOptions | None = None,
    ) -> str:
        """Run a completion to the end and return only the answer text."""
        parts: list[str] = []
        async for delta in self.stream(messages, options):
            if delta.kind == "content":
                parts.append(delta.text)
        return "".join(parts)
