"""
Deep-thinking pre-pass.

Asks the model to reason about the request before the answer stage and
relays the reasoning as thinking events. Best-effort: failures turn into a
single apology event and the pipeline continues.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence

from coach.errors import UpstreamError
from coach.models.chat import ThinkingEvent
from coach.models.conversation import HistoryMessage, Role
from coach.services.context import build_history_context
from coach.services.model_client import GenerationOptions, ModelClient

logger = logging.getLogger(__name__)

THINKING_HISTORY_WINDOW = 3
THINKING_FAILED = "深度思考过程出现错误。"

SYSTEM_PROMPT = "你是一个专业的分析师，请基于对话历史展示你的思考过程。"


def build_thinking_prompt(user_input: str, search_digest: str, history: Sequence[HistoryMessage]) -> str:
    history_context = build_history_context(history, THINKING_HISTORY_WINDOW, show_index=True)
    search_section = f"相关搜索信息：\n{search_digest}\n" if search_digest else ""

    return f"""{SYSTEM_PROMPT}

用户当前需求：{user_input}
{history_context}
{search_section}
请从以下几个方面进行深度分析：
1. 基于对话历史，需求的核心目标是什么？
2. 需要哪些关键步骤？
3. 可能的难点和挑战是什么？
4. 如何合理分配时间和优先级？
5. 最佳实践和建议是什么？

请详细分析："""


class ThinkingStage:
    def __init__(self, model_client: ModelClient) -> None:
        self.model_client = model_client

    def _messages(
        self, user_input: str, search_digest: str, history: Sequence[HistoryMessage]
    ) -> list[HistoryMessage]:
        return [
            HistoryMessage(role=Role.SYSTEM, content=SYSTEM_PROMPT),
            *history,
            HistoryMessage(role=Role.USER, content=build_thinking_prompt(user_input, search_digest, history)),
        ]

    async def stream(
        self,
        user_input: str,
        search_digest: str = "",
        history: Sequence[HistoryMessage] = (),
        enabled: bool = False,
    ) -> AsyncIterator[ThinkingEvent]:
        """
        Stream the reasoning for a request.

        Emits nothing, and makes no upstream call, when disabled. Reasoning
        deltas are relayed as-is; a model without a reasoning channel has
        its answer text relayed as thinking instead.
        """
        if not enabled:
            return

        saw_reasoning = False
        try:
            async for delta in self.model_client.stream(
                self._messages(user_input, search_digest, history),
                GenerationOptions(use_deep_thinking=True),
            ):
                if delta.kind == "thinking":
                    saw_reasoning = True
                    yield ThinkingEvent(content=delta.text)
                elif not saw_reasoning:
                    yield ThinkingEvent(content=delta.text)
        except UpstreamError as e:
            logger.warning("thinking: stage failed: %s", e)
            yield ThinkingEvent(content=THINKING_FAILED)

    async def execute(
        self,
        user_input: str,
        search_digest: str = "",
        history: Sequence[HistoryMessage] = (),
    ) -> str:
        """Run the pre-pass to completion and return the reasoning transcript, or "" if it failed."""
        parts = [
            event.content async for event in self.stream(user_input, search_digest, history, enabled=True)
        ]
        if parts and parts[-1] == THINKING_FAILED:
            return ""
        return "".join(parts)
