"""Learning-goal generator: SMART goals as streamed Markdown prose."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence

from coach.config import settings
from coach.errors import UpstreamError
from coach.models.chat import ContentEvent, ToolResult, ToolType
from coach.models.conversation import HistoryMessage, Role
from coach.services.context import build_history_context, extract_profile
from coach.services.model_client import GenerationOptions, ModelClient

logger = logging.getLogger(__name__)

DEFAULT_TIMEFRAME = "一个月"
GOAL_FAILED = "制定学习目标时出现错误。"

SYSTEM_PROMPT = "你是一个专业的兴趣教练，擅长制定学习计划和目标。"


def build_goal_prompt(
    user_input: str,
    search_digest: str,
    thinking_digest: str,
    history: Sequence[HistoryMessage],
    timeframe: str = DEFAULT_TIMEFRAME,
) -> str:
    profile = extract_profile(user_input, history)
    history_context = build_history_context(history, settings.HISTORY_WINDOW)

    prompt = f"""作为专业兴趣教练，请为用户制定个性化的{timeframe}学习目标。

用户需求：{user_input}

用户信息：
- 兴趣领域：{profile.interest}
- 当前水平：{profile.level}
- 时间框架：{timeframe}{history_context}"""

    if thinking_digest:
        prompt += f"\n\n深度分析：\n{thinking_digest}"
    if search_digest:
        prompt += f"\n\n相关搜索信息：\n{search_digest}"

    prompt += f"""

请生成具体、可衡量、可实现、相关、有时限的(SMART)目标。
请使用Markdown格式组织你的回答，包括：
1. **总体目标** - 简洁的总体描述
2. **具体目标** - 3-5个具体可衡量的目标
3. **时间安排** - {timeframe}的时间规划
4. **评估标准** - 如何评估进度和成功
5. **资源建议** - 推荐的学习资源"""
    return prompt


class GoalExecutor:
    tool_type = ToolType.GOAL

    def __init__(self, model_client: ModelClient, timeframe: str = DEFAULT_TIMEFRAME) -> None:
        self.model_client = model_client
        self.timeframe = timeframe

    def _messages(
        self,
        user_input: str,
        search_digest: str,
        thinking_digest: str,
        history: Sequence[HistoryMessage],
    ) -> list[HistoryMessage]:
        prompt = build_goal_prompt(user_input, search_digest, thinking_digest, history, self.timeframe)
        return [
            HistoryMessage(role=Role.SYSTEM, content=SYSTEM_PROMPT),
            HistoryMessage(role=Role.USER, content=prompt),
        ]

    async def stream(
        self,
        user_input: str,
        search_digest: str = "",
        thinking_digest: str = "",
        history: Sequence[HistoryMessage] = (),
    ) -> AsyncIterator[ContentEvent]:
        try:
            async for delta in self.model_client.stream(
                self._messages(user_input, search_digest, thinking_digest, history),
                GenerationOptions(),
            ):
                if delta.kind == "content":
                    yield ContentEvent(content=delta.text)
        except UpstreamError as e:
            logger.warning("goal_executor: model call failed: %s", e)
            yield ContentEvent(content=GOAL_FAILED)

    async def invoke(
        self,
        user_input: str,
        search_digest: str = "",
        thinking_digest: str = "",
        history: Sequence[HistoryMessage] = (),
    ) -> ToolResult:
        try:
            content = await self.model_client.invoke(
                self._messages(user_input, search_digest, thinking_digest, history),
                GenerationOptions(),
            )
        except UpstreamError as e:
            logger.warning("goal_executor: model call failed: %s", e)
            return ToolResult(tool_type=self.tool_type, content=GOAL_FAILED, failed=True)
        return ToolResult(tool_type=self.tool_type, content=content)
