"""Plain-answer generator for the search and none intents."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence

from coach.config import settings
from coach.errors import UpstreamError
from coach.models.chat import ContentEvent, ToolResult, ToolType
from coach.models.conversation import HistoryMessage, Role
from coach.services.context import build_history_context
from coach.services.model_client import GenerationOptions, ModelClient

logger = logging.getLogger(__name__)

ANSWER_FAILED = "生成回答时出现错误。"

SYSTEM_PROMPT = """你是一个专业的兴趣教练，专门帮助用户培养和发展兴趣爱好。
你的专长领域包括：健身、编程、阅读、烹饪、音乐、绘画、舞蹈等技能学习。

请使用 Markdown 格式组织回答：合理使用标题、列表和强调，段落之间使用一个空行分隔，避免不必要的换行和空格。
请以专业教练的身份回答，提供最新、科学、实用的建议。"""


def build_answer_prompt(
    user_input: str,
    search_digest: str,
    thinking_digest: str,
    history: Sequence[HistoryMessage],
    tool_type: ToolType = ToolType.NONE,
    history_window: int = 4,
) -> str:
    """Context-aware answer prompt; the search intent gets a search-grounded variant."""
    history_context = build_history_context(history, history_window)
    search_section = f"\n**相关搜索信息：**\n{search_digest}\n" if search_digest else ""
    thinking_section = f"\n**深度思考：**\n{thinking_digest}\n" if thinking_digest else ""

    if tool_type == ToolType.SEARCH and search_digest:
        return f"""基于以下搜索到的信息回答用户问题：

用户当前问题：{user_input}
{history_context}{search_section}{thinking_section}
请优先依据搜索信息，结合对话历史提供最新、科学的建议，并在适当位置注明信息来源："""

    instruction = "请基于以上思考给出专业建议：" if thinking_digest else "请基于对话历史提供连贯、专业、实用的建议："
    return f"""作为兴趣教练，回答用户问题：

用户当前问题：{user_input}
{history_context}{search_section}{thinking_section}
{instruction}"""


class AnswerExecutor:
    def __init__(self, model_client: ModelClient, history_window: int | None = None) -> None:
        self.model_client = model_client
        self.history_window = history_window if history_window is not None else settings.HISTORY_WINDOW

    def _messages(
        self,
        user_input: str,
        search_digest: str,
        thinking_digest: str,
        history: Sequence[HistoryMessage],
        tool_type: ToolType,
    ) -> list[HistoryMessage]:
        prompt = build_answer_prompt(
            user_input, search_digest, thinking_digest, history, tool_type, self.history_window
        )
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
        tool_type: ToolType = ToolType.NONE,
    ) -> AsyncIterator[ContentEvent]:
        try:
            async for delta in self.model_client.stream(
                self._messages(user_input, search_digest, thinking_digest, history, tool_type),
                GenerationOptions(),
            ):
                if delta.kind == "content":
                    yield ContentEvent(content=delta.text)
        except UpstreamError as e:
            logger.warning("answer_executor: model call failed: %s", e)
            yield ContentEvent(content=ANSWER_FAILED)

    async def invoke(
        self,
        user_input: str,
        search_digest: str = "",
        thinking_digest: str = "",
        history: Sequence[HistoryMessage] = (),
        tool_type: ToolType = ToolType.NONE,
    ) -> ToolResult:
        try:
            content = await self.model_client.invoke(
                self._messages(user_input, search_digest, thinking_digest, history, tool_type),
                GenerationOptions(),
            )
        except UpstreamError as e:
            logger.warning("answer_executor: model call failed: %s", e)
            return ToolResult(tool_type=tool_type, content=ANSWER_FAILED, failed=True)
        return ToolResult(tool_type=tool_type, content=content)
