"""
Intent classifier for tool routing.

Maps a user message to one of the closed ToolType categories:
- todo: planning, scheduling, checklists
- goal: learning goals, coaching
- search: fresh information (only when web search is enabled)
- none: plain answer
"""

from __future__ import annotations

import logging
from typing import Protocol

from coach.config import settings
from coach.errors import UpstreamError
from coach.models.chat import ToolType
from coach.models.conversation import HistoryMessage, Role
from coach.services.model_client import GenerationOptions, ModelClient

logger = logging.getLogger(__name__)

# Checked in this order: todo vocabulary wins over goal vocabulary.
TODO_KEYWORDS = ["任务", "计划", "todo", "待办", "清单", "安排"]
GOAL_KEYWORDS = ["目标", "学习", "兴趣", "教练", "规划", "smart"]

MODEL_TOOL_NAMES = {
    "create_todo_list": ToolType.TODO,
    "web_search": ToolType.SEARCH,
    "create_learning_goal": ToolType.GOAL,
    "none": ToolType.NONE,
}

SELECTION_PROMPT = """分析用户问题并选择合适的工具：

用户问题：{user_input}
搜索功能启用：{search_enabled}

可用工具：
1. create_todo_list - 创建任务列表（TODO List），适用于需要规划、安排、待办事项的场景
2. web_search - 搜索最新信息，适用于需要最新数据、新闻、趋势的场景
3. create_learning_goal - 制定学习目标，适用于需要目标设定、学习计划的场景

选择规则：
1. 如果需要规划、计划、待办事项 → create_todo_list
2. 如果需要最新信息、新闻、趋势，且搜索功能启用 → web_search
3. 如果需要制定目标、学习计划 → create_learning_goal
4. 其他情况 → none

只返回工具名称或"none"，不要有其他内容。"""


def classify_keywords(user_input: str) -> ToolType:
    """Deterministic keyword routing, case-insensitive."""
    text = user_input.lower()
    if any(keyword in text for keyword in TODO_KEYWORDS):
        return ToolType.TODO
    if any(keyword in text for keyword in GOAL_KEYWORDS):
        return ToolType.GOAL
    return ToolType.NONE


def parse_tool_name(answer: str, search_enabled: bool) -> ToolType:
    """Turn the model's one-word answer into a ToolType; anything unknown is NONE."""
    name = answer.strip().strip("\"'`“”。.").strip().lower()
    tool = MODEL_TOOL_NAMES.get(name, ToolType.NONE)
    if tool == ToolType.SEARCH and not search_enabled:
        return ToolType.NONE
    return tool


class Classifier(Protocol):
    async def classify(self, user_input: str, search_enabled: bool) -> ToolType: ...


class KeywordClassifier:
    """Routes on fixed vocabularies. Ignores the search flag."""

    async def classify(self, user_input: str, search_enabled: bool) -> ToolType:
        return classify_keywords(user_input)


class ModelClassifier:
    """Asks the chat model to pick a tool; falls back to keywords on upstream failure."""

    def __init__(self, model_client: ModelClient) -> None:
        self.model_client = model_client

    async def classify(self, user_input: str, search_enabled: bool) -> ToolType:
        prompt = SELECTION_PROMPT.format(
            user_input=user_input,
            search_enabled="是" if search_enabled else "否",
        )
        try:
            answer = await self.model_client.invoke(
                [HistoryMessage(role=Role.USER, content=prompt)],
                GenerationOptions(temperature=0.0, max_tokens=20),
            )
        except UpstreamError as e:
            fallback = classify_keywords(user_input)
            logger.warning("classifier: model selection failed (%s), keyword fallback -> %s", e, fallback)
            return fallback

        tool = parse_tool_name(answer, search_enabled)
        logger.info("classifier: model answered %r -> %s", answer[:40], tool)
        return tool


def build_classifier(model_client: ModelClient, strategy: str | None = None) -> Classifier:
    """Pick the classification strategy ("model" or "keyword")."""
    strategy = (strategy or settings.CLASSIFIER_STRATEGY).lower()
    if strategy == "keyword":
        return KeywordClassifier()
    if strategy != "model":
        logger.warning("classifier: unknown CLASSIFIER_STRATEGY=%r, using model", strategy)
    return ModelClassifier(model_client)
