"""
TODO-list generator.

One non-streamed completion asks for strict JSON; the reply is cut down to
its first balanced JSON object and every item is normalized so the UI never
sees a missing or out-of-range field.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import AsyncIterator, Sequence
from typing import Any

from coach.config import settings
from coach.errors import UpstreamError
from coach.models.chat import ContentEvent, MetadataEvent, StreamEvent, TodoDataEvent, ToolResult, ToolType
from coach.models.conversation import HistoryMessage, Role, TodoItem, TodoListData
from coach.services.context import build_history_context
from coach.services.model_client import GenerationOptions, ModelClient

logger = logging.getLogger(__name__)

MAX_ITEMS = 10
MIN_MINUTES = 1
MAX_MINUTES = 480
DEFAULT_MINUTES = 30
DEFAULT_TITLE = "任务计划"
DEFAULT_CATEGORY = "默认"
PRIORITIES = ("high", "medium", "low")

PROGRESS_MESSAGE = "正在生成任务计划..."

JSON_FORMAT = """请严格按照以下JSON格式返回，不要有任何额外的文本、解释或问候语：

{
  "type": "todo_list",
  "title": "简洁的标题，不超过10个字",
  "items": [
    {
      "id": "1",
      "content": "具体可执行的任务描述",
      "priority": "high/medium/low",
      "estimated_time": 数字（1-480之间）,
      "category": "任务分类"
    }
  ]
}"""


def default_todo_data() -> TodoListData:
    """Fallback list used whenever the model reply is unusable."""
    return TodoListData(
        title=DEFAULT_TITLE,
        items=[
            TodoItem(
                id="1",
                content="分析需求并明确目标",
                priority="high",
                estimated_time=30,
                category="规划",
            )
        ],
    )


def summarize(todo_data: TodoListData) -> str:
    return f'已为您生成任务计划："{todo_data.title}"，包含 {len(todo_data.items)} 个任务。'


def extract_json_object(text: str) -> str | None:
    """
    Return the first balanced {...} substring of text.

    Braces inside JSON string literals (including escaped quotes) do not
    count toward the balance. Returns None if no complete object exists.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def _minutes(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_MINUTES
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_MINUTES
    if not isinstance(value, int | float) or not math.isfinite(value):
        return DEFAULT_MINUTES
    return max(MIN_MINUTES, min(MAX_MINUTES, round(value)))


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return None


def normalize_todo_data(raw: Any) -> TodoListData | None:
    """
    Coerce a parsed model reply into a valid TodoListData.

    Returns None when the reply holds no usable items.
    """
    if not isinstance(raw, dict):
        return None
    raw_items = raw.get("items")
    if not isinstance(raw_items, list):
        return None

    items: list[TodoItem] = []
    seen_ids: set[str] = set()
    for raw_item in raw_items:
        if len(items) >= MAX_ITEMS:
            break
        if not isinstance(raw_item, dict):
            logger.warning("todo_executor: skipping non-object item %r", raw_item)
            continue

        position = len(items) + 1
        item_id = _text(raw_item.get("id"))
        if item_id is None or item_id in seen_ids:
            item_id = f"todo_{position}"
            suffix = 1
            while item_id in seen_ids:
                suffix += 1
                item_id = f"todo_{position}_{suffix}"
        seen_ids.add(item_id)

        priority = raw_item.get("priority")
        priority = priority.strip().lower() if isinstance(priority, str) else None

        items.append(
            TodoItem(
                id=item_id,
                content=_text(raw_item.get("content")) or f"任务 {position}",
                priority=priority if priority in PRIORITIES else "medium",
                estimated_time=_minutes(raw_item.get("estimated_time")),
                category=_text(raw_item.get("category")) or DEFAULT_CATEGORY,
                completed=False,
            )
        )

    if not items:
        return None
    return TodoListData(title=_text(raw.get("title")) or DEFAULT_TITLE, items=items)


def parse_todo_reply(reply: str) -> TodoListData | None:
    candidate = extract_json_object(reply)
    if candidate is None:
        logger.warning("todo_executor: no JSON object in model reply")
        return None
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("todo_executor: JSON parse failed: %s", e)
        return None
    return normalize_todo_data(parsed)


def build_todo_prompt(
    user_input: str,
    search_digest: str,
    thinking_digest: str,
    history: Sequence[HistoryMessage],
) -> str:
    parts = [
        "你是一个专业的任务规划助手。请根据用户需求创建结构化的TODO列表。",
        f"用户当前需求：{user_input}{build_history_context(history, settings.HISTORY_WINDOW)}",
    ]
    if thinking_digest:
        parts.append(f"深度分析：\n{thinking_digest}")
    if search_digest:
        parts.append(f"相关搜索信息：\n{search_digest}")
    parts.append(JSON_FORMAT)

    requirements = [
        "生成3-8个具体、可执行的任务",
        "合理分配优先级（high/medium/low）",
        "预估时间要合理（1-480分钟）",
        "分类要明确",
    ]
    if history:
        requirements.append("请基于对话历史优化任务列表，保持连贯性")
    if thinking_digest:
        requirements.append("请基于深度分析优化任务列表")
    if search_digest:
        requirements.append("请结合搜索信息创建更合理的任务")
    parts.append("要求：\n" + "\n".join(f"{i}. {r}" for i, r in enumerate(requirements, start=1)))

    return "\n\n".join(parts)


class TodoExecutor:
    tool_type = ToolType.TODO

    def __init__(self, model_client: ModelClient) -> None:
        self.model_client = model_client

    async def generate(
        self,
        user_input: str,
        search_digest: str = "",
        thinking_digest: str = "",
        history: Sequence[HistoryMessage] = (),
    ) -> tuple[TodoListData, bool]:
        """
        Ask the model for a TODO list.

        Returns:
            (todo_data, failed); failed is True when the default list was used
        """
        system = "你是一个专业的任务规划助手。" + ("请基于对话历史提供连贯的任务规划。" if history else "")
        messages = [
            HistoryMessage(role=Role.SYSTEM, content=system),
            HistoryMessage(
                role=Role.USER,
                content=build_todo_prompt(user_input, search_digest, thinking_digest, history),
            ),
        ]

        try:
            reply = await self.model_client.invoke(messages, GenerationOptions())
        except UpstreamError as e:
            logger.warning("todo_executor: model call failed: %s", e)
            return default_todo_data(), True

        todo_data = parse_todo_reply(reply)
        if todo_data is None:
            logger.warning("todo_executor: unusable reply, using default list")
            return default_todo_data(), True

        logger.info("todo_executor: generated %d items title=%r", len(todo_data.items), todo_data.title)
        return todo_data, False

    async def invoke(
        self,
        user_input: str,
        search_digest: str = "",
        thinking_digest: str = "",
        history: Sequence[HistoryMessage] = (),
    ) -> ToolResult:
        todo_data, failed = await self.generate(user_input, search_digest, thinking_digest, history)
        return ToolResult(tool_type=self.tool_type, content=summarize(todo_data), todo_data=todo_data, failed=failed)

    async def stream(
        self,
        user_input: str,
        search_digest: str = "",
        thinking_digest: str = "",
        history: Sequence[HistoryMessage] = (),
    ) -> AsyncIterator[StreamEvent]:
        yield MetadataEvent(content=PROGRESS_MESSAGE)
        todo_data, _ = await self.generate(user_input, search_digest, thinking_digest, history)
        yield TodoDataEvent(todo_data=todo_data)
        yield ContentEvent(content=summarize(todo_data))
