"""
Prompt context helpers.

History recaps, interest/level extraction, per-tool search queries and
search-result formatting shared by the pipeline stages.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from coach.models.chat import ToolType
from coach.models.conversation import HistoryMessage, Role, SearchResultItem

INTERESTS = ["健身", "编程", "音乐", "绘画", "舞蹈", "烹饪", "阅读"]
DEFAULT_INTEREST = "通用技能"

# Checked in order; first tier with a matching keyword wins.
LEVEL_KEYWORDS = {
    "beginner": ["新手", "初学者", "小白", "刚入门"],
    "intermediate": ["中级", "有一定基础", "学过一些"],
    "advanced": ["高级", "精通", "专家", "熟练"],
}
DEFAULT_LEVEL = "beginner"

DISPLAY_SNIPPET_CHARS = 200
NOTHING_FOUND = "未找到相关信息。"


@dataclass(frozen=True)
class LearnerProfile:
    interest: str
    level: str


def role_label(role: Role) -> str:
    match role:
        case Role.USER:
            return "用户"
        case Role.ASSISTANT:
            return "助理"
        case Role.SYSTEM:
            return "系统"


def build_history_context(history: Sequence[HistoryMessage], max_messages: int = 4, show_index: bool = True) -> str:
    """
    Render the most recent history entries as a prompt section.

    Returns an empty string when there is no history.
    """
    if not history or max_messages <= 0:
        return ""

    title = "对话历史回顾：" if show_index else "对话上下文："
    lines = [f"\n\n**{title}**"]
    for index, msg in enumerate(history[-max_messages:], start=1):
        prefix = f"{index}. " if show_index else ""
        lines.append(f"{prefix}{role_label(msg.role)}: {msg.content}")
    return "\n".join(lines) + "\n"


def extract_profile(user_input: str, history: Sequence[HistoryMessage]) -> LearnerProfile:
    """Find the interest area and skill level mentioned in the conversation."""
    all_text = " ".join([*(h.content for h in history), user_input])

    interest = next((i for i in INTERESTS if i in all_text), DEFAULT_INTEREST)

    level = DEFAULT_LEVEL
    for tier, keywords in LEVEL_KEYWORDS.items():
        if any(keyword in all_text for keyword in keywords):
            level = tier
            break

    return LearnerProfile(interest=interest, level=level)


def build_search_query(tool_type: ToolType, user_input: str, history: Sequence[HistoryMessage]) -> str:
    """
    Build the web-search query for a turn.

    TODO turns search for planning practice, goal turns for learning methods
    at the user's level; the last two user messages are appended for context.
    """
    match tool_type:
        case ToolType.TODO:
            query = f"{user_input} 任务规划 最佳实践 时间管理"
        case ToolType.GOAL:
            profile = extract_profile(user_input, history)
            query = f"{profile.interest}学习目标 {profile.level}水平 最新方法"
        case ToolType.SEARCH | ToolType.NONE:
            query = user_input

    recent_user_messages = [h.content for h in history if h.role == Role.USER][-2:]
    if recent_user_messages:
        query = f"{query} {' '.join(recent_user_messages)}"
    return query


def format_search_results(results: Sequence[SearchResultItem]) -> str:
    """Markdown list of search hits, snippets truncated for display."""
    if not results:
        return NOTHING_FOUND

    parts = ["**搜索结果：**\n"]
    for index, item in enumerate(results, start=1):
        content = item.content or "无内容"
        if len(content) > DISPLAY_SNIPPET_CHARS:
            content = content[:DISPLAY_SNIPPET_CHARS] + "..."
        entry = [f"{index}. **{item.title or '无标题'}**", f"   {content}"]
        if item.url:
            entry.append(f"   来源: {item.url}")
        if item.score is not None:
            entry.append(f"   相关性: {item.score * 100:.1f}%")
        parts.append("\n".join(entry) + "\n")
    return "\n".join(parts)
