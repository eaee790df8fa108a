"""Tests for the goal and plain-answer executors."""

from __future__ import annotations

import pytest

from coach.models.chat import ToolType
from coach.models.conversation import HistoryMessage, Role
from coach.services.answer_executor import ANSWER_FAILED, AnswerExecutor, build_answer_prompt
from coach.services.goal_executor import GOAL_FAILED, GoalExecutor, build_goal_prompt
from coach.services.model_client import ModelDelta

pytestmark = pytest.mark.asyncio(loop_scope="session")


# ── goal executor ───────────────────────────────────────────────────────────


def test_goal_prompt_uses_extracted_profile():
    history = [HistoryMessage(role=Role.USER, content="我是编程新手")]

    prompt = build_goal_prompt("帮我定个目标", "", "", history)

    assert "兴趣领域：编程" in prompt
    assert "当前水平：beginner" in prompt
    assert "一个月" in prompt
    assert "SMART" in prompt


def test_goal_prompt_defaults():
    prompt = build_goal_prompt("随便定个目标", "", "", [])

    assert "兴趣领域：通用技能" in prompt
    assert "当前水平：beginner" in prompt


async def test_goal_stream_relays_content_only(fake_model_cls):
    model = fake_model_cls(
        lambda messages, options: [
            ModelDelta("thinking", "不应出现"),
            ModelDelta("content", "## 总体目标"),
            ModelDelta("content", "\n每天练习"),
        ]
    )

    events = [e async for e in GoalExecutor(model).stream("我想学绘画")]

    assert [e.type for e in events] == ["content", "content"]
    assert "".join(e.content for e in events) == "## 总体目标\n每天练习"


async def test_goal_stream_failure_yields_apology(fake_model_cls, upstream_error):
    model = fake_model_cls(lambda messages, options: upstream_error())

    events = [e async for e in GoalExecutor(model).stream("我想学绘画")]

    assert [e.content for e in events] == [GOAL_FAILED]


async def test_goal_invoke(fake_model_cls, content):
    model = fake_model_cls(lambda messages, options: content("目标内容"))

    result = await GoalExecutor(model).invoke("我想学舞蹈")

    assert result.tool_type == ToolType.GOAL
    assert result.content == "目标内容"
    assert result.todo_data is None


# ── answer executor ─────────────────────────────────────────────────────────


def test_answer_prompt_includes_context_sections():
    history = [HistoryMessage(role=Role.USER, content=f"消息{i}") for i in range(6)]

    prompt = build_answer_prompt("问题", "搜索摘要", "思考摘要", history)

    assert "消息1" not in prompt
    assert "1. 用户: 消息2" in prompt
    assert "搜索摘要" in prompt
    assert "思考摘要" in prompt


def test_answer_prompt_search_variant():
    generic = build_answer_prompt("问题", "搜索摘要", "", [], ToolType.NONE)
    focused = build_answer_prompt("问题", "搜索摘要", "", [], ToolType.SEARCH)

    assert generic != focused
    assert "搜索到的信息" in focused


async def test_answer_stream(fake_model_cls, content):
    model = fake_model_cls(lambda messages, options: content("你", "好"))

    events = [e async for e in AnswerExecutor(model).stream("你好")]

    assert [e.content for e in events] == ["你", "好"]
    assert model.calls[0][0][0].role == Role.SYSTEM
    assert model.calls[0][1].use_deep_thinking is False


async def test_answer_stream_failure_mid_way(fake_model_cls, upstream_error):
    model = fake_model_cls(lambda messages, options: [ModelDelta("content", "部分"), upstream_error()])

    events = [e async for e in AnswerExecutor(model).stream("你好")]

    assert [e.content for e in events] == ["部分", ANSWER_FAILED]


async def test_answer_invoke_failure(fake_model_cls, upstream_error):
    model = fake_model_cls(lambda messages, options: upstream_error())

    result = await AnswerExecutor(model).invoke("你好", tool_type=ToolType.SEARCH)

    assert result.failed is True
    assert result.content == ANSWER_FAILED
    assert result.tool_type == ToolType.SEARCH
