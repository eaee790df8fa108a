"""
Tests for the turn orchestrator.

Validates stage order, feature flags, degradation, the terminal marker, and
cleanup when the consumer abandons the stream.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import aclosing

import pytest

from coach.errors import UpstreamError
from coach.models.chat import STREAM_DONE, ChatRequest, StreamDone, ToolType, TurnContext
from coach.models.conversation import HistoryMessage, Role
from coach.services.classifier import KeywordClassifier
from coach.services.model_client import ModelDelta
from coach.services.orchestrator import (
    DISPATCH_FAILED,
    SEARCH_FAILED,
    SEARCH_STARTED,
    Orchestrator,
)
from coach.services.search_provider import SearchResult
from coach.services.thinking import THINKING_FAILED

pytestmark = pytest.mark.asyncio(loop_scope="session")

CONTEXT = TurnContext(user_id="user_test0001", conversation_id="conv-1")

PLAN = {
    "title": "健身计划",
    "items": [
        {"id": "1", "content": "热身", "priority": "high", "estimated_time": 10, "category": "训练"},
        {"id": "2", "content": "力量训练", "priority": "medium", "estimated_time": 40, "category": "训练"},
        {"id": "3", "content": "拉伸", "priority": "low", "estimated_time": 10, "category": "恢复"},
    ],
}


def scripted_model(fake_model_cls, answer: str = "回答"):
    """Reasoning for thinking calls, a plan for TODO prompts, plain text otherwise."""

    def respond(messages, options):
        prompt = messages[-1].content
        if options.use_deep_thinking:
            return [ModelDelta("thinking", "思考"), ModelDelta("thinking", "完毕"), ModelDelta("content", "忽略")]
        if "TODO列表" in prompt:
            return [ModelDelta("content", json.dumps(PLAN, ensure_ascii=False))]
        return [ModelDelta("content", answer[:1]), ModelDelta("content", answer[1:])]

    return fake_model_cls(respond)


def make_orchestrator(model, search) -> Orchestrator:
    return Orchestrator(model, search, KeywordClassifier(), max_history=6, search_max_results=5, queue_size=8)


async def run(orchestrator: Orchestrator, request: ChatRequest, history=None) -> list:
    return [e async for e in orchestrator.stream(request, CONTEXT, history)]


async def test_plain_answer_without_flags(fake_model_cls, fake_search_cls):
    search = fake_search_cls()
    orchestrator = make_orchestrator(scripted_model(fake_model_cls), search)

    events = await run(orchestrator, ChatRequest(message="你好"))

    assert events[-1] is STREAM_DONE
    body = events[:-1]
    assert [e.type for e in body] == ["content", "content"]
    assert "".join(e.content for e in body) == "回答"
    assert search.queries == []


async def test_no_search_or_thinking_events_when_disabled(fake_model_cls, fake_search_cls):
    search = fake_search_cls()
    orchestrator = make_orchestrator(scripted_model(fake_model_cls), search)

    events = await run(orchestrator, ChatRequest(message="帮我制定健身计划"))

    types = {e.type for e in events if not isinstance(e, StreamDone)}
    assert "search" not in types
    assert "thinking" not in types
    assert search.queries == []


async def test_full_pipeline_order_for_todo(fake_model_cls, fake_search_cls):
    """search → thinking → metadata progress → tododata → summary → STREAM_DONE."""
    model = scripted_model(fake_model_cls)
    search = fake_search_cls()
    orchestrator = make_orchestrator(model, search)

    events = await run(
        orchestrator,
        ChatRequest(message="帮我制定健身计划", use_web_search=True, use_deep_thinking=True),
    )

    assert [getattr(e, "type", "DONE") for e in events] == [
        "search",
        "search",
        "thinking",
        "thinking",
        "metadata",
        "tododata",
        "content",
        "DONE",
    ]
    assert events[0].content == SEARCH_STARTED
    assert events[1].content == "搜索完成，找到 1 条相关信息"
    assert events[1].search_time >= 0
    assert events[1].search_results[0].title == "训练指南"
    assert events[5].todo_data.title == "健身计划"
    assert events[6].content == '已为您生成任务计划："健身计划"，包含 3 个任务。'

    # The TODO prompt received both digests
    todo_prompt = model.calls[-1][0][-1].content
    assert "力量训练建议每周三次。" in todo_prompt
    assert "训练指南" in todo_prompt
    assert "思考完毕" in todo_prompt

    query, max_results = search.queries[0]
    assert query.startswith("帮我制定健身计划 任务规划")
    assert max_results == 5


async def test_search_failure_still_answers(fake_model_cls, fake_search_cls):
    search = fake_search_cls(SearchResult.failure("500"))
    orchestrator = make_orchestrator(scripted_model(fake_model_cls), search)

    events = await run(orchestrator, ChatRequest(message="最近流行什么运动", use_web_search=True))

    assert events[0].content == SEARCH_STARTED
    assert events[1].content == SEARCH_FAILED
    assert events[1].search_results == []
    assert "".join(e.content for e in events if getattr(e, "type", None) == "content") == "回答"
    assert events[-1] is STREAM_DONE


async def test_goal_intent_streams_goal_prose(fake_model_cls, fake_search_cls):
    model = scripted_model(fake_model_cls, answer="目标!")
    orchestrator = make_orchestrator(model, fake_search_cls())

    events = await run(orchestrator, ChatRequest(message="帮我设定绘画目标"))

    assert "".join(e.content for e in events[:-1]) == "目标!"
    assert "SMART" in model.calls[-1][0][-1].content


async def test_history_is_windowed(fake_model_cls, fake_search_cls):
    model = scripted_model(fake_model_cls)
    orchestrator = make_orchestrator(model, fake_search_cls())
    history = [HistoryMessage(role=Role.USER, content=f"旧消息{i}") for i in range(10)]

    await run(orchestrator, ChatRequest(message="你好", use_deep_thinking=True), history)

    thinking_messages = model.calls[0][0]
    # system + 6 history + prompt
    assert len(thinking_messages) == 8
    assert thinking_messages[1].content == "旧消息4"


async def test_dispatch_exception_becomes_apology(fake_model_cls, fake_search_cls):
    def respond(messages, options):
        raise RuntimeError("unexpected")

    orchestrator = make_orchestrator(fake_model_cls(respond), fake_search_cls())

    events = await run(orchestrator, ChatRequest(message="你好"))

    assert [e.content for e in events[:-1]] == [DISPATCH_FAILED]
    assert events[-1] is STREAM_DONE


async def test_upstream_failure_in_answer_is_degraded_not_raised(fake_model_cls, fake_search_cls):
    orchestrator = make_orchestrator(
        fake_model_cls(lambda messages, options: UpstreamError("down")), fake_search_cls()
    )

    events = await run(orchestrator, ChatRequest(message="你好", use_deep_thinking=True))

    assert [e.type for e in events[:-1]] == ["thinking", "content"]
    assert events[-1] is STREAM_DONE


async def test_interrupted_thinking_is_not_fed_to_answer(fake_model_cls, fake_search_cls):
    def respond(messages, options):
        if options.use_deep_thinking:
            return [ModelDelta("thinking", "半截推理"), UpstreamError("down")]
        return [ModelDelta("content", "回答")]

    model = fake_model_cls(respond)
    orchestrator = make_orchestrator(model, fake_search_cls())

    events = await run(orchestrator, ChatRequest(message="你好", use_deep_thinking=True))

    assert [e.content for e in events[:-1]] == ["半截推理", THINKING_FAILED, "回答"]
    answer_prompt = model.calls[-1][0][-1].content
    assert "半截推理" not in answer_prompt
    assert THINKING_FAILED not in answer_prompt


async def test_abandoned_stream_closes_upstream(fake_model_cls, fake_search_cls):
    """Closing the orchestrator stream mid-answer cancels the stage and closes the model stream."""
    release = asyncio.Event()

    class SlowModel(fake_model_cls):
        async def stream(self, messages, options=None):
            self.calls.append((list(messages), options))
            try:
                yield ModelDelta("content", "第一段")
                await release.wait()
                yield ModelDelta("content", "第二段")
            finally:
                self.closed_streams += 1

    model = SlowModel()
    orchestrator = make_orchestrator(model, fake_search_cls())

    async with aclosing(orchestrator.stream(ChatRequest(message="你好"), CONTEXT)) as events:
        async for event in events:
            assert event.content == "第一段"
            break

    assert model.closed_streams == 1
    assert not release.is_set()


async def test_invoke_returns_result(fake_model_cls, fake_search_cls):
    orchestrator = make_orchestrator(scripted_model(fake_model_cls), fake_search_cls())

    result = await orchestrator.invoke(
        ChatRequest(message="帮我制定健身计划", use_web_search=True, use_deep_thinking=True), CONTEXT
    )

    assert result.tool_type == ToolType.TODO
    assert result.todo_data.title == "健身计划"
    assert result.search_content == "力量训练建议每周三次。"
    assert result.thinking_content == "思考完毕"
    assert result.content.startswith("已为您生成任务计划")


async def test_invoke_without_flags_omits_digests(fake_model_cls, fake_search_cls):
    orchestrator = make_orchestrator(scripted_model(fake_model_cls), fake_search_cls())

    result = await orchestrator.invoke(ChatRequest(message="你好"), CONTEXT)

    assert result.tool_type == ToolType.NONE
    assert result.content == "回答"
    assert result.search_content is None
    assert result.thinking_content is None
