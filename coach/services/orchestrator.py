"""
Turn orchestrator.

Sequences one conversation turn:

    classify → [search] → [thinking] → dispatch(todo | goal | answer) → STREAM_DONE

Each stage runs through the stage channel, one after another, so events
reach the client in stage order while each stage streams incrementally.
Search and thinking are best-effort; a failure while dispatching becomes a
single apology event. The stream always ends with STREAM_DONE.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field

from coach.config import settings
from coach.models.chat import (
    STREAM_DONE,
    ChatRequest,
    ContentEvent,
    InvokeResult,
    SearchEvent,
    StreamDone,
    StreamEvent,
    ThinkingEvent,
    ToolResult,
    ToolType,
    TurnContext,
)
from coach.models.conversation import HistoryMessage
from coach.services.answer_executor import AnswerExecutor
from coach.services.channel import relay
from coach.services.classifier import Classifier, build_classifier
from coach.services.context import build_search_query, format_search_results
from coach.services.goal_executor import GoalExecutor
from coach.services.model_client import ModelClient
from coach.services.search_provider import SearchProvider
from coach.services.thinking import THINKING_FAILED, ThinkingStage
from coach.services.todo_executor import TodoExecutor

logger = logging.getLogger(__name__)

SEARCH_STARTED = "正在搜索最新信息..."
SEARCH_FAILED = "搜索失败，将基于现有知识回答。"
DISPATCH_FAILED = "抱歉，处理您的请求时出现错误。"


def search_done_message(count: int) -> str:
    return f"搜索完成，找到 {count} 条相关信息"


@dataclass
class _TurnState:
    """Digests carried from earlier stages into later ones."""

    search_digest: str = ""
    thinking_parts: list[str] = field(default_factory=list)
    thinking_failed: bool = False

    @property
    def thinking_digest(self) -> str:
        # Reasoning cut short by an upstream failure is not passed on
        return "" if self.thinking_failed else "".join(self.thinking_parts)


class Orchestrator:
    """Drives one turn through the pipeline; holds no per-turn state."""

    def __init__(
        self,
        model_client: ModelClient,
        search_provider: SearchProvider,
        classifier: Classifier,
        max_history: int | None = None,
        search_max_results: int | None = None,
        queue_size: int | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            model_client: Chat model client shared by every stage
            search_provider: Web-search client
            classifier: Intent classification strategy
            max_history: History messages passed to stages
            search_max_results: Hits requested per search
            queue_size: Bound of each stage channel
        """
        self.model_client = model_client
        self.search_provider = search_provider
        self.classifier = classifier
        self.thinking = ThinkingStage(model_client)
        self.todo_executor = TodoExecutor(model_client)
        self.goal_executor = GoalExecutor(model_client)
        self.answer_executor = AnswerExecutor(model_client)
        self.max_history = max_history if max_history is not None else settings.MAX_HISTORY_LENGTH
        self.search_max_results = search_max_results if search_max_results is not None else settings.SEARCH_MAX_RESULTS
        self.queue_size = queue_size if queue_size is not None else settings.STAGE_QUEUE_SIZE

    def _window(self, request: ChatRequest, history: Sequence[HistoryMessage] | None) -> list[HistoryMessage]:
        messages = list(request.history if history is None else history)
        return messages[-self.max_history :] if self.max_history > 0 else []

    async def stream(
        self,
        request: ChatRequest,
        context: TurnContext,
        history: Sequence[HistoryMessage] | None = None,
    ) -> AsyncIterator[StreamEvent | StreamDone]:
        """
        Run a turn and yield its events, then STREAM_DONE.

        Never raises for pipeline failures. Closing this generator early
        cancels the in-flight stage.

        Args:
            request: The user's message and feature flags
            context: Request-scoped identity
            history: Prior messages; defaults to request.history
        """
        history = self._window(request, history)
        started = time.perf_counter()

        try:
            async with aclosing(self._pipeline(request, context, history)) as events:
                async for event in events:
                    yield event
        except Exception:
            logger.exception(
                "orchestrator: turn failed request_id=%s user_id=%s", context.request_id, context.user_id
            )
            yield ContentEvent(content=DISPATCH_FAILED)

        logger.info(
            "orchestrator: turn finished request_id=%s elapsed_ms=%d",
            context.request_id,
            int((time.perf_counter() - started) * 1000),
        )
        yield STREAM_DONE

    async def _pipeline(
        self,
        request: ChatRequest,
        context: TurnContext,
        history: list[HistoryMessage],
    ) -> AsyncIterator[StreamEvent]:
        tool_type = await self.classifier.classify(request.message, request.use_web_search)
        logger.info(
            "orchestrator: request_id=%s tool=%s search=%s thinking=%s history=%d",
            context.request_id,
            tool_type,
            request.use_web_search,
            request.use_deep_thinking,
            len(history),
        )

        state = _TurnState()

        if request.use_web_search:
            stage = self._search_stage(tool_type, request.message, history, state)
            async with aclosing(relay(stage, self.queue_size)) as events:
                async for event in events:
                    yield event

        if request.use_deep_thinking:
            stage = self.thinking.stream(request.message, state.search_digest, history, enabled=True)
            async with aclosing(relay(stage, self.queue_size)) as events:
                async for event in events:
                    if isinstance(event, ThinkingEvent):
                        if event.content == THINKING_FAILED:
                            state.thinking_failed = True
                        else:
                            state.thinking_parts.append(event.content)
                    yield event

        stage = self._dispatch(tool_type, request.message, history, state)
        async with aclosing(relay(stage, self.queue_size)) as events:
            async for event in events:
                yield event

    async def _search_stage(
        self,
        tool_type: ToolType,
        user_input: str,
        history: list[HistoryMessage],
        state: _TurnState,
    ) -> AsyncIterator[SearchEvent]:
        yield SearchEvent(content=SEARCH_STARTED)

        query = build_search_query(tool_type, user_input, history)
        started = time.perf_counter()
        result = await self.search_provider.search(query, self.search_max_results)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if not result.success:
            logger.warning("orchestrator: search failed, continuing without it: %s", result.content)
            yield SearchEvent(content=SEARCH_FAILED, search_results=[], search_time=elapsed_ms)
            return

        state.search_digest = f"{result.content}\n\n{format_search_results(result.results)}"
        yield SearchEvent(
            content=search_done_message(len(result.results)),
            search_results=result.results,
            search_time=elapsed_ms,
        )

    def _dispatch(
        self,
        tool_type: ToolType,
        user_input: str,
        history: list[HistoryMessage],
        state: _TurnState,
    ) -> AsyncIterator[StreamEvent]:
        args = (user_input, state.search_digest, state.thinking_digest, history)
        match tool_type:
            case ToolType.TODO:
                return self.todo_executor.stream(*args)
            case ToolType.GOAL:
                return self.goal_executor.stream(*args)
            case ToolType.SEARCH | ToolType.NONE:
                return self.answer_executor.stream(*args, tool_type=tool_type)

    async def invoke(
        self,
        request: ChatRequest,
        context: TurnContext,
        history: Sequence[HistoryMessage] | None = None,
    ) -> InvokeResult:
        """Run a turn without streaming and return the assembled result."""
        history = self._window(request, history)
        tool_type = await self.classifier.classify(request.message, request.use_web_search)
        logger.info("orchestrator: invoke request_id=%s tool=%s", context.request_id, tool_type)

        search_digest = ""
        if request.use_web_search:
            query = build_search_query(tool_type, request.message, history)
            search = await self.search_provider.search(query, self.search_max_results)
            if search.success:
                search_digest = search.content

        thinking_digest = ""
        if request.use_deep_thinking:
            thinking_digest = await self.thinking.execute(request.message, search_digest, history)

        args = (request.message, search_digest, thinking_digest, history)
        result: ToolResult
        match tool_type:
            case ToolType.TODO:
                result = await self.todo_executor.invoke(*args)
            case ToolType.GOAL:
                result = await self.goal_executor.invoke(*args)
            case ToolType.SEARCH | ToolType.NONE:
                result = await self.answer_executor.invoke(*args, tool_type=tool_type)

        return InvokeResult(
            content=result.content,
            tool_type=tool_type,
            todo_data=result.todo_data,
            search_content=search_digest or None,
            thinking_content=thinking_digest or None,
        )


def build_orchestrator() -> Orchestrator:
    """
    Build an orchestrator from settings.

    Raises:
        ConfigurationError: If the model API key is missing
    """
    model_client = ModelClient.from_settings()
    return Orchestrator(
        model_client=model_client,
        search_provider=SearchProvider.from_settings(),
        classifier=build_classifier(model_client),
    )
