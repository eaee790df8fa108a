"""HTTP client for the Tavily web-search API."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import ValidationError

from coach.config import settings
from coach.models.conversation import SearchResultItem

logger = logging.getLogger(__name__)

MIN_RESULTS = 1
MAX_RESULTS = 10
NO_RESULTS = "未找到相关信息"


@dataclass
class SearchResult:
    """Outcome of one search call. Failures are values, not exceptions."""

    success: bool
    content: str
    results: list[SearchResultItem] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)

    @classmethod
    def failure(cls, reason: str) -> SearchResult:
        return cls(success=False, content=f"搜索失败: {reason}")


def _text(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value.strip() else default


def _score(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float) or not math.isfinite(value):
        return None
    return min(1.0, max(0.0, float(value)))


def _parse_item(index: int, raw: dict) -> SearchResultItem | None:
    """Build one hit, defaulting malformed fields; None if it still cannot be built."""
    try:
        return SearchResultItem(
            title=_text(raw.get("title"), f"结果 {index + 1}"),
            url=_text(raw.get("url"), ""),
            content=_text(raw.get("content"), "无内容"),
            score=_score(raw.get("score")),
        )
    except ValidationError as e:
        logger.warning("search_provider: skipping malformed result %d: %s", index, e)
        return None


class SearchProvider:
    """Web search over the Tavily REST API.

    `search` never raises: a missing key, transport error or non-success
    status all come back as a SearchResult with success=False.
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str = "https://api.tavily.com/search",
        search_depth: str = "advanced",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.search_depth = search_depth
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> SearchProvider:
        return cls(
            api_key=settings.TAVILY_API_KEY,
            endpoint=settings.TAVILY_ENDPOINT,
            search_depth=settings.SEARCH_DEPTH,
            timeout=settings.SEARCH_TIMEOUT_SECONDS,
        )

    async def search(self, query: str, max_results: int = 5) -> SearchResult:
        """
        Search the web.

        Args:
            query: Search keywords
            max_results: Desired number of hits, clamped into 1..10

        Returns:
            SearchResult; `content` is the provider's answer when present,
            otherwise a numbered digest of the hits
        """
        if not self.api_key:
            logger.warning("search_provider: TAVILY_API_KEY is not set")
            return SearchResult.failure("TAVILY_API_KEY 未设置")

        max_results = max(MIN_RESULTS, min(MAX_RESULTS, max_results))
        payload = {
            "api_key": self.api_key,
            "query": query,
            "max_results": max_results,
            "include_answer": True,
            "search_depth": self.search_depth,
        }

        logger.info("search_provider: query=%r max_results=%d", query[:80], max_results)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload)
                if not response.is_success:
                    logger.warning("search_provider: API error status=%d", response.status_code)
                    return SearchResult.failure(str(response.status_code))
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("search_provider: request failed: %s", e)
            return SearchResult.failure(str(e) or type(e).__name__)

        if not isinstance(data, dict):
            logger.warning("search_provider: unexpected response body")
            return SearchResult.failure("响应格式错误")

        raw_list = data.get("results")
        raw_results = [r for r in raw_list if isinstance(r, dict)] if isinstance(raw_list, list) else []
        parsed = (_parse_item(i, r) for i, r in enumerate(raw_results))
        results = [item for item in parsed if item is not None]

        answer = _text(data.get("answer"), "")
        if answer:
            content = answer
        elif results:
            content = "\n".join(f"{i}. {item.title}: {item.content}" for i, item in enumerate(results, start=1))
        else:
            content = NO_RESULTS

        sources = [item.url for item in results if item.url]
        logger.info("search_provider: %d results", len(results))
        return SearchResult(success=True, content=content, results=results, sources=sources)
