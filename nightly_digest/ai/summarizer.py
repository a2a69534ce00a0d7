from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from nightly_digest.retry import RetryingCaller
from nightly_digest.types import Document, Summary
from nightly_digest.utils import truncate
from nightly_digest.workers import run_bounded


logger = logging.getLogger(__name__)


EMPTY_SUMMARY = "暂无有效内容"
NO_KEY_POINTS = "该文章暂无明确的关键要点"
KEY_POINTS_FAILED = "关键要点提取失败"

MAX_KEY_POINTS = 5
SUMMARY_ARTICLE_CHARS = 1000
KEY_POINTS_ARTICLE_CHARS = 3000

DEFAULT_SYSTEM_PROMPT = (
    "你是一个专业的 AI 内容分析助手，擅长从多篇文章中提取关键信息、生成摘要和分类。"
    "请用中文回答，保持专业和准确。"
)
DEFAULT_SUMMARY_PROMPT = (
    "请基于以下 {count} 篇文章，生成 3-5 点要点型摘要，突出最重要的 AI 动态和发展趋势：\n\n"
    "{articles}\n\n请用中文回答，格式清晰，要点明确。"
)
DEFAULT_KEY_POINTS_PROMPT = "请从以下文章中提取 3-5 个关键要点，每个要点用一句话概括：\n\n{content}"

_BULLET_RE = re.compile(r"^\s*(?:[•\-·]|\*(?!\*)|\d+[.)、])\s*")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")


class CompletionBackend(Protocol):
    async def complete(
        self, system_prompt: str, user_prompt: str, max_tokens: int = 4000, temperature: float = 0.3
    ) -> str: ...


@dataclass(frozen=True)
class Prompts:
    system: str = DEFAULT_SYSTEM_PROMPT
    summary: str = DEFAULT_SUMMARY_PROMPT
    extract_key_points: str = DEFAULT_KEY_POINTS_PROMPT


def parse_key_points(text: str) -> list[str]:
    """Pick bullet/numbered lines out of an LLM reply."""
    points: list[str] = []
    for line in (text or "").splitlines():
        if not _BULLET_RE.match(line):
            continue
        point = _BULLET_RE.sub("", line, count=1)
        point = _BOLD_RE.sub(r"\1", point).strip()
        if point:
            points.append(point)
    return points[:MAX_KEY_POINTS]


def build_summary_prompt(template: str, documents: list[Document]) -> str:
    articles = "\n".join(
        f"文章 {i}:\n标题: {d.title}\n内容: {truncate(d.text, SUMMARY_ARTICLE_CHARS)}\n"
        for i, d in enumerate(documents, start=1)
    )
    return template.replace("{count}", str(len(documents))).replace("{articles}", articles)


class Summarizer:
    def __init__(
        self,
        llm: CompletionBackend,
        caller: RetryingCaller,
        prompts: Prompts | None = None,
        concurrency: int = 3,
    ) -> None:
        self._llm = llm
        self._caller = caller
        self._prompts = prompts or Prompts()
        self._concurrency = concurrency

    async def _narrative(self, documents: list[Document]) -> str:
        prompt = build_summary_prompt(self._prompts.summary, documents)
        return await self._caller.call(
            lambda: self._llm.complete(self._prompts.system, prompt, max_tokens=2000, temperature=0.2),
            label="summary",
        )

    async def _key_points(self, document: Document) -> list[str]:
        prompt = self._prompts.extract_key_points.replace(
            "{content}", truncate(document.text, KEY_POINTS_ARTICLE_CHARS)
        )
        reply = await self._caller.call(
            lambda: self._llm.complete(self._prompts.system, prompt, max_tokens=1000, temperature=0.2),
            label="key points",
        )
        return parse_key_points(reply) or [NO_KEY_POINTS]

    async def summarize(self, documents: list[Document]) -> Summary:
        if not documents:
            logger.warning("no documents to summarize")
            return Summary(narrative=EMPTY_SUMMARY, key_points={})

        logger.info("summarize start: %s documents", len(documents))
        narrative = await self._narrative(documents)

        results = await run_bounded(documents, self._key_points, self._concurrency)
        key_points: dict[str, list[str]] = {}
        for r in results:
            doc: Document = r.item
            if r.ok and r.value:
                key_points[doc.url] = list(r.value)
            else:
                logger.warning("key points failed url=%s err=%s", doc.url, r.error)
                key_points[doc.url] = [KEY_POINTS_FAILED]

        logger.info("summarize done")
        return Summary(narrative=narrative.strip(), key_points=key_points)
