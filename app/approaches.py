# app/approaches.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from .config import settings
from .generator import Generator, clean_refs, trim_context
from .options import RAGOptions

if TYPE_CHECKING:
    from .rag import Retriever

logger = logging.getLogger(__name__)


class RAGType(str, Enum):
    """Точка входа, через которую пришёл запрос: одна и та же стратегия может обслуживать обе."""
    ASK = "ask"
    CHAT = "chat"


@dataclass(frozen=True)
class Source:
    source_name: str
    source_content: str


@dataclass
class RAGResponse:
    answer: str
    question: str
    prompt: str
    sources: List[Source] = field(default_factory=list)
    # готовый текст источников (строка на источник), приоритетнее sources
    sources_as_text: Optional[str] = None


DEFAULT_SYSTEM_PROMPT = (
    "You are an assistant that answers questions using ONLY the sources listed below. "
    "Each source has a name followed by a colon and the actual information. "
    "Be brief. If the sources do not contain the answer, say you don't know. "
    "Do not make up facts that are not in the sources. "
    "Cite the source name in square brackets for every fact you use, for example [guide.pdf]. "
    "Do not combine sources, list each one separately.{injected}"
)

QUERY_PROMPT = (
    "Below is a question asked by a user that has to be answered by searching a knowledge base. "
    "Generate a short keyword search query for that question. "
    "Do not include source names or special characters. Return only the query."
)


def system_prompt(template: Optional[str]) -> str:
    """
    Без шаблона: дефолтный промпт.
    Шаблон с префиксом ">>>" дописывается к дефолтному, любой другой заменяет его.
    """
    if not template:
        return DEFAULT_SYSTEM_PROMPT.format(injected="")
    if template.startswith(">>>"):
        return DEFAULT_SYSTEM_PROMPT.format(injected="\n" + template[3:].strip())
    return template


def _as_line(source: Source) -> str:
    # одна строка на источник: переводы строк внутри контента ломают sources_as_text
    content = " ".join(source.source_content.split())
    return f"{source.source_name}: {content}"


class RAGApproach(ABC):
    """Стратегия ответа на вопрос. Создаётся на запрос, используется один раз."""

    def __init__(self, retriever: "Retriever", generator: Generator):
        self.retriever = retriever
        self.generator = generator

    @abstractmethod
    def run(self, question: str, options: RAGOptions) -> RAGResponse:
        ...

    def _retrieve(self, query: str, options: RAGOptions) -> List[Source]:
        docs = self.retriever.search(query, options)
        logger.info("Retrieved %d sources for query [%s]", len(docs), query)
        return [Source(str(d.get("source", "")), str(d.get("content", ""))) for d in docs]

    def _read(self, question: str, sources: List[Source], options: RAGOptions) -> tuple[str, str]:
        """Генерация ответа по источникам. Возвращает (answer, prompt)."""
        ctx = trim_context(
            [_as_line(s) for s in sources],
            max_total=settings.max_context_chars,
            max_one=settings.max_fragment_chars,
        )
        system = system_prompt(options.prompt_template)
        user = "Sources:\n" + "\n".join(ctx) + f"\n\nQuestion: {question}\nAnswer:"
        answer = self.generator.complete(system, user)
        return clean_refs(answer), f"{system}\n\n{user}"


class RetrieveThenReadApproach(RAGApproach):
    """rtr: ищем по самому вопросу, затем один вызов LLM по найденным источникам."""

    def run(self, question: str, options: RAGOptions) -> RAGResponse:
        sources = self._retrieve(question, options)
        answer, prompt = self._read(question, sources, options)
        return RAGResponse(answer=answer, question=question, prompt=prompt, sources=sources)


class ReadRetrieveReadApproach(RAGApproach):
    """
    rrr: в режиме chains LLM сначала превращает вопрос в поисковый запрос,
    в режиме memory поиск идёт прямо по вопросу.
    Источники отдаются готовым текстом (sources_as_text).
    """

    def __init__(self, retriever: "Retriever", generator: Generator, rewrite_query: bool = True):
        super().__init__(retriever, generator)
        self.rewrite_query = rewrite_query

    def _search_query(self, question: str) -> str:
        query = self.generator.complete(QUERY_PROMPT, f"Question: {question}\nSearch query:")
        query = query.strip().strip('"').strip()
        return query or question

    def run(self, question: str, options: RAGOptions) -> RAGResponse:
        query = self._search_query(question) if self.rewrite_query else question
        sources = self._retrieve(query, options)
        answer, prompt = self._read(question, sources, options)
        if self.rewrite_query:
            prompt = f"Search query: {query}\n\n{prompt}"
        return RAGResponse(
            answer=answer,
            question=question,
            prompt=prompt,
            sources=sources,
            sources_as_text="\n".join(_as_line(s) for s in sources),
        )
