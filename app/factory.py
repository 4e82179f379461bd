# app/factory.py
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Tuple

from .approaches import RAGApproach, RAGType, ReadRetrieveReadApproach, RetrieveThenReadApproach
from .generator import Generator
from .options import RAGOptions
from .schemas import SemanticKernelMode

logger = logging.getLogger(__name__)

# (retriever, generator, options) -> стратегия
ApproachBuilder = Callable[[object, Generator, RAGOptions], RAGApproach]
# () -> (retriever, generator); индекс и модели отдаёт только после поиска в реестре
ResourceProvider = Callable[[], Tuple[object, Generator]]


class UnknownApproachError(LookupError):
    def __init__(self, name: str, kind: RAGType):
        super().__init__(f"no approach registered for name={name!r} kind={kind.value!r}")
        self.name = name
        self.kind = kind


class RAGApproachFactory:
    """
    Реестр стратегий по ключу (имя, тип запроса).
    Заполняется один раз при старте; после этого только читается,
    поэтому create_approach безопасно звать из нескольких потоков.
    Поиск по реестру не трогает ресурсы: неизвестное имя не грузит индекс.
    """

    def __init__(self, resources: ResourceProvider):
        self._resources = resources
        self._registry: Dict[Tuple[str, RAGType], ApproachBuilder] = {}

    def register(self, name: str, kind: RAGType, builder: ApproachBuilder) -> None:
        self._registry[(name, kind)] = builder
        logger.debug("Registered approach %s for %s", name, kind.value)

    def registered(self) -> List[Tuple[str, RAGType]]:
        return list(self._registry.keys())

    def create_approach(self, name: str, kind: RAGType, options: RAGOptions) -> RAGApproach:
        builder = self._registry.get((name, kind))
        if builder is None:
            raise UnknownApproachError(name, kind)
        retriever, generator = self._resources()
        return builder(retriever, generator, options)


def _read_retrieve_read(retriever, generator: Generator, options: RAGOptions) -> RAGApproach:
    rewrite = options.semantic_kernel_mode == SemanticKernelMode.CHAINS
    return ReadRetrieveReadApproach(retriever, generator, rewrite_query=rewrite)


def build_default_factory(resources: ResourceProvider) -> RAGApproachFactory:
    factory = RAGApproachFactory(resources)
    factory.register("rtr", RAGType.ASK, lambda r, g, o: RetrieveThenReadApproach(r, g))
    factory.register("rrr", RAGType.ASK, _read_retrieve_read)
    return factory
