from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Optional

from .config import settings
from .schemas import Overrides, RetrievalMode, SemanticKernelMode


@dataclass(frozen=True)
class RAGOptions:
    """
    Неизменяемые настройки стратегии на один запрос.
    Значения по умолчанию: документированные дефолты стратегий.
    """

    retrieval_mode: RetrievalMode = RetrievalMode.HYBRID
    semantic_kernel_mode: SemanticKernelMode = SemanticKernelMode.CHAINS
    semantic_ranker: bool = False
    semantic_captions: bool = False
    exclude_category: Optional[str] = None
    prompt_template: Optional[str] = None
    top: int = field(default_factory=lambda: settings.top_k)

    def __post_init__(self):
        if self.top < 1:
            raise ValueError(f"top must be >= 1, got {self.top}")


def build_rag_options(overrides: Optional[Overrides]) -> RAGOptions:
    """
    Overrides -> RAGOptions, поле в поле.
    None (как весь объект, так и отдельное поле) означает «дефолт стратегии».
    """
    if overrides is None:
        return RAGOptions()
    known = {f.name for f in fields(RAGOptions)}
    values = {k: v for k, v in overrides.model_dump(exclude_none=True).items() if k in known}
    return RAGOptions(**values)
