from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RetrievalMode(str, Enum):
    HYBRID = "hybrid"
    VECTORS = "vectors"
    TEXT = "text"


class SemanticKernelMode(str, Enum):
    CHAINS = "chains"
    MEMORY = "memory"


class Overrides(BaseModel):
    # на проводе camelCase, внутри snake_case: имена полей совпадают с RAGOptions
    model_config = ConfigDict(populate_by_name=True)

    retrieval_mode: Optional[RetrievalMode] = Field(default=None, alias="retrievalMode")
    semantic_kernel_mode: Optional[SemanticKernelMode] = Field(default=None, alias="semanticKernelMode")
    semantic_ranker: Optional[bool] = Field(default=None, alias="semanticRanker")
    semantic_captions: Optional[bool] = Field(default=None, alias="semanticCaptions")
    exclude_category: Optional[str] = Field(default=None, alias="excludeCategory")
    prompt_template: Optional[str] = Field(default=None, alias="promptTemplate")
    top: Optional[int] = Field(default=None, ge=1)


class AskRequest(BaseModel):
    # question/approach необязательны на уровне схемы: пустые значения
    # отсекает валидатор в ручке и отвечает 400, а не 422
    question: Optional[str] = None
    approach: Optional[str] = None
    overrides: Optional[Overrides] = None


class AskResponse(BaseModel):
    answer: str
    dataPoints: List[str]
    thoughts: str


class ContentResponse(BaseModel):
    source: str
    content: str
    category: Optional[str] = None
