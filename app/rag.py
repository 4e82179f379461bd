import logging
import pickle
import re
import threading
from typing import Dict, List, Optional, Set

import faiss
import numpy as np
from FlagEmbedding import BGEM3FlagModel, FlagReranker
from rank_bm25 import BM25Okapi

from .config import settings
from .options import RAGOptions
from .schemas import RetrievalMode

logger = logging.getLogger(__name__)


def tokenize(text: str):
    text = "".join([c.lower() if (c.isalnum() or c.isspace()) else " " for c in text])
    return [t for t in text.split() if t]


def make_caption(content: str, query: str) -> str:
    """Самое «похожее» на запрос предложение документа (по пересечению токенов)."""
    sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+", content or "") if s.strip()]
    if not sentences:
        return ""
    q_tokens = set(tokenize(query))
    best = max(sentences, key=lambda s: len(q_tokens & set(tokenize(s))))
    return best


class Retriever:
    def __init__(self, index, meta: list, bm25: BM25Okapi, model, hybrid_alpha: float = 0.6,
                 faiss_k: int = 50, reranker_model: Optional[str] = None):
        # Индексы/метаданные, каждая запись meta: {"source", "content", "category"}
        self.index = index
        self.meta = meta
        self.bm25 = bm25
        # Модель энкодера
        self.model = model
        # Гиперпараметры гибридного скора
        self.hybrid_alpha = float(hybrid_alpha)  # вес FAISS в режиме hybrid
        self.faiss_k = int(faiss_k)
        # Кросс-энкодер грузим только при первом semanticRanker
        self.reranker_model = reranker_model or settings.reranker_model
        self._reranker = None
        self._reranker_lock = threading.Lock()
        # Обратные индексы: имя источника -> фрагменты, категория -> фрагменты
        self._by_source: Dict[str, List[int]] = {}
        self._by_category: Dict[str, Set[int]] = {}
        for i, rec in enumerate(meta):
            self._by_source.setdefault(str(rec.get("source", "")), []).append(i)
            if rec.get("category"):
                self._by_category.setdefault(rec["category"], set()).add(i)

    @classmethod
    def from_paths(cls, index_path: str, meta_path: str, bm25_path: str, **kwargs) -> "Retriever":
        index = faiss.read_index(index_path)
        with open(meta_path, "rb") as f:
            meta = pickle.load(f)
        with open(bm25_path, "rb") as f:
            pack = pickle.load(f)
        model = BGEM3FlagModel(settings.embedding_model, use_fp16=True)
        logger.info("Loaded index %s with %d documents", index_path, len(meta))
        return cls(index, meta, pack["bm25"], model, **kwargs)

    def _alpha(self, mode: RetrievalMode) -> float:
        if mode == RetrievalMode.VECTORS:
            return 1.0
        if mode == RetrievalMode.TEXT:
            return 0.0
        return self.hybrid_alpha

    def _encode(self, text: str) -> np.ndarray:
        v = np.ascontiguousarray(self.model.encode([text])["dense_vecs"], dtype="float32")
        faiss.normalize_L2(v)
        return v

    def _excluded(self, category: Optional[str]) -> Set[int]:
        if not category:
            return set()
        return self._by_category.get(category, set())

    def _dense_scores(self, query: str, excluded: Set[int]) -> dict:
        # исключённые документы не должны съедать место среди faiss_k кандидатов
        sims, ids = self.index.search(self._encode(query), self.faiss_k + len(excluded))
        pairs = [(int(i), float(s)) for i, s in zip(ids[0], sims[0]) if i >= 0 and int(i) not in excluded]
        pairs = pairs[:self.faiss_k]
        # нормализация FAISS-скор; -1: пустой слот индекса
        faiss_max = max((s for _, s in pairs), default=1.0)
        return {i: (s / faiss_max if faiss_max > 0 else 0.0) for i, s in pairs}

    def _sparse_scores(self, query: str, excluded: Set[int]) -> dict:
        arr = np.asarray(self.bm25.get_scores(tokenize(query)))
        # топ-N BM25 (берём такое же N, как faiss_k) среди неисключённых
        top_idx = [int(i) for i in np.argsort(arr)[::-1] if int(i) not in excluded][:self.faiss_k]
        bm25_max = max((float(arr[i]) for i in top_idx), default=1.0)
        return {i: (float(arr[i]) / bm25_max if bm25_max > 0 else 0.0) for i in top_idx}

    def _get_reranker(self):
        with self._reranker_lock:
            if self._reranker is None:
                logger.info("Loading reranker %s", self.reranker_model)
                self._reranker = FlagReranker(self.reranker_model, use_fp16=True)
            return self._reranker

    def _rerank(self, query: str, doc_ids: List[int]) -> List[int]:
        if not doc_ids:
            return doc_ids
        pairs = [[query, str(self.meta[i].get("content", ""))] for i in doc_ids]
        scores = self._get_reranker().compute_score(pairs)
        if not isinstance(scores, list):
            scores = [scores]
        ranked = sorted(zip(scores, doc_ids), key=lambda x: x[0], reverse=True)
        return [doc_id for _, doc_id in ranked]

    def get_document(self, source: str) -> Optional[dict]:
        """Все фрагменты источника, склеенные по порядку индекса; None для неизвестного имени."""
        ids = self._by_source.get(source)
        if not ids:
            return None
        first = self.meta[ids[0]]
        return {
            "source": source,
            "content": "\n".join(str(self.meta[i].get("content", "")) for i in ids),
            "category": first.get("category"),
        }

    def search(self, query: str, options: RAGOptions) -> List[dict]:
        alpha = self._alpha(options.retrieval_mode)
        excluded = self._excluded(options.exclude_category)

        # 1) FAISS / BM25: считаем только то, что реально войдёт в скор
        faiss_scores = self._dense_scores(query, excluded) if alpha > 0 else {}
        bm25_scores = self._sparse_scores(query, excluded) if alpha < 1 else {}

        # 2) Смешиваем
        mixed = []
        for doc_id in set(faiss_scores) | set(bm25_scores):
            score = alpha * faiss_scores.get(doc_id, 0.0) + (1.0 - alpha) * bm25_scores.get(doc_id, 0.0)
            mixed.append((score, doc_id))
        mixed.sort(key=lambda x: (-x[0], x[1]))

        # 3) Семантический реранк кандидатов кросс-энкодером
        if options.semantic_ranker:
            top = self._rerank(query, [doc_id for _, doc_id in mixed[:self.faiss_k]])[:options.top]
        else:
            top = [doc_id for _, doc_id in mixed[:options.top]]

        # Копии записей: подписи (captions) не должны портить meta
        results = []
        for doc_id in top:
            rec = dict(self.meta[doc_id])
            if options.semantic_captions:
                rec["content"] = make_caption(str(rec.get("content", "")), query)
            results.append(rec)
        return results
