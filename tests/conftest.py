# tests/conftest.py
from __future__ import annotations

import csv
import json
import time
from pathlib import Path
from typing import Any, Dict, Callable, List

import pytest
from fastapi.testclient import TestClient

from app import main
from app.factory import build_default_factory


RESULTS_DIR = Path("results")
RESULTS_DIR.mkdir(parents=True, exist_ok=True)

JSONL_PATH = RESULTS_DIR / "test_results.jsonl"
CSV_PATH   = RESULTS_DIR / "test_results.csv"


DOCS = [
    {"source": "refunds.md", "content": "Refunds are issued within five days.\nKeep the receipt.", "category": "billing"},
    {"source": "shipping.md", "content": "We ship worldwide.", "category": "shipping"},
    {"source": "support.md", "content": "Support works around the clock.", "category": "support"},
]


class FakeRetriever:
    """Отдаёт DOCS по порядку, уважая top и excludeCategory; запоминает запросы."""

    def __init__(self, docs: List[dict] | None = None):
        self.docs = docs if docs is not None else DOCS
        self.calls = []

    def search(self, query, options):
        self.calls.append((query, options))
        docs = [d for d in self.docs if d.get("category") != options.exclude_category]
        return [dict(d) for d in docs[:options.top]]


class FakeGenerator:
    """Без сети: поисковый запрос для rrr/chains и фиксированный ответ для всего остального."""

    def __init__(self, answer: str = "stub answer", search_query: str = "refund policy"):
        self.answer = answer
        self.search_query = search_query
        self.calls = []

    def complete(self, system_prompt, user_prompt, temperature=0.0):
        self.calls.append((system_prompt, user_prompt))
        if user_prompt.endswith("Search query:"):
            return self.search_query
        return self.answer


@pytest.fixture
def retriever() -> FakeRetriever:
    return FakeRetriever()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def factory(retriever, generator):
    return build_default_factory(lambda: (retriever, generator))


@pytest.fixture
def client(monkeypatch, factory) -> TestClient:
    # подменяем фабрику, чтобы не грузить индекс и не дёргать реальный API
    monkeypatch.setattr(main, "get_factory", lambda: factory)
    return TestClient(main.app)


def _append_jsonl(record: Dict[str, Any]) -> None:
    with JSONL_PATH.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False) + "\n")


def _append_csv(record: Dict[str, Any]) -> None:
    exists = CSV_PATH.exists()
    # Жёсткий и стабильный порядок колонок
    fieldnames = [
        "ts", "nodeid", "case", "status", "duration_sec",
        "question", "approach", "answer", "data_points",
    ]
    with CSV_PATH.open("a", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        if not exists:
            w.writeheader()
        row = {k: record.get(k) for k in fieldnames}
        w.writerow(row)


@pytest.fixture(scope="session", autouse=True)
def _clean_results_dir() -> None:
    # Очищаем старые результаты в начале сессии
    for p in (JSONL_PATH, CSV_PATH):
        if p.exists():
            p.unlink()


@pytest.fixture
def record_result(request) -> Callable[..., None]:
    """
    Фикстура возвращает функцию, которой можно передать
    произвольные поля для записи в JSONL/CSV.
    """
    nodeid = request.node.nodeid

    def _record(
        *,
        case: str,
        status: str,
        duration_sec: float,
        question: str = "",
        approach: str = "",
        answer: str = "",
        data_points: int | None = None,
        extra: Dict[str, Any] | None = None,
    ) -> None:
        rec = {
            "ts": time.strftime("%Y-%m-%d %H:%M:%S"),
            "nodeid": nodeid,
            "case": case,
            "status": status,
            "duration_sec": round(float(duration_sec), 3),
            "question": question,
            "approach": approach,
            "answer": answer,
            "data_points": data_points,
        }
        if extra:
            rec.update(extra)
        _append_jsonl(rec)
        _append_csv(rec)

    return _record
