import pytest
from fastapi.testclient import TestClient

from app import main
from app.rag import Retriever


META = [
    {"source": "refunds.md", "content": "Refunds are issued within five days.", "category": "billing"},
    {"source": "guides/setup.md", "content": "Install the app.", "category": None},
    {"source": "refunds.md", "content": "Keep the receipt.", "category": "billing"},
]


@pytest.fixture
def content_client(monkeypatch):
    # индекс и модель для поиска по имени не нужны
    retriever = Retriever(None, META, None, None)
    monkeypatch.setattr(main, "get_retriever", lambda: retriever)
    return TestClient(main.app)


def test_content_by_source(content_client):
    r = content_client.get("/api/content/refunds.md")
    assert r.status_code == 200
    assert r.json() == {
        "source": "refunds.md",
        "content": "Refunds are issued within five days.\nKeep the receipt.",
        "category": "billing",
    }


def test_content_nested_source_name(content_client):
    r = content_client.get("/api/content/guides/setup.md")
    assert r.status_code == 200
    assert r.json()["content"] == "Install the app."
    assert r.json()["category"] is None


def test_content_unknown_source(content_client):
    r = content_client.get("/api/content/missing.md")
    assert r.status_code == 404
    assert r.json()["detail"] == "unknown_source: missing.md"


def test_content_index_not_loaded(monkeypatch):
    def broken():
        raise FileNotFoundError("./docs_meta.pkl")

    monkeypatch.setattr(main, "get_retriever", broken)
    r = TestClient(main.app).get("/api/content/refunds.md")
    assert r.status_code == 500
    assert r.json()["detail"].startswith("content_failed:")
