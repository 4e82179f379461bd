import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from app import main, rag
from app.schemas import AskRequest


@pytest.fixture
def cold_start(monkeypatch, retriever, generator):
    """Процесс без загруженного индекса; загрузка медленная и считается."""
    state = {"loads": 0, "error": None}

    def fake_from_paths(cls, *args, **kwargs):
        state["loads"] += 1
        time.sleep(0.3)
        if state["error"] is not None:
            raise state["error"]
        return retriever

    monkeypatch.setattr(rag.Retriever, "from_paths", classmethod(fake_from_paths))
    monkeypatch.setattr(main, "Generator", lambda **kwargs: generator)
    monkeypatch.setattr(main, "_resources", None)
    return state


def test_resources_loaded_once_under_concurrency(cold_start):
    def call(i):
        return main.ask(AskRequest(question=f"q{i}", approach="rtr"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(call, range(8)))

    assert cold_start["loads"] == 1
    assert all(r.answer == "stub answer" for r in results)


def test_registry_exists_before_any_request(cold_start):
    assert {name for name, _ in main.get_factory().registered()} == {"rtr", "rrr"}
    assert cold_start["loads"] == 0


def test_unknown_approach_does_not_load_index(cold_start):
    cold_start["error"] = FileNotFoundError("./docs.index")
    client = TestClient(main.app)

    r = client.post("/api/ask", json={"question": "Q", "approach": "nope"})
    assert r.status_code == 400
    assert r.json()["detail"] == "unknown_approach: nope"
    assert cold_start["loads"] == 0

    r = client.post("/api/ask", json={"question": "Q", "approach": "rtr"})
    assert r.status_code == 500
    assert r.json()["detail"].startswith("ask_failed:")


def test_lifespan_warms_up(cold_start):
    with TestClient(main.app) as client:
        assert cold_start["loads"] == 1
        r = client.post("/api/ask", json={"question": "Q", "approach": "rtr"})
        assert r.status_code == 200
    assert cold_start["loads"] == 1


def test_lifespan_survives_load_failure(cold_start):
    cold_start["error"] = FileNotFoundError("./docs.index")
    with TestClient(main.app) as client:
        assert client.get("/health").status_code == 200
