from concurrent.futures import ThreadPoolExecutor

from app import main
from app.approaches import RAGApproach, RAGResponse, RAGType, Source
from app.factory import RAGApproachFactory
from app.schemas import AskRequest


class EchoApproach(RAGApproach):
    """Ответ зависит только от имени стратегии и вопроса."""

    def __init__(self, name):
        super().__init__(None, None)
        self.name = name

    def run(self, question, options):
        return RAGResponse(
            answer=f"{self.name}:{question}",
            question=question,
            prompt=self.name,
            sources=[Source(self.name, str(options.top))],
        )


def test_concurrent_requests_do_not_leak(monkeypatch):
    factory = RAGApproachFactory(lambda: (None, None))
    names = [f"a{i}" for i in range(8)]
    for name in names:
        factory.register(name, RAGType.ASK, lambda r, g, o, name=name: EchoApproach(name))
    monkeypatch.setattr(main, "get_factory", lambda: factory)

    def call(i):
        name = names[i % len(names)]
        req = AskRequest.model_validate({
            "question": f"q{i}",
            "approach": name,
            "overrides": {"top": i + 1},
        })
        return i, name, main.ask(req)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(call, range(64)))

    for i, name, resp in results:
        assert resp.answer == f"{name}:q{i}"
        assert resp.dataPoints == [f"{name}: {i + 1}"]
        assert resp.thoughts == f"Question:<br>q{i}<br><br>Prompt:<br>{name}"
