# app/main.py
from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool

from .approaches import RAGResponse, RAGType
from .config import settings
from .factory import RAGApproachFactory, UnknownApproachError, build_default_factory
from .generator import Generator
from .options import build_rag_options
from .schemas import AskRequest, AskResponse, ContentResponse, Overrides

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Запрос без approach или question: отвечаем 400 без тела."""


# (retriever, generator): грузятся один раз на процесс
_resources = None
_resources_lock = threading.Lock()


def load_resources():
    global _resources
    if _resources is None:
        with _resources_lock:
            if _resources is None:
                # faiss/torch импортируем только здесь, не при импорте модуля
                from .rag import Retriever

                retriever = Retriever.from_paths(
                    settings.index_path,
                    settings.meta_path,
                    settings.bm25_path,
                    hybrid_alpha=settings.hybrid_alpha,
                    faiss_k=settings.faiss_k,
                )
                generator = Generator(
                    url=settings.genapi_url,
                    key=settings.genapi_key,
                    timeout=settings.request_timeout_sec,
                )
                _resources = (retriever, generator)
    return _resources


# Реестр стратегий заполняется при импорте; индекс и модели он берёт через load_resources
factory = build_default_factory(load_resources)


def get_factory() -> RAGApproachFactory:
    return factory


def get_retriever():
    return load_resources()[0]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # прогрев: индекс и модели грузим до первого запроса
    try:
        await run_in_threadpool(load_resources)
    except Exception:
        # сервис поднимается; /api/ask ответит 500, пока индекс не загрузится
        logger.exception("Failed to load index/models at startup")
    yield


app = FastAPI(title="RAG Ask Service", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def validate_ask_request(req: AskRequest) -> None:
    """approach проверяем раньше question; запрос не меняем."""
    if not (req.approach or "").strip():
        logger.warning("approach cannot be null in ASK request")
        raise ValidationError("approach")
    if not (req.question or "").strip():
        logger.warning("question cannot be null in ASK request")
        raise ValidationError("question")


def build_ask_response(rag: RAGResponse) -> AskResponse:
    if rag.sources_as_text:
        data_points = rag.sources_as_text.split("\n")
    else:
        data_points = [f"{s.source_name}: {s.source_content}" for s in rag.sources]

    thoughts = "Question:<br>" + rag.question + "<br><br>Prompt:<br>" + rag.prompt.replace("\n", "<br>")
    return AskResponse(answer=rag.answer, dataPoints=data_points, thoughts=thoughts)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/api/ask", response_model=AskResponse)
def ask(req: AskRequest):
    logger.info("Received request for ask api with question [%s] and approach [%s]", req.question, req.approach)

    try:
        validate_ask_request(req)
    except ValidationError:
        return Response(status_code=400)

    # пустые overrides подставляем до того, как читать из них поля
    overrides = req.overrides if req.overrides is not None else Overrides()
    options = build_rag_options(overrides)

    try:
        approach = get_factory().create_approach(req.approach, RAGType.ASK, options)
        rag_response = approach.run(req.question, options)
    except UnknownApproachError as e:
        logger.warning("Unknown approach [%s]: %s", req.approach, e)
        raise HTTPException(status_code=400, detail=f"unknown_approach: {req.approach}")
    except Exception as e:
        logger.exception("ask failed for approach [%s]", req.approach)
        raise HTTPException(status_code=500, detail=f"ask_failed: {e}")

    return build_ask_response(rag_response)


@app.get("/api/content/{source:path}", response_model=ContentResponse)
def content(source: str):
    """Полный текст источника, на который ссылается data point."""
    try:
        doc = get_retriever().get_document(source)
    except Exception as e:
        logger.exception("content lookup failed for [%s]", source)
        raise HTTPException(status_code=500, detail=f"content_failed: {e}")

    if doc is None:
        logger.warning("Unknown source [%s] in content request", source)
        raise HTTPException(status_code=404, detail=f"unknown_source: {source}")
    return ContentResponse(**doc)
