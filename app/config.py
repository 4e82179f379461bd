# config.py
# Совместимо с Python 3.10 и Pydantic v2 / pydantic-settings v2

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Единая конфигурация сервиса.
    - Значения читаются из переменных окружения и файла .env (если он есть).
    - Без GENAPI_KEY сервис стартует (тесты/локалка); генератор сам
      бросит GenAPIError при реальном вызове.
    """

    # Ключ для GenAPI. Можно не задавать в тестах/локалке.
    genapi_key: Optional[str] = None

    # Базовый URL сети GenAPI (по умолчанию gpt-4o-сеть)
    genapi_url: str = Field(
        default="https://api.gen-api.ru/api/v1/networks/gpt-4o"
    )

    # Переменные окружения: INDEX_PATH, META_PATH, BM25_PATH
    index_path: str = Field(default="./docs.index")
    meta_path: str = Field(default="./docs_meta.pkl")
    bm25_path: str = Field(default="./bm25.pkl")

    # Модели: энкодер для FAISS и кросс-энкодер для semanticRanker
    # Переменные окружения: EMBEDDING_MODEL, RERANKER_MODEL
    embedding_model: str = Field(default="BAAI/bge-m3")
    reranker_model: str = Field(default="BAAI/bge-reranker-v2-m3")

    # Доля dense-скоринга в режиме hybrid (1.0 только FAISS, 0.0 только BM25)
    # Переменная окружения: HYBRID_ALPHA
    hybrid_alpha: float = Field(default=0.6)

    # Сколько кандидатов забираем из FAISS/BM25 для смешивания
    # Переменная окружения: FAISS_K
    faiss_k: int = Field(default=50)

    # Сколько документов отдаём стратегии, если клиент не прислал overrides.top
    # Переменная окружения: TOP_K
    top_k: int = Field(default=3)

    # === Сервисные параметры ===
    # Таймаут HTTP-запроса к GenAPI (сек)
    # Переменная окружения: REQUEST_TIMEOUT_SEC
    request_timeout_sec: int = Field(default=60)

    # Ограничения на объём контекста в промпте
    # max_fragment_chars: обрезка одного источника
    # max_context_chars: общий лимит всех источников
    max_fragment_chars: int = Field(default=800)
    max_context_chars: int = Field(default=3000)

    # Уровень логирования: DEBUG / INFO / WARNING ...
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


# Глобальный объект настроек
settings = Settings()
