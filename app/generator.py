# app/generator.py
from __future__ import annotations

import json
import logging
import re
import time
from typing import List, Optional

import requests

from .config import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class GenAPIError(Exception):
    """Вызов GenAPI не дал ответа: нет ключа, HTTP-ошибка или непонятный формат."""


# служебные утилиты #

def clean_refs(text: str) -> str:
    """Удаляем ссылки вида [1], [ 2 ], [1,2] и т.п. + нормализуем пробелы."""
    if not isinstance(text, str):
        return ""
    t = re.sub(r"\[\s*\d+(?:\s*,\s*\d+)*\s*\]", "", text)
    t = re.sub(r"[ \t]{2,}", " ", t)
    return t.strip()


def trim_context(context: List[str], max_total: int, max_one: int) -> List[str]:
    """
    Режем каждый фрагмент и общий контекст по лимитам из конфигов,
    чтобы не раздувать промпт.
    """
    safe = []
    total = 0
    for c in context:
        frag = (c or "")[:max_one]
        if total + len(frag) > max_total:
            frag = frag[: max(0, max_total - total)]
        if frag:
            safe.append(frag)
            total += len(frag)
        if total >= max_total:
            break
    return safe


def _extract_content(data) -> Optional[str]:
    """Унифицированный парсинг под разные форматы ответа GenAPI."""
    if not isinstance(data, dict):
        return None

    # 1) Новый формат GenAPI: {"response":[{"message":{"content":"..."}}]} или delta-ветка
    r = data.get("response")
    if isinstance(r, list) and r and isinstance(r[0], dict):
        m = r[0].get("message") or r[0].get("delta") or {}
        content = m.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()

    # 2) OpenAI-подобный: {"choices":[{"message":{"content":"..."}}]}
    ch = data.get("choices")
    if isinstance(ch, list) and ch and isinstance(ch[0], dict):
        msg = ch[0].get("message", {}) or {}
        content = msg.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()

    # 3) Простые ключи: {"output":"..."}, {"text":"..."}, {"message":"..."}
    for key in ("output", "text", "message"):
        if isinstance(data.get(key), str) and data[key].strip():
            return data[key].strip()

    return None


class Generator:
    def __init__(self, url: Optional[str] = None, key: Optional[str] = None, timeout: Optional[int] = None):
        self.url = url or settings.genapi_url
        self.key = key or settings.genapi_key
        self.timeout = timeout if timeout is not None else settings.request_timeout_sec

    def complete(self, system_prompt: str, user_prompt: str, temperature: float = 0.0) -> str:
        """Один синхронный запрос system+user, возвращает текст ответа модели."""
        payload = {
            "is_sync": True,
            "temperature": temperature,
            "top_p": 0.9,
            "messages": [
                {"role": "system", "content": [{"type": "text", "text": system_prompt}]},
                {"role": "user", "content": [{"type": "text", "text": user_prompt}]},
            ],
        }
        return self._call_genapi(payload)

    # низкоуровневый вызов GenAPI #
    def _call_genapi(self, payload: dict) -> str:
        # 0) Проверка ключа, чтобы не посылать Bearer None
        if not self.key:
            raise GenAPIError("Missing GENAPI_KEY (set env var)")

        # 1) Ретраи на 429/5xx и сетевые ошибки
        attempts = 3
        backoff = 0.75  # сек
        last_err = "unknown error"

        for attempt in range(1, attempts + 1):
            try:
                resp = requests.post(
                    self.url,
                    headers={
                        "Content-Type": "application/json",
                        "Accept": "application/json",
                        "Authorization": f"Bearer {self.key}",
                    },
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                last_err = f"exception: {e}"
            else:
                if resp.status_code not in RETRYABLE_STATUSES:
                    return self._parse(resp)
                last_err = f"HTTP {resp.status_code}: {resp.text}"

            if attempt < attempts:
                logger.warning("GenAPI attempt %d/%d failed (%s), retrying", attempt, attempts, last_err)
                time.sleep(backoff)
                backoff *= 2

        raise GenAPIError(f"GenAPI failed after {attempts} attempts: {last_err}")

    @staticmethod
    def _parse(resp: requests.Response) -> str:
        if resp.status_code != 200:
            # Попробуем показать полезную ошибку
            try:
                detail = json.dumps(resp.json(), ensure_ascii=False)
            except ValueError:
                detail = resp.text
            raise GenAPIError(f"HTTP {resp.status_code}: {detail}")

        try:
            data = resp.json()
        except ValueError as e:
            raise GenAPIError(f"parse error: {e}") from e

        content = _extract_content(data)
        if content is None:
            raise GenAPIError(f"unexpected reply: {json.dumps(data, ensure_ascii=False)}")
        return content
