"""Gemini API backend for transaction extraction."""

from __future__ import annotations

import asyncio
import logging

from . import ExtractionBackend
from .errors import (
    API_ERROR,
    INVALID_RESPONSE,
    MAX_TOKENS,
    NETWORK_ERROR,
    AnalysisError,
    classify_status,
)

logger = logging.getLogger(__name__)

GEMINI_MODELS: list[tuple[str, str]] = [
    ("gemini-3-flash-preview", "Gemini 3 Flash (Preview)"),
    ("gemini-2.5-flash", "Gemini 2.5 Flash"),
    ("gemini-2.5-pro", "Gemini 2.5 Pro"),
    ("gemini-2.0-flash", "Gemini 2.0 Flash"),
]
GEMINI_MODEL_IDS: frozenset[str] = frozenset(m for m, _ in GEMINI_MODELS)


class GeminiExtractionBackend(ExtractionBackend):
    """Extract transactions using Google Gemini's document understanding."""

    name = "gemini"

    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-3-flash-preview",
        max_file_bytes: int = 50 * 1024 * 1024,
        max_output_tokens: int = 8192,
    ) -> None:
        if model not in GEMINI_MODEL_IDS:
            raise ValueError(
                f"不明なGeminiモデル: {model!r}  "
                f"({' / '.join(m for m, _ in GEMINI_MODELS)} から選択してください)"
            )
        super().__init__(api_key, model, max_file_bytes, max_output_tokens)

    async def _generate(self, data: bytes, mime_type: str, prompt: str) -> str:
        try:
            import google.generativeai as genai
            from google.api_core import exceptions as google_exceptions
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(
            self._model,
            generation_config={
                "temperature": 0.1,
                "max_output_tokens": self._max_output_tokens,
                "response_mime_type": "application/json",
            },
        )

        try:
            response = await model.generate_content_async(
                [prompt, {"mime_type": mime_type, "data": data}]
            )
        except (google_exceptions.DeadlineExceeded, google_exceptions.RetryError) as e:
            raise AnalysisError(NETWORK_ERROR, f"ネットワークエラー: {e}") from e
        except google_exceptions.GoogleAPICallError as e:
            status = int(e.code) if e.code is not None else None
            logger.warning("Gemini API エラー (%s): %s", status, e.message)
            raise classify_status(status, e.message or str(e)) from e
        except (ConnectionError, TimeoutError, asyncio.TimeoutError) as e:
            raise AnalysisError(NETWORK_ERROR, f"ネットワークエラー: {e}") from e
        except Exception as e:
            raise AnalysisError(API_ERROR, f"API呼び出しエラー: {e}") from e

        return _response_text(response)


def _response_text(response) -> str:
    """Pull the reply text out of a Gemini response, checking truncation."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise AnalysisError(INVALID_RESPONSE, "Geminiからの応答が空です。")

    candidate = candidates[0]
    reason = getattr(candidate.finish_reason, "name", str(candidate.finish_reason))
    if reason == "MAX_TOKENS":
        raise AnalysisError(MAX_TOKENS)

    parts = getattr(candidate.content, "parts", None) or []
    return "".join(getattr(part, "text", "") for part in parts)
