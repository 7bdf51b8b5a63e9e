"""AI extraction backend base class, error types, and factory."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .errors import (
    API_ERROR,
    API_KEY_INVALID,
    ERROR_MESSAGES,
    FILE_TOO_LARGE,
    INVALID_RESPONSE,
    MAX_TOKENS,
    NETWORK_ERROR,
    RATE_LIMITED,
    RETRYABLE_CODES,
    AnalysisError,
    classify_status,
)
from .parser import normalize_date, parse_response
from .prompts import build_analysis_prompt

if TYPE_CHECKING:
    from ..config import ScannerConfig
    from ..models import Transaction

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_BYTES = 50 * 1024 * 1024


class ExtractionBackend(ABC):
    """Abstract base for transaction extraction from a document image or PDF.

    Subclasses implement :meth:`_generate`, which sends exactly one request and
    returns the raw reply text. Size and credential checks, prompt building and
    parsing are shared here.
    """

    name = "base"

    def __init__(
        self,
        api_key: str = "",
        model: str = "",
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        max_output_tokens: int = 8192,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_file_bytes = max_file_bytes
        self._max_output_tokens = max_output_tokens

    @property
    def model(self) -> str:
        return self._model

    async def extract_transactions(
        self, data: bytes, mime_type: str, *, auto_kamoku: bool = False
    ) -> list[Transaction]:
        """Analyze one document payload and return its raw transactions.

        Raises:
            AnalysisError: Classified failure of this call.
        """
        if len(data) > self._max_file_bytes:
            limit_mb = self._max_file_bytes // (1024 * 1024)
            size_mb = len(data) / (1024 * 1024)
            raise AnalysisError(
                FILE_TOO_LARGE,
                f"ファイルサイズが大きすぎます ({size_mb:.1f}MB)。"
                f"{limit_mb}MB 以下のファイルを使用してください。",
            )
        if not self._api_key:
            raise AnalysisError(
                API_KEY_INVALID,
                "APIキーが設定されていません。"
                "設定ファイルまたは環境変数を確認してください。",
            )

        prompt = build_analysis_prompt(auto_kamoku=auto_kamoku)
        logger.debug(
            "%s へ送信: model=%s mime=%s size=%d",
            self.name, self._model, mime_type, len(data),
        )
        text = await self._generate(data, mime_type, prompt)
        if not text or not text.strip():
            raise AnalysisError(INVALID_RESPONSE, "AIからの応答が空です。")
        return parse_response(text)

    @abstractmethod
    async def _generate(self, data: bytes, mime_type: str, prompt: str) -> str:
        """Send one request and return the reply text."""
        ...


def create_backend(config: ScannerConfig) -> ExtractionBackend:
    """Create an extraction backend based on configuration."""
    backend_name = config.ai.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiExtractionBackend

            return GeminiExtractionBackend(
                api_key=config.ai.gemini.api_key,
                model=config.ai.gemini.model,
                max_file_bytes=config.ai.max_file_bytes,
                max_output_tokens=config.ai.max_output_tokens,
            )
        case "claude":
            from .claude import ClaudeExtractionBackend

            return ClaudeExtractionBackend(
                api_key=config.ai.claude.api_key,
                model=config.ai.claude.model,
                max_file_bytes=config.ai.max_file_bytes,
                max_output_tokens=config.ai.max_output_tokens,
            )
        case _:
            raise ValueError(
                f"不明なAIバックエンド: {backend_name!r}  "
                f"(gemini / claude から選択してください)"
            )


__all__ = [
    "API_ERROR",
    "API_KEY_INVALID",
    "AnalysisError",
    "ERROR_MESSAGES",
    "ExtractionBackend",
    "FILE_TOO_LARGE",
    "INVALID_RESPONSE",
    "MAX_TOKENS",
    "NETWORK_ERROR",
    "RATE_LIMITED",
    "RETRYABLE_CODES",
    "build_analysis_prompt",
    "classify_status",
    "create_backend",
    "normalize_date",
    "parse_response",
]
