"""Claude API backend for transaction extraction."""

from __future__ import annotations

import base64
import logging

from . import ExtractionBackend
from .errors import API_ERROR, MAX_TOKENS, NETWORK_ERROR, AnalysisError, classify_status

logger = logging.getLogger(__name__)

CLAUDE_MODELS: list[tuple[str, str]] = [
    ("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5"),
    ("claude-haiku-4-5-20251001", "Claude Haiku 4.5"),
    ("claude-opus-4-1-20250805", "Claude Opus 4.1"),
]
CLAUDE_MODEL_IDS: frozenset[str] = frozenset(m for m, _ in CLAUDE_MODELS)


class ClaudeExtractionBackend(ExtractionBackend):
    """Extract transactions using Claude's vision and PDF support."""

    name = "claude"

    def __init__(
        self,
        api_key: str = "",
        model: str = "claude-sonnet-4-5-20250929",
        max_file_bytes: int = 50 * 1024 * 1024,
        max_output_tokens: int = 8192,
    ) -> None:
        if model not in CLAUDE_MODEL_IDS:
            raise ValueError(
                f"不明なClaudeモデル: {model!r}  "
                f"({' / '.join(m for m, _ in CLAUDE_MODELS)} から選択してください)"
            )
        super().__init__(api_key, model, max_file_bytes, max_output_tokens)

    async def _generate(self, data: bytes, mime_type: str, prompt: str) -> str:
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        # PDFs go in a document block, everything else is an image
        block_type = "document" if mime_type == "application/pdf" else "image"
        content: list[dict] = [
            {
                "type": block_type,
                "source": {
                    "type": "base64",
                    "media_type": mime_type,
                    "data": base64.standard_b64encode(data).decode(),
                },
            },
            {"type": "text", "text": prompt},
        ]

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=self._max_output_tokens,
                temperature=0.1,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIConnectionError as e:
            raise AnalysisError(NETWORK_ERROR, f"ネットワークエラー: {e}") from e
        except anthropic.APIStatusError as e:
            logger.warning("Claude API エラー (%s): %s", e.status_code, e.message)
            raise classify_status(e.status_code, e.message) from e
        except anthropic.APIError as e:
            raise AnalysisError(API_ERROR, f"API呼び出しエラー: {e}") from e

        if response.stop_reason == "max_tokens":
            raise AnalysisError(MAX_TOKENS)

        return "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
