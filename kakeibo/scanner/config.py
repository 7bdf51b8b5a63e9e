"""TOML configuration loader for the scanner module."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .models import BOOK_TYPES

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

PDF_MODES: tuple[str, ...] = ("split", "single")

DEFAULT_GEMINI_MODEL = "gemini-3-flash-preview"
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-5-20250929"


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = DEFAULT_GEMINI_MODEL


@dataclass
class ClaudeConfig:
    api_key: str = ""
    model: str = DEFAULT_CLAUDE_MODEL


@dataclass
class AIConfig:
    backend: str = "gemini"
    max_file_mb: int = 50
    max_output_tokens: int = 8192
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)

    @property
    def max_file_bytes(self) -> int:
        return self.max_file_mb * 1024 * 1024


@dataclass
class ScanOptions:
    book_type: str = "cash"  # cash / deposit / credit
    auto_kamoku: bool = False
    pdf_mode: str = "split"  # split: 1ページずつ解析, single: PDF全体を1回で解析
    render_scale: float = 2.0
    concurrency: int = 1


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 2.0


@dataclass
class ScannerConfig:
    ai: AIConfig = field(default_factory=AIConfig)
    scan: ScanOptions = field(default_factory=ScanOptions)
    retry: RetryConfig = field(default_factory=RetryConfig)


def load_config(path: str | Path | None = None) -> ScannerConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys can be overridden via environment variables.

    Raises:
        ValueError: If ``book_type`` or ``pdf_mode`` has an unknown value.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    ai = raw.get("ai", {})
    scn = raw.get("scan", {})
    rty = raw.get("retry", {})

    gemini_cfg = ai.get("gemini", {})
    claude_cfg = ai.get("claude", {})

    # Resolve API keys: config file → environment variable
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )

    book_type = scn.get("book_type", "cash")
    if book_type not in BOOK_TYPES:
        raise ValueError(
            f"不明な元帳種別: {book_type!r}  (cash / deposit / credit から選択してください)"
        )
    pdf_mode = scn.get("pdf_mode", "split")
    if pdf_mode not in PDF_MODES:
        raise ValueError(
            f"不明なPDF処理モード: {pdf_mode!r}  (split / single から選択してください)"
        )

    return ScannerConfig(
        ai=AIConfig(
            backend=ai.get("backend", "gemini"),
            max_file_mb=ai.get("max_file_mb", 50),
            max_output_tokens=ai.get("max_output_tokens", 8192),
            gemini=GeminiConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", DEFAULT_GEMINI_MODEL),
            ),
            claude=ClaudeConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", DEFAULT_CLAUDE_MODEL),
            ),
        ),
        scan=ScanOptions(
            book_type=book_type,
            auto_kamoku=scn.get("auto_kamoku", False),
            pdf_mode=pdf_mode,
            render_scale=scn.get("render_scale", 2.0),
            concurrency=scn.get("concurrency", 1),
        ),
        retry=RetryConfig(
            max_attempts=rty.get("max_attempts", 3),
            base_delay=rty.get("base_delay", 2.0),
        ),
    )
