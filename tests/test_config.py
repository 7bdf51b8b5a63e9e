"""Tests for scanner config loading."""

import os
import tempfile

import pytest

from kakeibo.scanner.config import ScannerConfig, load_config


def _load_toml(content: bytes) -> ScannerConfig:
    with tempfile.NamedTemporaryFile(suffix=".toml", delete=False) as f:
        f.write(content)
        f.flush()
        name = f.name
    try:
        return load_config(name)
    finally:
        os.unlink(name)


def test_load_config_defaults(monkeypatch):
    """Loading with no path returns all defaults."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    config = load_config()
    assert isinstance(config, ScannerConfig)
    assert config.ai.backend == "gemini"
    assert config.ai.max_file_mb == 50
    assert config.ai.max_file_bytes == 50 * 1024 * 1024
    assert config.ai.gemini.api_key == ""
    assert config.ai.gemini.model == "gemini-3-flash-preview"
    assert config.scan.book_type == "cash"
    assert config.scan.auto_kamoku is False
    assert config.scan.pdf_mode == "split"
    assert config.scan.render_scale == 2.0
    assert config.scan.concurrency == 1
    assert config.retry.max_attempts == 3
    assert config.retry.base_delay == 2.0


def test_load_config_nonexistent_file():
    """Loading a nonexistent file returns defaults."""
    config = load_config("/nonexistent/path.toml")
    assert config.scan.book_type == "cash"


def test_load_config_from_toml():
    """Loading a valid TOML file populates config."""
    config = _load_toml(b"""\
[ai]
backend = "claude"
max_file_mb = 20
max_output_tokens = 16384

[ai.claude]
api_key = "test-key-123"
model = "claude-haiku-4-5-20251001"

[scan]
book_type = "deposit"
auto_kamoku = true
pdf_mode = "single"
render_scale = 1.5
concurrency = 2

[retry]
max_attempts = 5
base_delay = 0.5
""")

    assert config.ai.backend == "claude"
    assert config.ai.max_file_bytes == 20 * 1024 * 1024
    assert config.ai.max_output_tokens == 16384
    assert config.ai.claude.api_key == "test-key-123"
    assert config.ai.claude.model == "claude-haiku-4-5-20251001"
    assert config.scan.book_type == "deposit"
    assert config.scan.auto_kamoku is True
    assert config.scan.pdf_mode == "single"
    assert config.scan.render_scale == 1.5
    assert config.scan.concurrency == 2
    assert config.retry.max_attempts == 5
    assert config.retry.base_delay == 0.5


def test_load_config_env_override(monkeypatch):
    """Environment variables fill in empty API keys."""
    monkeypatch.setenv("GEMINI_API_KEY", "env-gemini-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-anthropic-key")

    config = load_config()
    assert config.ai.gemini.api_key == "env-gemini-key"
    assert config.ai.claude.api_key == "env-anthropic-key"


def test_load_config_file_key_takes_precedence(monkeypatch):
    """Config file API key takes precedence over env var."""
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")

    config = _load_toml(b"""\
[ai.gemini]
api_key = "file-key"
""")
    assert config.ai.gemini.api_key == "file-key"


def test_load_config_partial_toml():
    """Partial TOML uses defaults for missing sections."""
    config = _load_toml(b"""\
[scan]
book_type = "credit"
""")
    assert config.scan.book_type == "credit"
    assert config.ai.backend == "gemini"
    assert config.retry.max_attempts == 3


def test_load_config_rejects_unknown_book_type():
    with pytest.raises(ValueError, match="不明な元帳種別"):
        _load_toml(b"""\
[scan]
book_type = "savings"
""")


def test_load_config_rejects_unknown_pdf_mode():
    with pytest.raises(ValueError, match="不明なPDF処理モード"):
        _load_toml(b"""\
[scan]
pdf_mode = "merge"
""")
