"""Tests for AI extraction backends (mocked API calls)."""

import json
import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions

from kakeibo.scanner.ai import (
    API_ERROR,
    API_KEY_INVALID,
    FILE_TOO_LARGE,
    INVALID_RESPONSE,
    MAX_TOKENS,
    NETWORK_ERROR,
    RATE_LIMITED,
    AnalysisError,
    ExtractionBackend,
    build_analysis_prompt,
    classify_status,
    create_backend,
)
from kakeibo.scanner.ai.claude import ClaudeExtractionBackend
from kakeibo.scanner.ai.gemini import GeminiExtractionBackend
from kakeibo.scanner.config import load_config

REPLY = json.dumps([
    {"date": "2024/02/01", "description": "スターバックス コーヒー", "amount": 650, "type": "expense"},
    {"date": "2024/02/03", "description": "JR東日本", "amount": 1980, "type": "expense"},
], ensure_ascii=False)


def _gemini_response(text: str = REPLY, finish_reason: str = "STOP"):
    return SimpleNamespace(candidates=[
        SimpleNamespace(
            finish_reason=finish_reason,
            content=SimpleNamespace(parts=[SimpleNamespace(text=text)]),
        )
    ])


class TestClassifyStatus:
    def test_400_with_api_key_message(self):
        err = classify_status(400, "API key not valid. Please pass a valid API key.")
        assert err.code == API_KEY_INVALID

    def test_400_generic(self):
        err = classify_status(400, "Request payload size exceeds the limit")
        assert err.code == API_ERROR
        assert "リクエストエラー" in err.message

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_failures(self, status):
        assert classify_status(status, "denied").code == API_KEY_INVALID

    def test_429(self):
        err = classify_status(429, "quota exceeded")
        assert err.code == RATE_LIMITED
        assert err.retryable

    def test_other_status(self):
        err = classify_status(500, "internal")
        assert err.code == API_ERROR
        assert "(500)" in err.message
        assert not err.retryable


class TestPrompt:
    def test_without_auto_kamoku_requires_null_accounts(self):
        prompt = build_analysis_prompt(auto_kamoku=False)
        assert "STRICT RULE" in prompt
        assert "旅費交通費" not in prompt
        assert '"kamoku": null' in prompt

    def test_with_auto_kamoku_includes_taxonomy_and_fallback(self):
        prompt = build_analysis_prompt(auto_kamoku=True)
        assert "旅費交通費" in prompt
        assert "タクシー" in prompt
        assert '"仮払金" for expense' in prompt
        assert '"仮受金" for income' in prompt
        assert "STRICT RULE" not in prompt

    def test_amount_limits_described(self):
        prompt = build_analysis_prompt(auto_kamoku=True)
        assert "amount up to 4,999" in prompt
        assert "amount 5,000 or more" in prompt


class TestCreateBackend:
    def test_create_gemini_backend(self):
        config = load_config()
        backend = create_backend(config)
        assert isinstance(backend, GeminiExtractionBackend)
        assert backend.model == "gemini-3-flash-preview"

    def test_create_claude_backend(self):
        config = load_config()
        config.ai.backend = "claude"
        backend = create_backend(config)
        assert isinstance(backend, ClaudeExtractionBackend)

    def test_create_unknown_backend(self):
        config = load_config()
        config.ai.backend = "unknown"
        with pytest.raises(ValueError, match="不明なAIバックエンド"):
            create_backend(config)

    def test_unknown_gemini_model(self):
        with pytest.raises(ValueError, match="不明なGeminiモデル"):
            GeminiExtractionBackend(api_key="k", model="gemini-1.0-ultra")

    def test_unknown_claude_model(self):
        with pytest.raises(ValueError, match="不明なClaudeモデル"):
            ClaudeExtractionBackend(api_key="k", model="claude-2")


class _EchoBackend(ExtractionBackend):
    """Backend whose reply is fixed; records the prompts it was sent."""

    name = "echo"

    def __init__(self, reply: str, **kwargs) -> None:
        super().__init__(api_key="k", model="echo", **kwargs)
        self.reply = reply
        self.prompts: list[str] = []

    async def _generate(self, data, mime_type, prompt):
        self.prompts.append(prompt)
        return self.reply


class TestExtractionBackendBase:
    @pytest.mark.asyncio
    async def test_parses_reply(self):
        backend = _EchoBackend(REPLY)
        result = await backend.extract_transactions(b"img", "image/png")
        assert [t.description for t in result] == ["スターバックス コーヒー", "JR東日本"]

    @pytest.mark.asyncio
    async def test_auto_kamoku_changes_prompt(self):
        backend = _EchoBackend(REPLY)
        await backend.extract_transactions(b"img", "image/png", auto_kamoku=True)
        await backend.extract_transactions(b"img", "image/png", auto_kamoku=False)
        assert "旅費交通費" in backend.prompts[0]
        assert "旅費交通費" not in backend.prompts[1]

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        backend = _EchoBackend("   ")
        with pytest.raises(AnalysisError) as exc_info:
            await backend.extract_transactions(b"img", "image/png")
        assert exc_info.value.code == INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_file_too_large_before_call(self):
        backend = _EchoBackend(REPLY, max_file_bytes=10)
        with pytest.raises(AnalysisError) as exc_info:
            await backend.extract_transactions(b"x" * 11, "image/png")
        assert exc_info.value.code == FILE_TOO_LARGE
        assert backend.prompts == []


class TestGeminiExtractionBackend:
    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        backend = GeminiExtractionBackend(api_key="")
        with patch("google.generativeai.GenerativeModel") as model_cls:
            with pytest.raises(AnalysisError, match="APIキー") as exc_info:
                await backend.extract_transactions(b"img", "image/png")
        assert exc_info.value.code == API_KEY_INVALID
        model_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_file_too_large_skips_network(self):
        backend = GeminiExtractionBackend(api_key="test-key", max_file_bytes=1024)
        with patch("google.generativeai.GenerativeModel") as model_cls:
            with pytest.raises(AnalysisError) as exc_info:
                await backend.extract_transactions(b"x" * 2048, "image/png")
        assert exc_info.value.code == FILE_TOO_LARGE
        model_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_extract_mocked(self):
        with patch("google.generativeai.configure") as configure, \
                patch("google.generativeai.GenerativeModel") as model_cls:
            model_cls.return_value.generate_content_async = AsyncMock(
                return_value=_gemini_response()
            )
            backend = GeminiExtractionBackend(api_key="test-key", model="gemini-2.5-flash")
            result = await backend.extract_transactions(b"png-bytes", "image/png")

        configure.assert_called_once_with(api_key="test-key")
        assert model_cls.call_args.args[0] == "gemini-2.5-flash"
        generation_config = model_cls.call_args.kwargs["generation_config"]
        assert generation_config["temperature"] == 0.1
        assert generation_config["response_mime_type"] == "application/json"

        parts = model_cls.return_value.generate_content_async.call_args.args[0]
        assert len(parts) == 2
        assert "accountant" in parts[0]
        assert parts[1] == {"mime_type": "image/png", "data": b"png-bytes"}

        assert len(result) == 2
        assert result[1].description == "JR東日本"

    @pytest.mark.asyncio
    async def test_max_tokens(self):
        with patch("google.generativeai.configure"), \
                patch("google.generativeai.GenerativeModel") as model_cls:
            model_cls.return_value.generate_content_async = AsyncMock(
                return_value=_gemini_response(text='[{"date": "2024', finish_reason="MAX_TOKENS")
            )
            backend = GeminiExtractionBackend(api_key="test-key")
            with pytest.raises(AnalysisError) as exc_info:
                await backend.extract_transactions(b"img", "image/png")
        assert exc_info.value.code == MAX_TOKENS

    @pytest.mark.asyncio
    async def test_no_candidates(self):
        with patch("google.generativeai.configure"), \
                patch("google.generativeai.GenerativeModel") as model_cls:
            model_cls.return_value.generate_content_async = AsyncMock(
                return_value=SimpleNamespace(candidates=[])
            )
            backend = GeminiExtractionBackend(api_key="test-key")
            with pytest.raises(AnalysisError) as exc_info:
                await backend.extract_transactions(b"img", "image/png")
        assert exc_info.value.code == INVALID_RESPONSE

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, expected",
        [
            (google_exceptions.ResourceExhausted("quota exceeded"), RATE_LIMITED),
            (google_exceptions.InvalidArgument("API key not valid."), API_KEY_INVALID),
            (google_exceptions.InvalidArgument("Unsupported MIME type"), API_ERROR),
            (google_exceptions.PermissionDenied("denied"), API_KEY_INVALID),
            (google_exceptions.InternalServerError("boom"), API_ERROR),
            (google_exceptions.DeadlineExceeded("timed out"), NETWORK_ERROR),
            (ConnectionError("connection reset"), NETWORK_ERROR),
        ],
    )
    async def test_error_classification(self, error, expected):
        with patch("google.generativeai.configure"), \
                patch("google.generativeai.GenerativeModel") as model_cls:
            model_cls.return_value.generate_content_async = AsyncMock(side_effect=error)
            backend = GeminiExtractionBackend(api_key="test-key")
            with pytest.raises(AnalysisError) as exc_info:
                await backend.extract_transactions(b"img", "image/png")
        assert exc_info.value.code == expected


class FakeAPIError(Exception):
    pass


class FakeAPIStatusError(FakeAPIError):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class FakeAPIConnectionError(FakeAPIError):
    pass


class FakeAPIResponseValidationError(FakeAPIError):
    pass


def _mock_anthropic(create: AsyncMock) -> MagicMock:
    mock_client = AsyncMock()
    mock_client.messages.create = create

    mock_anthropic = MagicMock()
    mock_anthropic.AsyncAnthropic.return_value = mock_client
    mock_anthropic.APIStatusError = FakeAPIStatusError
    mock_anthropic.APIConnectionError = FakeAPIConnectionError
    mock_anthropic.APIError = FakeAPIError
    return mock_anthropic


class TestClaudeExtractionBackend:
    @pytest.mark.asyncio
    async def test_requires_api_key(self):
        backend = ClaudeExtractionBackend(api_key="")
        with pytest.raises(AnalysisError, match="APIキー"):
            await backend.extract_transactions(b"img", "image/png")

    @pytest.mark.asyncio
    async def test_extract_pdf_mocked(self):
        response = MagicMock()
        response.stop_reason = "end_turn"
        response.content = [SimpleNamespace(type="text", text=REPLY)]
        create = AsyncMock(return_value=response)

        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            backend = ClaudeExtractionBackend(api_key="test-key")
            result = await backend.extract_transactions(b"%PDF-1.7", "application/pdf")

        assert len(result) == 2
        content = create.call_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "document"
        assert content[0]["source"]["media_type"] == "application/pdf"
        assert content[1]["type"] == "text"

    @pytest.mark.asyncio
    async def test_image_block_for_images(self):
        response = MagicMock()
        response.stop_reason = "end_turn"
        response.content = [SimpleNamespace(type="text", text="[]")]
        create = AsyncMock(return_value=response)

        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            backend = ClaudeExtractionBackend(api_key="test-key")
            result = await backend.extract_transactions(b"\xff\xd8", "image/jpeg")

        assert result == []
        content = create.call_args.kwargs["messages"][0]["content"]
        assert content[0]["type"] == "image"

    @pytest.mark.asyncio
    async def test_max_tokens(self):
        response = MagicMock()
        response.stop_reason = "max_tokens"
        response.content = [SimpleNamespace(type="text", text='[{"date"')]
        create = AsyncMock(return_value=response)

        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            backend = ClaudeExtractionBackend(api_key="test-key")
            with pytest.raises(AnalysisError) as exc_info:
                await backend.extract_transactions(b"img", "image/png")
        assert exc_info.value.code == MAX_TOKENS

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, expected",
        [
            (FakeAPIStatusError("rate limited", 429), RATE_LIMITED),
            (FakeAPIStatusError("invalid x-api-key", 401), API_KEY_INVALID),
            (FakeAPIStatusError("overloaded", 529), API_ERROR),
            (FakeAPIConnectionError("connection error"), NETWORK_ERROR),
            (FakeAPIResponseValidationError("unexpected response body"), API_ERROR),
        ],
    )
    async def test_error_classification(self, error, expected):
        create = AsyncMock(side_effect=error)
        with patch.dict(sys.modules, {"anthropic": _mock_anthropic(create)}):
            backend = ClaudeExtractionBackend(api_key="test-key")
            with pytest.raises(AnalysisError) as exc_info:
                await backend.extract_transactions(b"img", "image/png")
        assert exc_info.value.code == expected
