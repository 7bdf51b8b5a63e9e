"""Error taxonomy for AI document analysis."""

from __future__ import annotations

FILE_TOO_LARGE = "FILE_TOO_LARGE"
API_KEY_INVALID = "API_KEY_INVALID"
RATE_LIMITED = "RATE_LIMITED"
NETWORK_ERROR = "NETWORK_ERROR"
INVALID_RESPONSE = "INVALID_RESPONSE"
MAX_TOKENS = "MAX_TOKENS"
API_ERROR = "API_ERROR"

RETRYABLE_CODES: frozenset[str] = frozenset({RATE_LIMITED, NETWORK_ERROR})

ERROR_MESSAGES: dict[str, str] = {
    FILE_TOO_LARGE: "ファイルサイズが大きすぎます。",
    API_KEY_INVALID: "APIキーが無効です。設定を確認してください。",
    RATE_LIMITED: "APIのレート制限に達しました。しばらく待ってから再試行してください。",
    NETWORK_ERROR: "ネットワークエラーが発生しました。接続を確認してください。",
    INVALID_RESPONSE: "解析結果の形式が不正です。再試行してください。",
    MAX_TOKENS: "応答が長すぎて途中で切れました。PDFをページごとに分割して解析してください。",
    API_ERROR: "API呼び出しエラーが発生しました。",
}


class AnalysisError(Exception):
    """A classified failure of one analysis call."""

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, code)
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def __repr__(self) -> str:
        return f"AnalysisError({self.code!r}, {self.message!r})"


def classify_status(status: int | None, message: str = "") -> AnalysisError:
    """Map an HTTP status returned by the inference endpoint to an error."""
    if status == 400:
        lowered = message.lower()
        if "api key" in lowered or "api_key" in lowered:
            return AnalysisError(API_KEY_INVALID)
        return AnalysisError(API_ERROR, f"リクエストエラー: {message or 'Bad Request'}")
    if status in (401, 403):
        return AnalysisError(API_KEY_INVALID, "APIキーが無効または権限がありません。")
    if status == 429:
        return AnalysisError(RATE_LIMITED)
    return AnalysisError(API_ERROR, f"API呼び出しエラー ({status}): {message}")
