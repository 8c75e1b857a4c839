"""Analysis Provider Protocol

교체 가능한 LLM 분석 백엔드를 위한 인터페이스 정의.
"""

from typing import Any, Protocol

from lensexec.schemas.analysis import Provider


class AnalysisError(Exception):
    retryable: bool | None = None


class ConfigurationError(AnalysisError):
    """provider 미지원, API 키 누락 등 (재시도 없음)"""

    retryable = False


class ProviderError(AnalysisError):
    """백엔드가 성공이 아닌 응답을 반환 (재시도 없음)"""

    retryable = False

    def __init__(self, provider: str, status_code: int, body: str):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider} API error: {status_code} - {body}")


class AnalysisTimeoutError(AnalysisError):
    retryable = False

    def __init__(self, request_id: str, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Analysis request timed out after {timeout}s: {request_id}")


def resolve_provider(model: str) -> Provider:
    """모델 이름으로 provider 결정 (부분 문자열 매칭)"""
    if "gpt" in model:
        return "openai"
    if "claude" in model:
        return "anthropic"
    if "gemini" in model:
        return "google"
    return "unknown"


class AnalysisProvider(Protocol):
    """LLM 분석 백엔드 인터페이스

    구현체:
    - OpenAIProvider: OpenAI Chat Completions
    - AnthropicProvider: Anthropic Messages
    - GoogleProvider: Google Gemini (google-genai)
    """

    name: Provider
    model: str

    def build_payload(self, prompt: str, image: bytes | None = None) -> dict[str, Any]:
        """provider별 요청 본문 생성

        Args:
            prompt: 분석 프롬프트
            image: JPEG 바이트 (선택)
        """
        ...

    async def send(self, payload: dict[str, Any]) -> str:
        """요청 전송 후 응답 텍스트 반환

        Raises:
            NetworkError: 연결 실패, 타임아웃 (재시도 대상)
            ProviderError: 성공이 아닌 응답 상태, 응답 구조 불일치
        """
        ...
