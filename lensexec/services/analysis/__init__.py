"""Analysis 모듈

사용법:
    from lensexec.services.analysis import get_provider

    provider = get_provider("gpt-4o")
    raw = await provider.send(provider.build_payload(prompt, image))

백엔드 선택 (.env LLM_MODEL, 모델 이름 부분 문자열):
    - "gpt": OpenAI
    - "claude": Anthropic
    - "gemini": Google (기본값 gemini-1.5-pro)
"""

from lensexec.config import get_settings
from lensexec.services.analysis.anthropic import AnthropicProvider
from lensexec.services.analysis.base import (
    AnalysisError,
    AnalysisProvider,
    AnalysisTimeoutError,
    ConfigurationError,
    ProviderError,
    resolve_provider,
)
from lensexec.services.analysis.google import GoogleProvider
from lensexec.services.analysis.openai import OpenAIProvider

__all__ = [
    "AnalysisError",
    "AnalysisProvider",
    "AnalysisTimeoutError",
    "ConfigurationError",
    "ProviderError",
    "get_provider",
    "resolve_provider",
    "set_provider",
]

_provider: AnalysisProvider | None = None


def get_provider(model: str | None = None) -> AnalysisProvider:
    """모델 이름에 따라 analysis 백엔드 반환

    Raises:
        ConfigurationError: 지원하지 않는 모델, API 키 누락
    """
    global _provider
    settings = get_settings()
    model = model or settings.llm_model

    if _provider is not None and _provider.model == model:
        return _provider

    provider = resolve_provider(model)
    if provider == "unknown":
        raise ConfigurationError(f"Unsupported model provider for model: {model!r}")
    if not settings.llm_api_key:
        raise ConfigurationError("LLM API key not configured")

    if provider == "openai":
        _provider = OpenAIProvider(
            api_key=settings.llm_api_key,
            model=model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
        )
    elif provider == "anthropic":
        _provider = AnthropicProvider(
            api_key=settings.llm_api_key,
            model=model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout,
        )
    else:
        _provider = GoogleProvider(
            api_key=settings.llm_api_key,
            model=model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )
    return _provider


def set_provider(provider: AnalysisProvider | None) -> None:
    """analysis 백엔드 설정 (테스트용)"""
    global _provider
    _provider = provider
