"""OpenAI Chat Completions 구현체"""

import base64
from typing import Any

import httpx

from lensexec.schemas.analysis import Provider
from lensexec.services.analysis.base import ProviderError
from lensexec.services.analysis.http import post_json

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"


class OpenAIProvider:
    name: Provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.1,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout
        self._client = client

    def build_payload(self, prompt: str, image: bytes | None = None) -> dict[str, Any]:
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        if image:
            encoded = base64.b64encode(image).decode()
            content.append(
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded}"}}
            )

        return {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }

    async def send(self, payload: dict[str, Any]) -> str:
        data = await post_json(
            self.name,
            OPENAI_API_URL,
            headers={"Authorization": f"Bearer {self._api_key}"},
            payload=payload,
            timeout=self._timeout,
            client=self._client,
        )
        try:
            return str(data["choices"][0]["message"]["content"])
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, 200, f"예상하지 못한 응답 구조: {e}") from e
