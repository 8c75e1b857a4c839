"""Google Gemini 구현체 (google-genai)"""

# pyright: reportMissingTypeStubs=false

import logging
from typing import Any

import httpx
from google import genai
from google.genai import errors, types

from lensexec.schemas.analysis import Provider
from lensexec.services.analysis.base import ProviderError
from lensexec.services.transport import NetworkError

logger = logging.getLogger(__name__)


class GoogleProvider:
    name: Provider = "google"

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 2048,
        temperature: float = 0.1,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    def build_payload(self, prompt: str, image: bytes | None = None) -> dict[str, Any]:
        contents: list[Any] = [prompt]
        if image:
            contents.append(types.Part.from_bytes(data=image, mime_type="image/jpeg"))

        return {
            "model": self.model,
            "contents": contents,
            "config": types.GenerateContentConfig(
                temperature=self._temperature,
                max_output_tokens=self._max_tokens,
            ),
        }

    async def send(self, payload: dict[str, Any]) -> str:
        client = genai.Client(api_key=self._api_key)

        try:
            response = await client.aio.models.generate_content(
                model=payload["model"],
                contents=payload["contents"],
                config=payload["config"],
            )
        except errors.APIError as e:
            logger.error(f"Gemini API 오류 응답: {e.code} {e.message}")
            raise ProviderError(self.name, e.code, str(e.message or e)) from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"google API timeout: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"google API network error: {e}") from e

        if not response.text:
            raise ProviderError(self.name, 200, "빈 응답 - API 키와 쿼터를 확인하세요")
        return response.text
