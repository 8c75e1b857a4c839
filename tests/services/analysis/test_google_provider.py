"""GoogleProvider 테스트"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from google.genai import errors

from lensexec.services.analysis import ProviderError
from lensexec.services.analysis.google import GoogleProvider
from lensexec.services.transport import NetworkError

GOOGLE_MODULE = "lensexec.services.analysis.google"


class TestGoogleProvider:
    def setup_method(self) -> None:
        self.provider = GoogleProvider(api_key="test-key", model="gemini-1.5-pro", max_tokens=512)

    def test_payload_includes_image_part(self) -> None:
        payload = self.provider.build_payload("analyze", b"jpeg")

        assert payload["model"] == "gemini-1.5-pro"
        assert payload["contents"][0] == "analyze"
        assert len(payload["contents"]) == 2
        assert payload["config"].max_output_tokens == 512

    def test_payload_text_only(self) -> None:
        payload = self.provider.build_payload("analyze")
        assert payload["contents"] == ["analyze"]

    async def test_send_returns_text(self) -> None:
        with patch(f"{GOOGLE_MODULE}.genai") as mock_genai:
            mock_response = MagicMock()
            mock_response.text = "result"
            generate = AsyncMock(return_value=mock_response)
            mock_genai.Client.return_value.aio.models.generate_content = generate

            text = await self.provider.send(self.provider.build_payload("analyze"))

        assert text == "result"
        mock_genai.Client.assert_called_once_with(api_key="test-key")
        assert generate.await_args.kwargs["model"] == "gemini-1.5-pro"

    async def test_empty_response_raises(self) -> None:
        with patch(f"{GOOGLE_MODULE}.genai") as mock_genai:
            mock_response = MagicMock()
            mock_response.text = None
            mock_genai.Client.return_value.aio.models.generate_content = AsyncMock(
                return_value=mock_response
            )

            with pytest.raises(ProviderError):
                await self.provider.send(self.provider.build_payload("analyze"))

    async def test_api_error_raises_provider_error(self) -> None:
        api_error = errors.APIError(403, {"error": {"message": "permission denied"}})
        with patch(f"{GOOGLE_MODULE}.genai") as mock_genai:
            mock_genai.Client.return_value.aio.models.generate_content = AsyncMock(
                side_effect=api_error
            )

            with pytest.raises(ProviderError) as exc_info:
                await self.provider.send(self.provider.build_payload("analyze"))

        assert exc_info.value.status_code == 403

    async def test_transport_error_raises_network_error(self) -> None:
        with patch(f"{GOOGLE_MODULE}.genai") as mock_genai:
            mock_genai.Client.return_value.aio.models.generate_content = AsyncMock(
                side_effect=httpx.ConnectError("refused")
            )

            with pytest.raises(NetworkError):
                await self.provider.send(self.provider.build_payload("analyze"))
