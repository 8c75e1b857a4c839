"""httpx 기반 provider 공통 POST"""

import logging
from typing import Any

import httpx

from lensexec.services.analysis.base import ProviderError
from lensexec.services.transport import NetworkError

logger = logging.getLogger(__name__)


async def post_json(
    provider: str,
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    timeout: float,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """JSON POST 후 응답 JSON 반환

    Raises:
        NetworkError: 연결 실패, 타임아웃
        ProviderError: 성공이 아닌 응답 상태, JSON이 아닌 응답
    """
    try:
        if client is not None:
            resp = await client.post(url, headers=headers, json=payload)
        else:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                resp = await owned.post(url, headers=headers, json=payload)
    except httpx.TimeoutException as e:
        raise NetworkError(f"{provider} API timeout: {e}") from e
    except httpx.TransportError as e:
        raise NetworkError(f"{provider} API network error: {e}") from e

    if resp.is_error:
        logger.error(f"{provider} API 오류 응답: {resp.status_code} {resp.text}")
        raise ProviderError(provider, resp.status_code, resp.text)

    try:
        return resp.json()
    except ValueError as e:
        raise ProviderError(provider, resp.status_code, f"JSON이 아닌 응답: {e}") from e
