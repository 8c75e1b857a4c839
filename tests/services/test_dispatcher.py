"""AnalysisDispatcher 테스트"""

import asyncio
from unittest.mock import MagicMock

import pytest

from lensexec.schemas.analysis import AnalysisResult
from lensexec.services.analysis import (
    AnalysisTimeoutError,
    ConfigurationError,
    ProviderError,
)
from lensexec.services.dispatcher import AnalysisDispatcher, describe_error
from lensexec.services.transport import NetworkError, ResilientTransport, RetryExhaustedError
from tests.fakes import FakeProvider, make_request


class TestAnalysisDispatcher:
    def setup_method(self) -> None:
        self.transport = ResilientTransport(base_delay=0.0, max_delay=0.0)
        self.provider = FakeProvider()
        self.completed: list[AnalysisResult] = []
        self.failed: list[tuple[Exception, str]] = []
        self.api_errors: list[str] = []

    def make_dispatcher(self, timeout: float = 1.0) -> AnalysisDispatcher:
        dispatcher = AnalysisDispatcher(
            self.transport,
            provider_factory=lambda model: self.provider,
            timeout=timeout,
        )
        dispatcher.completed.connect(self.completed.append)
        dispatcher.failed.connect(lambda error, region_id: self.failed.append((error, region_id)))
        dispatcher.api_error.connect(self.api_errors.append)
        return dispatcher

    async def test_completed_signal(self) -> None:
        dispatcher = self.make_dispatcher()
        request = make_request(region_id="region_00000001")

        dispatcher.enqueue(request)
        await dispatcher.wait_idle()

        assert request.status == "succeeded"
        assert len(self.completed) == 1
        result = self.completed[0]
        assert result.region_id == "region_00000001"
        assert result.request_id == request.id
        assert result.language == "python"
        assert self.failed == []

    async def test_analyze_returns_result(self) -> None:
        dispatcher = self.make_dispatcher()

        result = await dispatcher.analyze(make_request())

        assert result.language == "python"

    async def test_single_request_in_flight(self) -> None:
        self.provider.delay = 0.02
        dispatcher = self.make_dispatcher()

        for i in range(4):
            dispatcher.enqueue(make_request(region_id=f"region_0000000{i}"))
        await dispatcher.wait_idle()

        assert self.provider.max_in_flight == 1
        assert len(self.provider.calls) == 4

    async def test_fifo_order(self) -> None:
        dispatcher = self.make_dispatcher()
        requests = [make_request(text=f"print('request number {i}')") for i in range(3)]

        for request in requests:
            dispatcher.enqueue(request)
        await dispatcher.wait_idle()

        prompts = [call["prompt"] for call in self.provider.calls]
        for i, prompt in enumerate(prompts):
            assert f"request number {i}" in prompt
        assert [r.request_id for r in self.completed] == [r.id for r in requests]

    async def test_unknown_provider_fails_without_network(self) -> None:
        factory = MagicMock()
        dispatcher = AnalysisDispatcher(self.transport, provider_factory=factory)
        dispatcher.failed.connect(lambda error, region_id: self.failed.append((error, region_id)))
        request = make_request(model="llama-3", provider="unknown")

        dispatcher.enqueue(request)
        await dispatcher.wait_idle()

        factory.assert_not_called()
        assert request.status == "failed"
        error, region_id = self.failed[0]
        assert isinstance(error, ConfigurationError)
        assert region_id == request.region_id

    async def test_factory_configuration_error(self) -> None:
        def missing_key(model: str) -> FakeProvider:
            raise ConfigurationError("LLM API key not configured")

        dispatcher = AnalysisDispatcher(self.transport, provider_factory=missing_key)
        dispatcher.api_error.connect(self.api_errors.append)

        dispatcher.enqueue(make_request())
        await dispatcher.wait_idle()

        assert self.api_errors == [describe_error(ConfigurationError("x"))]
        assert self.provider.calls == []

    async def test_unparseable_response_still_completes(self) -> None:
        self.provider.responses = ["I could not produce JSON today."]
        dispatcher = self.make_dispatcher()
        request = make_request()

        dispatcher.enqueue(request)
        await dispatcher.wait_idle()

        assert request.status == "succeeded"
        assert len(self.completed) == 1
        assert len(self.completed[0].suggestions) > 0
        assert self.failed == []

    async def test_timeout(self) -> None:
        self.provider.delay = 5.0
        dispatcher = self.make_dispatcher(timeout=0.05)
        request = make_request()

        dispatcher.enqueue(request)
        await dispatcher.wait_idle()

        assert request.status == "timed_out"
        assert isinstance(self.failed[0][0], AnalysisTimeoutError)
        assert self.api_errors == ["분석 요청 시간이 초과되었습니다. 다시 시도하세요"]
        assert self.provider.in_flight == 0

    async def test_provider_error_not_retried(self) -> None:
        self.provider.responses = [ProviderError("openai", 401, "invalid api key")]
        dispatcher = self.make_dispatcher()
        request = make_request()

        dispatcher.enqueue(request)
        await dispatcher.wait_idle()

        assert request.status == "failed"
        assert len(self.provider.calls) == 1
        assert self.api_errors == ["API 인증에 실패했습니다. API 키를 확인하세요"]
        # 원문 응답은 사용자 메시지에 포함하지 않음
        assert "invalid api key" not in self.api_errors[0]

    async def test_network_errors_exhaust_retries(self) -> None:
        self.provider.responses = [NetworkError("connection reset")]
        dispatcher = self.make_dispatcher()
        request = make_request()

        dispatcher.enqueue(request)
        await dispatcher.wait_idle()

        assert request.status == "failed"
        assert isinstance(self.failed[0][0], RetryExhaustedError)
        assert len(self.provider.calls) == 4

    async def test_failure_does_not_block_next_request(self) -> None:
        self.provider.responses = [ProviderError("openai", 500, "oops"), "not json"]
        dispatcher = self.make_dispatcher()
        first, second = make_request(), make_request()

        dispatcher.enqueue(first)
        dispatcher.enqueue(second)
        await dispatcher.wait_idle()

        assert first.status == "failed"
        assert second.status == "succeeded"

    async def test_unexpected_error_emits_failed(self) -> None:
        self.provider.build_payload = MagicMock(side_effect=RuntimeError("payload broken"))
        dispatcher = self.make_dispatcher()
        request = make_request()

        dispatcher.enqueue(request)
        await dispatcher.wait_idle()

        assert request.status == "failed"
        assert self.completed == []
        error, region_id = self.failed[0]
        assert isinstance(error, RuntimeError)
        assert region_id == request.region_id
        assert self.api_errors == ["분석 서비스를 일시적으로 사용할 수 없습니다"]

        # 워커는 다음 요청을 계속 처리
        self.provider.build_payload = MagicMock(return_value={"prompt": "", "image": None})
        dispatcher.enqueue(make_request())
        await dispatcher.wait_idle()
        assert len(self.completed) == 1

    async def test_cancel_all(self) -> None:
        self.provider.delay = 5.0
        dispatcher = self.make_dispatcher()
        first, second = make_request(), make_request()

        dispatcher.enqueue(first)
        dispatcher.enqueue(second)
        await asyncio.sleep(0.01)
        assert dispatcher.status().in_flight_request_id == first.id

        dispatcher.cancel_all()
        await asyncio.wait_for(dispatcher.wait_idle(), timeout=1.0)

        assert first.status == "cancelled"
        assert second.status == "cancelled"
        assert self.completed == []
        assert self.failed == []
        assert len(self.provider.calls) == 1

    async def test_analyze_cancelled(self) -> None:
        self.provider.delay = 5.0
        dispatcher = self.make_dispatcher()

        task = asyncio.ensure_future(dispatcher.analyze(make_request()))
        await asyncio.sleep(0.01)
        dispatcher.cancel_all()

        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_status(self) -> None:
        dispatcher = self.make_dispatcher()
        status = dispatcher.status()
        assert status.queue_length == 0
        assert not status.in_flight

    async def test_dispose_clears_listeners(self) -> None:
        dispatcher = self.make_dispatcher()
        await dispatcher.dispose()
        assert len(dispatcher.completed) == 0
        assert len(dispatcher.failed) == 0


class TestDescribeError:
    def test_rate_limit(self) -> None:
        message = describe_error(ProviderError("anthropic", 429, "slow down"))
        assert message == "요청 한도를 초과했습니다. 잠시 후 다시 시도하세요"

    def test_unknown_error(self) -> None:
        assert describe_error(RuntimeError("x")) == "분석 서비스를 일시적으로 사용할 수 없습니다"
