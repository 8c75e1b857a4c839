"""분석 요청 디스패처

큐를 단독으로 소유하는 워커 태스크 하나가 요청을 FIFO 순서로 처리한다.
네트워크 호출은 디스패처 인스턴스당 항상 하나만 진행된다.

요청 처리 흐름:
    queued → dispatched → provider 결정 → transport.perform (timeout 경쟁)
    → succeeded (analysis_completed) | failed / timed_out (analysis_failed, api_error)
"""

import asyncio
import logging
from collections.abc import Callable

from lensexec.constants import Limits
from lensexec.core.events import Signal
from lensexec.schemas.analysis import AnalysisRequest, AnalysisResult, RequestStatus
from lensexec.schemas.base import BaseSchema
from lensexec.services.analysis import (
    AnalysisProvider,
    AnalysisTimeoutError,
    ConfigurationError,
    ProviderError,
    get_provider,
)
from lensexec.services.analysis.parser import parse_analysis_response
from lensexec.services.analysis.prompt import build_prompt
from lensexec.services.transport import ResilientTransport, RetryExhaustedError

logger = logging.getLogger(__name__)

# timeout/취소 후 진행 중 호출이 정리될 때까지 기다리는 최대 시간 (초)
CANCEL_GRACE = 1.0


def describe_error(error: BaseException) -> str:
    """사용자에게 보여줄 오류 메시지 (provider 원문 응답은 포함하지 않음)"""
    if isinstance(error, ConfigurationError):
        return "분석 서비스 설정이 올바르지 않습니다. 모델과 API 키를 확인하세요"
    if isinstance(error, AnalysisTimeoutError):
        return "분석 요청 시간이 초과되었습니다. 다시 시도하세요"
    if isinstance(error, ProviderError):
        if error.status_code in (401, 403):
            return "API 인증에 실패했습니다. API 키를 확인하세요"
        if error.status_code == 429:
            return "요청 한도를 초과했습니다. 잠시 후 다시 시도하세요"
    if isinstance(error, RetryExhaustedError):
        return "네트워크 연결을 확인하세요. 분석을 완료하지 못했습니다"
    return "분석 서비스를 일시적으로 사용할 수 없습니다"


class DispatcherStatus(BaseSchema):
    queue_length: int
    in_flight: bool
    in_flight_request_id: str | None = None


class AnalysisDispatcher:
    def __init__(
        self,
        transport: ResilientTransport,
        provider_factory: Callable[[str], AnalysisProvider] = get_provider,
        timeout: float = 30.0,
        max_retries: int = Limits.MAX_RETRIES,
    ) -> None:
        self._transport = transport
        self._provider_factory = provider_factory
        self._timeout = timeout
        self._max_retries = max_retries

        self._queue: asyncio.Queue[AnalysisRequest] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._current: AnalysisRequest | None = None
        self._in_flight: asyncio.Task[str] | None = None
        self._waiters: dict[str, asyncio.Future[AnalysisResult]] = {}

        self.completed: Signal[[AnalysisResult]] = Signal("analysis-completed")
        self.failed: Signal[[Exception, str]] = Signal("analysis-failed")
        self.api_error: Signal[[str]] = Signal("api-error")

    def enqueue(self, request: AnalysisRequest) -> None:
        """요청을 큐 끝에 추가 (결과를 기다리지 않음)"""
        self._queue.put_nowait(request)
        logger.debug(f"분석 요청 큐 추가: {request.id} (큐 길이: {self._queue.qsize()})")
        self._ensure_worker()

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """요청을 큐에 넣고 해당 요청의 결과를 기다림

        Raises:
            AnalysisError, TransportError: 요청 실패
            asyncio.CancelledError: cancel_all()로 취소됨
        """
        waiter: asyncio.Future[AnalysisResult] = asyncio.get_running_loop().create_future()
        self._waiters[request.id] = waiter
        self.enqueue(request)
        try:
            return await waiter
        finally:
            self._waiters.pop(request.id, None)

    async def wait_idle(self) -> None:
        """큐에 들어간 모든 요청이 종료될 때까지 대기"""
        await self._queue.join()

    def cancel_all(self) -> None:
        """대기 중인 요청과 진행 중인 호출을 모두 취소 (재큐잉 없음)"""
        cancelled = 0
        while not self._queue.empty():
            request = self._queue.get_nowait()
            self._queue.task_done()
            self._finish(request, "cancelled")
            cancelled += 1

        current = self._current
        if current is not None:
            self._finish(current, "cancelled")
            cancelled += 1
            if self._in_flight is not None and not self._in_flight.done():
                self._in_flight.cancel()
            self._transport.cancel(current.id)

        logger.info(f"분석 요청 전체 취소: {cancelled}개")

    def status(self) -> DispatcherStatus:
        return DispatcherStatus(
            queue_length=self._queue.qsize(),
            in_flight=self._in_flight is not None and not self._in_flight.done(),
            in_flight_request_id=self._current.id if self._current else None,
        )

    async def dispose(self) -> None:
        self.cancel_all()
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        self.completed.clear()
        self.failed.clear()
        self.api_error.clear()

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                await self._process(request)
            except Exception as e:
                # 요청 하나의 실패가 워커를 멈추면 안 됨
                logger.exception(f"분석 요청 처리 중 예기치 않은 오류: {request.id}")
                self._fail(request, e)
            finally:
                self._current = None
                self._in_flight = None
                self._queue.task_done()

    async def _process(self, request: AnalysisRequest) -> None:
        if request.is_terminal:
            return

        request.transition("dispatched")
        self._current = request
        logger.debug(f"분석 요청 처리: {request.id} (region={request.region_id})")

        try:
            if request.provider == "unknown":
                raise ConfigurationError(f"Unsupported model provider for model: {request.model!r}")
            provider = self._provider_factory(request.model)
        except ConfigurationError as e:
            self._fail(request, e)
            return

        payload = provider.build_payload(build_prompt(request.text), request.image)
        task = asyncio.ensure_future(
            self._transport.perform(
                request.id,
                lambda: provider.send(payload),
                self._max_retries,
            )
        )
        self._in_flight = task

        done, _ = await asyncio.wait({task}, timeout=self._timeout)

        if not done:
            task.cancel()
            self._transport.cancel(request.id)
            await asyncio.wait({task}, timeout=CANCEL_GRACE)
            self._fail(request, AnalysisTimeoutError(request.id, self._timeout), "timed_out")
            return

        if task.cancelled() or request.is_terminal:
            logger.info(f"분석 요청 취소됨: {request.id}")
            self._finish(request, "cancelled")
            return

        error = task.exception()
        if error is not None:
            if isinstance(error, Exception):
                self._fail(request, error)
                return
            raise error

        result = parse_analysis_response(task.result(), request.region_id, request.id)
        request.transition("succeeded")
        logger.info(f"분석 완료: {request.region_id} ({result.language})")

        waiter = self._waiters.get(request.id)
        if waiter is not None and not waiter.done():
            waiter.set_result(result)
        self.completed.emit(result)

    def _fail(
        self,
        request: AnalysisRequest,
        error: Exception,
        status: RequestStatus = "failed",
    ) -> None:
        if request.is_terminal:
            return
        request.transition(status)
        logger.error(f"분석 실패: {request.region_id} ({type(error).__name__}: {error})")

        waiter = self._waiters.get(request.id)
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)
        self.failed.emit(error, request.region_id)
        self.api_error.emit(describe_error(error))

    def _finish(self, request: AnalysisRequest, status: RequestStatus) -> None:
        if not request.is_terminal:
            request.transition(status)
        waiter = self._waiters.get(request.id)
        if waiter is not None and not waiter.done():
            if status == "cancelled":
                waiter.cancel()
            else:
                waiter.set_exception(RuntimeError(f"분석 요청 실패: {request.id}"))
