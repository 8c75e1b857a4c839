"""연결 상태 기반 재시도 전송 계층

네트워크 오류(또는 오프라인 상태)로 실패한 작업을 바로 실패 처리하지 않고
재시도 큐에 넣어 지수 백오프 + jitter로 다시 실행한다.

- 오프라인: 즉시 큐에 넣고 대기 핸들(Future) 반환
- 온라인: 바로 실행, 네트워크 오류면 큐에 넣고 대기, 그 외 오류는 즉시 전파
- 온라인 전환 시 / 재시도 실패 후 큐 처리
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from lensexec.constants import Backoff, Limits
from lensexec.core.events import Signal
from lensexec.schemas.base import BaseSchema

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 최소 목록. 새로운 오류 메시지에 대해 완전하지 않음
NETWORK_ERROR_MARKERS = ("network", "fetch", "disconnected", "timeout", "connection")


class TransportError(Exception):
    retryable: bool | None = None


class NetworkError(TransportError):
    """재시도 대상 네트워크 오류"""

    retryable = True


class RetryExhaustedError(TransportError):
    retryable = False

    def __init__(self, op_id: str):
        self.op_id = op_id
        super().__init__(f"max retries exceeded: {op_id}")


class RetryQueueClearedError(TransportError):
    retryable = False

    def __init__(self, op_id: str):
        self.op_id = op_id
        super().__init__(f"retry queue cleared: {op_id}")


def is_network_error(error: BaseException | None) -> bool:
    """네트워크 오류 여부 판별

    오류가 retryable 속성을 가지면 그 값을 따르고, 그렇지 않으면
    오류 클래스 이름 + 메시지에 NETWORK_ERROR_MARKERS 중 하나가 포함되면 네트워크 오류로 본다.
    """
    if error is None:
        return False
    retryable = getattr(error, "retryable", None)
    if isinstance(retryable, bool):
        return retryable
    if isinstance(error, (httpx.TransportError, TimeoutError)):
        return True

    text = f"{type(error).__name__} {error}".lower()
    return any(marker in text for marker in NETWORK_ERROR_MARKERS)


def calc_backoff_delay(
    attempt: int,
    base: float = Backoff.BASE,
    cap: float = Backoff.CAP,
) -> float:
    """지수 백오프 지연 (초)

    min(base * 2^(attempt-1), cap)에 최대 10% jitter를 더한다.
    """
    if attempt < 1:
        raise ValueError(f"attempt는 1 이상이어야 합니다: {attempt}")
    delay = min(base * 2 ** (attempt - 1), cap)
    return delay + random.uniform(0, Backoff.JITTER_RATIO * delay)


@dataclass
class RetryableOperation:
    id: str
    operation: Callable[[], Awaitable[Any]]
    future: "asyncio.Future[Any]"
    max_retries: int = Limits.MAX_RETRIES
    retry_count: int = 0
    attempt: "asyncio.Future[Any] | None" = None


class TransportStatus(BaseSchema):
    is_online: bool
    queue_length: int
    retrying: bool


class ResilientTransport:
    def __init__(
        self,
        base_delay: float = Backoff.BASE,
        max_delay: float = Backoff.CAP,
        online: bool = True,
    ) -> None:
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._is_online = online
        self._queue: dict[str, RetryableOperation] = {}
        self._retry_task: asyncio.Task[None] | None = None

        self.online: Signal[[]] = Signal("connectivity-online")
        self.offline: Signal[[]] = Signal("connectivity-offline")

    @property
    def is_online(self) -> bool:
        return self._is_online

    def set_online(self) -> None:
        if self._is_online:
            return
        self._is_online = True
        logger.info("네트워크 연결 복구")
        self.online.emit()
        self._schedule_retry()

    def set_offline(self) -> None:
        if not self._is_online:
            return
        self._is_online = False
        logger.warning("네트워크 연결 끊김 - 요청은 재시도 큐에 보관")
        self.offline.emit()

    async def perform(
        self,
        op_id: str,
        operation: Callable[[], Awaitable[T]],
        max_retries: int = Limits.MAX_RETRIES,
    ) -> T:
        """네트워크 작업 실행

        Raises:
            RetryExhaustedError: 재시도 횟수 초과
            RetryQueueClearedError: 대기 중 clear() 호출
            Exception: 네트워크 오류가 아닌 operation 예외 (재시도 없이 그대로)
        """
        if not self._is_online:
            logger.info(f"오프라인 상태 - 재시도 큐에 추가: {op_id}")
            return await self._enqueue(op_id, operation, max_retries)

        try:
            return await operation()
        except Exception as e:
            if not is_network_error(e):
                raise
            logger.warning(f"네트워크 오류 - 재시도 큐에 추가: {op_id} ({e})")
            return await self._enqueue(op_id, operation, max_retries)

    def cancel(self, op_id: str) -> bool:
        """대기 중인 작업 취소 (진행 중인 재시도 호출 포함)"""
        op = self._queue.pop(op_id, None)
        if op is None:
            return False
        if op.attempt is not None:
            op.attempt.cancel()
        op.future.cancel()
        logger.debug(f"재시도 작업 취소: {op_id}")
        return True

    def clear(self) -> None:
        """큐의 모든 작업을 RetryQueueClearedError로 종료"""
        for op in list(self._queue.values()):
            if op.attempt is not None:
                op.attempt.cancel()
            if not op.future.done():
                op.future.set_exception(RetryQueueClearedError(op.id))
        self._queue.clear()

        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None

    def status(self) -> TransportStatus:
        return TransportStatus(
            is_online=self._is_online,
            queue_length=len(self._queue),
            retrying=self._retry_task is not None and not self._retry_task.done(),
        )

    async def probe(self, url: str, timeout: float = 5.0) -> bool:
        """URL에 HEAD 요청을 보내 연결 상태 갱신 (응답 코드와 무관하게 응답이 오면 온라인)"""
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                await client.head(url)
        except httpx.TransportError as e:
            logger.debug(f"연결 확인 실패: {url} ({e})")
            self.set_offline()
            return False

        self.set_online()
        return True

    def _enqueue(
        self,
        op_id: str,
        operation: Callable[[], Awaitable[T]],
        max_retries: int,
    ) -> "asyncio.Future[T]":
        existing = self._queue.get(op_id)
        if existing is not None and not existing.future.done():
            # 같은 논리 작업은 큐에 하나만 유지
            return existing.future

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._queue[op_id] = RetryableOperation(
            id=op_id,
            operation=operation,
            future=future,
            max_retries=max_retries,
        )
        logger.debug(f"재시도 큐 추가: {op_id} (큐 길이: {len(self._queue)})")
        self._schedule_retry()
        return future

    def _schedule_retry(self) -> None:
        if not self._is_online or not self._queue:
            return
        if self._retry_task is not None and not self._retry_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("실행 중인 이벤트 루프 없음 - 다음 호출 때 재시도 큐 처리")
            return
        self._retry_task = loop.create_task(self._process_retry_queue())

    async def _process_retry_queue(self) -> None:
        logger.info(f"재시도 큐 처리 시작: {len(self._queue)}개")

        while self._is_online and self._queue:
            for op in list(self._queue.values()):
                if not self._is_online:
                    return
                if op.id not in self._queue:
                    continue
                if op.future.done():
                    # 호출자가 이미 사라짐 (취소)
                    self._queue.pop(op.id, None)
                    continue
                if op.retry_count >= op.max_retries:
                    logger.warning(f"재시도 횟수 초과: {op.id}")
                    self._reject(op, RetryExhaustedError(op.id))
                    continue

                await self._retry_once(op)

    async def _retry_once(self, op: RetryableOperation) -> None:
        op.retry_count += 1
        delay = calc_backoff_delay(op.retry_count, self._base_delay, self._max_delay)
        await asyncio.sleep(delay)

        if op.future.done() or op.id not in self._queue:
            self._queue.pop(op.id, None)
            return
        if not self._is_online:
            op.retry_count -= 1
            return

        logger.debug(f"재시도 {op.id} ({op.retry_count}/{op.max_retries})")
        op.attempt = asyncio.ensure_future(op.operation())
        try:
            result = await op.attempt
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # cancel(op_id)로 시도만 취소됨
            return
        except Exception as e:
            if not is_network_error(e):
                logger.error(f"재시도 중 복구 불가 오류: {op.id} ({e})")
                self._reject(op, e)
            elif op.retry_count >= op.max_retries:
                logger.warning(f"재시도 횟수 초과: {op.id} ({e})")
                exhausted = RetryExhaustedError(op.id)
                exhausted.__cause__ = e
                self._reject(op, exhausted)
            else:
                logger.warning(f"재시도 실패: {op.id} ({e})")
            return
        finally:
            op.attempt = None

        self._queue.pop(op.id, None)
        if not op.future.done():
            op.future.set_result(result)

    def _reject(self, op: RetryableOperation, error: BaseException) -> None:
        self._queue.pop(op.id, None)
        if not op.future.done():
            op.future.set_exception(error)
