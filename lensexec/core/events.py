"""타입이 지정된 pub/sub 시그널

사용법:
    completed: Signal[[AnalysisResult]] = Signal("analysis-completed")
    unsubscribe = completed.connect(on_completed)
    completed.emit(result)

리스너는 0개 이상, emit은 fire-and-forget.
리스너 하나가 실패해도 로그만 남기고 나머지 리스너는 계속 호출한다.
"""

import logging
from collections.abc import Callable
from typing import Generic, ParamSpec

P = ParamSpec("P")

logger = logging.getLogger(__name__)


class Signal(Generic[P]):
    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[P, object]] = []

    def connect(self, listener: Callable[P, object]) -> Callable[[], None]:
        """리스너 등록. 반환된 함수를 호출하면 등록 해제."""
        self._listeners.append(listener)

        def disconnect() -> None:
            self.disconnect(listener)

        return disconnect

    def disconnect(self, listener: Callable[P, object]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, *args: P.args, **kwargs: P.kwargs) -> None:
        # emit 도중 connect/disconnect 되어도 이번 호출 대상은 고정
        for listener in list(self._listeners):
            try:
                listener(*args, **kwargs)
            except Exception:
                logger.exception(f"{self.name} 리스너 실행 실패: {listener!r}")

    def __len__(self) -> int:
        return len(self._listeners)
