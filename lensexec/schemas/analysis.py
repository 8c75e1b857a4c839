"""분석 요청/결과 모델"""

import time
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from lensexec.constants import RequestId

Provider = Literal["openai", "anthropic", "google", "unknown"]

RequestStatus = Literal["queued", "dispatched", "succeeded", "failed", "timed_out", "cancelled"]

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset(
    {"succeeded", "failed", "timed_out", "cancelled"}
)


def generate_request_id() -> str:
    return f"{RequestId.PREFIX}{uuid.uuid4().hex[:8]}"


class InvalidTransitionError(Exception):
    def __init__(self, request_id: str, current: str, target: str):
        self.request_id = request_id
        super().__init__(f"잘못된 상태 전이: {request_id} {current} → {target}")


class AnalysisRequest(BaseModel):
    """dispatch 단위 작업

    queued → dispatched → {succeeded, failed, timed_out, cancelled} 중 하나로만 종료.
    """

    id: str = Field(default_factory=generate_request_id)
    region_id: str
    text: str
    image: bytes | None = None  # JPEG snapshot
    enqueued_at: float = Field(default_factory=time.monotonic)
    model: str
    provider: Provider
    status: RequestStatus = "queued"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, target: RequestStatus) -> None:
        """상태 전이 (종료 상태에서 다시 전이하면 InvalidTransitionError)"""
        if self.is_terminal:
            raise InvalidTransitionError(self.id, self.status, target)
        if target == "queued":
            raise InvalidTransitionError(self.id, self.status, target)
        if target == "dispatched" and self.status != "queued":
            raise InvalidTransitionError(self.id, self.status, target)
        self.status = target


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str = "logic"  # syntax | logic | style | security
    severity: str = "medium"  # low | medium | high
    line_number: int | None = None
    description: str
    suggested_fix: str | None = None


class Suggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str = "improvement"  # improvement | optimization | best-practice
    description: str
    line_number: int | None = None
    suggested_code: str | None = None


class SimulationSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    output: str = ""
    errors: tuple[str, ...] = ()
    execution_time: float = 0.0
    security_risks: tuple[str, ...] = ()


class AnalysisResult(BaseModel):
    """영역 하나에 대한 분석 결과 (생성 후 불변)"""

    model_config = ConfigDict(frozen=True)

    region_id: str
    request_id: str = ""
    language: str = "unknown"
    issues: tuple[Issue, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()
    simulation: SimulationSummary | None = None
    completed_at: float = Field(default_factory=time.time)
