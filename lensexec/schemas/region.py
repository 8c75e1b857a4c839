"""영역 데이터 모델

Detection → Extraction → Dispatch 전체에서 사용하는 공통 스키마.
모든 좌표는 프레임 기준 절대 좌표(px).
"""

import math
import time
import uuid
from typing import Self

from pydantic import BaseModel, Field, model_validator

from lensexec.constants import Limits, RegionId


def generate_region_id() -> str:
    return f"{RegionId.PREFIX}{uuid.uuid4().hex[:8]}"


class BBox(BaseModel):
    """바운딩 박스 (x, y, width, height)

    유효성:
    - width, height는 0 이상
    - 음수 원점은 0으로 클램핑
    """

    x: float
    y: float
    width: float
    height: float

    @model_validator(mode="after")
    def validate_and_normalize(self) -> Self:
        """좌표 유효성 검증 및 정규화"""
        for name in ("x", "y", "width", "height"):
            value = getattr(self, name)
            if math.isnan(value) or math.isinf(value):
                raise ValueError(f"{name} is NaN or Inf")

        if self.width < 0 or self.height < 0:
            raise ValueError(f"BBox size must be non-negative, got {self.width}x{self.height}")

        self.x = max(0.0, self.x)
        self.y = max(0.0, self.y)
        return self

    def to_tuple(self) -> tuple[int, int, int, int]:
        """정수 (x1, y1, x2, y2) 튜플로 변환 (crop 등에 사용)"""
        return (
            round(self.x),
            round(self.y),
            round(self.x + self.width),
            round(self.y + self.height),
        )

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> tuple[float, float]:
        """중심점 (cx, cy)"""
        return (self.x + self.width / 2, self.y + self.height / 2)

    def iou(self, other: "BBox") -> float:
        """Intersection over Union (0.0 ~ 1.0)"""
        x1 = max(self.x, other.x)
        y1 = max(self.y, other.y)
        x2 = min(self.x + self.width, other.x + other.width)
        y2 = min(self.y + self.height, other.y + other.height)

        inter = max(0.0, x2 - x1) * max(0.0, y2 - y1)
        union = self.area + other.area - inter
        if union <= 0:
            return 0.0
        return inter / union


class Centroid(BaseModel):
    x: float
    y: float
    timestamp: float


class Region(BaseModel):
    """탐지된 후보 영역

    id는 탐지 시점에 생성되며, 이후 프레임에서 같은 영역으로 매칭되면 유지된다.
    extracted_text는 추출이 끝나기 전까지 빈 문자열.
    """

    id: str = Field(default_factory=generate_region_id)
    bbox: BBox
    confidence: float = Field(ge=0.0, le=1.0)
    extracted_text: str = ""
    detected_at: float = Field(default_factory=time.monotonic)
    history: list[Centroid] = Field(default_factory=list)

    def record_position(self, timestamp: float | None = None) -> None:
        """현재 bbox 중심을 history에 추가 (최대 Limits.REGION_HISTORY개 유지)"""
        cx, cy = self.bbox.center
        ts = time.monotonic() if timestamp is None else timestamp
        self.history.append(Centroid(x=cx, y=cy, timestamp=ts))
        if len(self.history) > Limits.REGION_HISTORY:
            del self.history[: len(self.history) - Limits.REGION_HISTORY]
