"""영역 추적 레지스트리

탐지기는 매 프레임 새 Region을 만든다. 레지스트리는 이전 프레임 영역과 IoU로 매칭해
같은 영역이면 기존 ID를 유지한다. 다른 컴포넌트는 ID로만 영역을 조회한다.
"""

import logging

from lensexec.core.events import Signal
from lensexec.schemas.region import Region

logger = logging.getLogger(__name__)


class RegionRegistry:
    def __init__(self, iou_threshold: float = 0.5, stale_after: float = 1.0) -> None:
        self._iou_threshold = iou_threshold
        self._stale_after = stale_after
        self._regions: dict[str, Region] = {}

        self.updated: Signal[[Region]] = Signal("region-updated")
        self.removed: Signal[[str]] = Signal("region-removed")

    def get(self, region_id: str) -> Region | None:
        return self._regions.get(region_id)

    def __contains__(self, region_id: object) -> bool:
        return region_id in self._regions

    def __len__(self) -> int:
        return len(self._regions)

    def snapshot(self) -> list[Region]:
        return [region.model_copy(deep=True) for region in self._regions.values()]

    def observe(self, detected: list[Region], now: float) -> list[Region]:
        """탐지 결과를 등록된 영역과 매칭

        Returns:
            추적 중인 Region 목록 (탐지 순서 유지). 매칭된 영역은 기존 객체가 반환된다.
        """
        matched: set[str] = set()
        tracked: list[Region] = []

        for candidate in detected:
            existing = self._best_match(candidate, matched)
            if existing is None:
                candidate.detected_at = now
                candidate.record_position(now)
                self._regions[candidate.id] = candidate
                matched.add(candidate.id)
                tracked.append(candidate)
                logger.debug(f"새 영역 추적 시작: {candidate.id}")
                continue

            moved = existing.bbox != candidate.bbox
            existing.bbox = candidate.bbox
            existing.confidence = candidate.confidence
            existing.detected_at = now
            existing.record_position(now)
            matched.add(existing.id)
            tracked.append(existing)
            if moved:
                self.updated.emit(existing)

        return tracked

    def evict_stale(self, now: float) -> list[str]:
        """stale_after 동안 보이지 않은 영역 제거"""
        stale = [
            region_id
            for region_id, region in self._regions.items()
            if now - region.detected_at > self._stale_after
        ]
        for region_id in stale:
            self.remove(region_id)
        return stale

    def remove(self, region_id: str) -> bool:
        if self._regions.pop(region_id, None) is None:
            return False
        logger.debug(f"영역 제거: {region_id}")
        self.removed.emit(region_id)
        return True

    def clear(self) -> None:
        for region_id in list(self._regions):
            self.remove(region_id)

    def _best_match(self, candidate: Region, taken: set[str]) -> Region | None:
        best: Region | None = None
        best_iou = self._iou_threshold
        for region in self._regions.values():
            if region.id in taken:
                continue
            iou = region.bbox.iou(candidate.bbox)
            if iou >= best_iou:
                best, best_iou = region, iou
        return best
