"""분석 결과 → Annotation 배치

영역별로 annotation 그룹을 하나만 유지한다. 같은 영역의 새 결과가 오면 이전 그룹을 먼저 제거.
영역은 RegionRegistry에서 ID로 조회하며, 영역이 사라졌으면 결과를 버린다.
"""

import logging
from collections import Counter
from collections.abc import Callable

from lensexec.constants import Placement as Offsets
from lensexec.schemas.analysis import AnalysisResult, Issue, Suggestion
from lensexec.schemas.annotation import (
    Annotation,
    AnnotationContent,
    AnnotationKind,
    Placement,
    annotation_id,
)
from lensexec.schemas.base import BaseSchema
from lensexec.schemas.region import BBox, Region
from lensexec.services.collaborators.base import Presenter
from lensexec.services.dispatcher import AnalysisDispatcher
from lensexec.services.tracking import RegionRegistry

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "high": "#F44336",
    "medium": "#FF9800",
    "low": "#FFC107",
}
DEFAULT_FINDING_COLOR = "#FF5722"
SUGGESTION_COLOR = "#4CAF50"
SIMULATION_COLOR = "#2196F3"

FINDING_FONT_SIZE = 14
DEFAULT_FONT_SIZE = 12


class AnnotationStats(BaseSchema):
    total: int
    visible: int
    by_kind: dict[str, int]


def anchor_position(bbox: BBox, viewport: tuple[int, int]) -> tuple[float, float]:
    """bbox 중심 → presenter 좌표 (정규화 [-1, 1], y 반전, SCALE 배)"""
    width, height = viewport
    cx, cy = bbox.center
    nx = (cx / width) * 2 - 1
    ny = -((cy / height) * 2 - 1)
    return nx * Offsets.SCALE, ny * Offsets.SCALE


def finding_offset(index: int) -> float:
    return Offsets.FINDING_OFFSET + index * Offsets.STACK_STEP


def suggestion_offset(index: int) -> float:
    return Offsets.SUGGESTION_OFFSET - index * Offsets.STACK_STEP


def simulation_offset(suggestion_count: int) -> float:
    """마지막 suggestion 아래"""
    last = max(suggestion_count - 1, 0)
    return suggestion_offset(last) + Offsets.SIMULATION_GAP


def finding_color(severity: str) -> str:
    return SEVERITY_COLORS.get(severity, DEFAULT_FINDING_COLOR)


class AnnotationTracker:
    def __init__(
        self,
        presenter: Presenter,
        registry: RegionRegistry,
        viewport: tuple[int, int],
    ) -> None:
        self._presenter = presenter
        self._registry = registry
        self._viewport = viewport

        self._annotations: dict[str, Annotation] = {}
        self._offsets: dict[str, float] = {}
        self._groups: dict[str, list[str]] = {}
        self._subscriptions: list[Callable[[], None]] = []

    def attach(self, dispatcher: AnalysisDispatcher) -> None:
        """디스패처/레지스트리 시그널 구독"""
        self.detach()
        self._subscriptions = [
            dispatcher.completed.connect(self.on_completed),
            dispatcher.failed.connect(self.on_failed),
            self._registry.updated.connect(self.on_region_updated),
            self._registry.removed.connect(self.remove_for_region),
        ]

    def detach(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []

    def on_completed(self, result: AnalysisResult) -> None:
        self.remove_for_region(result.region_id)

        region = self._registry.get(result.region_id)
        if region is None:
            logger.info(f"영역이 사라져 분석 결과 폐기: {result.region_id}")
            return

        for annotation, offset in self._build_group(result):
            placement = self._place(region, offset)
            annotation = annotation.model_copy(update={"placement": placement})
            self._annotations[annotation.id] = annotation
            self._offsets[annotation.id] = offset
            self._groups.setdefault(region.id, []).append(annotation.id)
            self._presenter.present(annotation)

        count = len(self._groups.get(region.id, []))
        logger.debug(f"Annotation 표시: {region.id} ({count}개)")

    def on_failed(self, error: Exception, region_id: str) -> None:
        # 실패한 영역의 이전 annotation은 유지
        logger.warning(f"분석 실패로 annotation 갱신 안 함: {region_id} ({type(error).__name__})")

    def on_region_updated(self, region: Region) -> None:
        for ann_id in self._groups.get(region.id, []):
            placement = self._place(region, self._offsets[ann_id])
            self._annotations[ann_id] = self._annotations[ann_id].model_copy(
                update={"placement": placement}
            )
            self._presenter.update(ann_id, placement)

    def remove_for_region(self, region_id: str) -> None:
        for ann_id in self._groups.pop(region_id, []):
            self._annotations.pop(ann_id, None)
            self._offsets.pop(ann_id, None)
            self._presenter.dispose(ann_id)

    def clear_all(self) -> None:
        for region_id in list(self._groups):
            self.remove_for_region(region_id)
        logger.info("Annotation 전체 제거")

    def set_visible(self, ann_id: str, visible: bool) -> bool:
        annotation = self._annotations.get(ann_id)
        if annotation is None:
            return False
        annotation = annotation.model_copy(update={"visible": visible})
        self._annotations[ann_id] = annotation
        self._presenter.present(annotation)
        return True

    def annotations(self) -> list[Annotation]:
        return list(self._annotations.values())

    def stats(self) -> AnnotationStats:
        values = self._annotations.values()
        return AnnotationStats(
            total=len(self._annotations),
            visible=sum(1 for a in values if a.visible),
            by_kind=dict(Counter(a.kind for a in values)),
        )

    def _place(self, region: Region, offset: float) -> Placement:
        x, y = anchor_position(region.bbox, self._viewport)
        return Placement(x=x, y=y + offset, z=Offsets.DEPTH)

    def _build_group(self, result: AnalysisResult) -> list[tuple[Annotation, float]]:
        group: list[tuple[Annotation, float]] = []

        for i, issue in enumerate(result.issues):
            group.append((self._finding(result.region_id, i, issue), finding_offset(i)))

        for i, suggestion in enumerate(result.suggestions):
            group.append((self._suggestion(result.region_id, i, suggestion), suggestion_offset(i)))

        if result.simulation is not None:
            annotation = self._annotation(
                result.region_id,
                "simulation",
                0,
                AnnotationContent(
                    text=f"Output: {result.simulation.output}",
                    color=SIMULATION_COLOR,
                    font_size=DEFAULT_FONT_SIZE,
                ),
            )
            group.append((annotation, simulation_offset(len(result.suggestions))))

        return group

    def _finding(self, region_id: str, index: int, issue: Issue) -> Annotation:
        content = AnnotationContent(
            text=issue.description,
            color=finding_color(issue.severity),
            font_size=FINDING_FONT_SIZE,
        )
        return self._annotation(region_id, "finding", index, content)

    def _suggestion(self, region_id: str, index: int, suggestion: Suggestion) -> Annotation:
        content = AnnotationContent(
            text=suggestion.description,
            color=SUGGESTION_COLOR,
            font_size=DEFAULT_FONT_SIZE,
        )
        return self._annotation(region_id, "suggestion", index, content)

    @staticmethod
    def _annotation(
        region_id: str, kind: AnnotationKind, index: int, content: AnnotationContent
    ) -> Annotation:
        # placement는 배치 단계에서 채움
        return Annotation(
            id=annotation_id(region_id, kind, index),
            kind=kind,
            region_id=region_id,
            placement=Placement(x=0.0, y=0.0, z=Offsets.DEPTH),
            content=content,
        )
