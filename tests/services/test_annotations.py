"""AnnotationTracker 테스트"""

from unittest.mock import MagicMock

import pytest

from lensexec.schemas.analysis import AnalysisResult, Issue, SimulationSummary, Suggestion
from lensexec.schemas.region import BBox
from lensexec.services.annotations import (
    AnnotationTracker,
    anchor_position,
    finding_color,
    simulation_offset,
)
from lensexec.services.collaborators.memory_presenter import InMemoryPresenter
from lensexec.services.dispatcher import AnalysisDispatcher
from lensexec.services.tracking import RegionRegistry
from lensexec.services.transport import ResilientTransport
from tests.fakes import make_region

VIEWPORT = (640, 480)


def make_result(region_id: str, issues: int = 1, suggestions: int = 1) -> AnalysisResult:
    return AnalysisResult(
        region_id=region_id,
        language="python",
        issues=tuple(
            Issue(severity="high", description=f"issue {i}") for i in range(issues)
        ),
        suggestions=tuple(Suggestion(description=f"suggestion {i}") for i in range(suggestions)),
        simulation=SimulationSummary(output="42"),
    )


class TestPlacementHelpers:
    def test_anchor_position(self) -> None:
        x, y = anchor_position(BBox(x=100, y=100, width=300, height=60), VIEWPORT)
        assert x == pytest.approx(-0.65625)
        assert y == pytest.approx(1.375)

    def test_anchor_center_of_frame(self) -> None:
        x, y = anchor_position(BBox(x=270, y=190, width=100, height=100), VIEWPORT)
        assert (x, y) == pytest.approx((0.0, 0.0))

    def test_simulation_below_last_suggestion(self) -> None:
        assert simulation_offset(0) == pytest.approx(-0.4)
        assert simulation_offset(1) == pytest.approx(-0.4)
        assert simulation_offset(3) == pytest.approx(-0.6)

    def test_finding_colors(self) -> None:
        assert finding_color("high") == "#F44336"
        assert finding_color("medium") == "#FF9800"
        assert finding_color("low") == "#FFC107"
        assert finding_color("critical") == "#FF5722"


class TestAnnotationTracker:
    def setup_method(self) -> None:
        self.presenter = InMemoryPresenter()
        self.registry = RegionRegistry()
        self.tracker = AnnotationTracker(self.presenter, self.registry, VIEWPORT)
        self.region = make_region(x=100, y=100, width=300, height=60)
        self.registry.observe([self.region], now=0.0)

    def test_completed_presents_group(self) -> None:
        self.tracker.on_completed(make_result(self.region.id))

        annotations = {a.id: a for a in self.presenter.annotations()}
        assert set(annotations) == {
            f"{self.region.id}:finding:0",
            f"{self.region.id}:suggestion:0",
            f"{self.region.id}:simulation:0",
        }

        finding = annotations[f"{self.region.id}:finding:0"]
        assert finding.region_id == self.region.id
        assert finding.content.color == "#F44336"
        assert finding.placement.y == pytest.approx(1.575)
        assert finding.placement.z == -2.0

        suggestion = annotations[f"{self.region.id}:suggestion:0"]
        assert suggestion.content.color == "#4CAF50"
        assert suggestion.placement.y == pytest.approx(1.175)

        simulation = annotations[f"{self.region.id}:simulation:0"]
        assert simulation.content.text == "Output: 42"
        assert simulation.placement.y == pytest.approx(0.975)

    def test_stacked_items(self) -> None:
        self.tracker.on_completed(make_result(self.region.id, issues=2, suggestions=2))

        annotations = {a.id: a for a in self.presenter.annotations()}
        first = annotations[f"{self.region.id}:finding:0"].placement.y
        second = annotations[f"{self.region.id}:finding:1"].placement.y
        assert second - first == pytest.approx(0.1)

        last_suggestion = annotations[f"{self.region.id}:suggestion:1"].placement.y
        simulation = annotations[f"{self.region.id}:simulation:0"].placement.y
        assert last_suggestion - simulation == pytest.approx(0.2)

    def test_second_delivery_replaces_group(self) -> None:
        self.tracker.on_completed(make_result(self.region.id, issues=3, suggestions=2))
        self.tracker.on_completed(make_result(self.region.id, issues=1, suggestions=1))

        ids = sorted(a.id for a in self.presenter.annotations())
        assert len(ids) == 3
        assert len(ids) == len(set(ids))
        assert self.tracker.stats().total == 3

    def test_result_for_missing_region_dropped(self) -> None:
        self.tracker.on_completed(make_result("region_deadbeef"))

        assert self.presenter.annotations() == []
        assert self.tracker.stats().total == 0

    def test_region_update_moves_annotations(self) -> None:
        self.tracker.on_completed(make_result(self.region.id))
        presenter = MagicMock()
        self.tracker._presenter = presenter

        self.region.bbox = BBox(x=270, y=190, width=100, height=100)
        self.tracker.on_region_updated(self.region)

        assert presenter.update.call_count == 3
        moved = {c.args[0]: c.args[1] for c in presenter.update.call_args_list}
        assert moved[f"{self.region.id}:finding:0"].y == pytest.approx(0.2)
        assert moved[f"{self.region.id}:finding:0"].x == pytest.approx(0.0)

    def test_remove_for_region(self) -> None:
        other = make_region(x=0, y=300, width=200, height=50)
        self.registry.observe([self.region, other], now=0.1)
        self.tracker.on_completed(make_result(self.region.id))
        self.tracker.on_completed(make_result(other.id))

        self.tracker.remove_for_region(self.region.id)

        assert {a.region_id for a in self.presenter.annotations()} == {other.id}

    def test_clear_all(self) -> None:
        self.tracker.on_completed(make_result(self.region.id))

        self.tracker.clear_all()

        assert len(self.presenter) == 0
        assert self.tracker.annotations() == []

    def test_set_visible(self) -> None:
        self.tracker.on_completed(make_result(self.region.id))
        ann_id = f"{self.region.id}:finding:0"

        assert self.tracker.set_visible(ann_id, False)
        assert not self.tracker.set_visible("missing", False)

        stats = self.tracker.stats()
        assert stats.visible == 2
        assert stats.by_kind == {"finding": 1, "suggestion": 1, "simulation": 1}

    def test_attach_subscribes_to_signals(self) -> None:
        dispatcher = AnalysisDispatcher(ResilientTransport(), provider_factory=MagicMock())
        self.tracker.attach(dispatcher)

        dispatcher.completed.emit(make_result(self.region.id))
        assert self.tracker.stats().total == 3

        self.registry.remove(self.region.id)
        assert self.tracker.stats().total == 0

        self.tracker.detach()
        assert len(dispatcher.completed) == 0

    def test_failed_keeps_previous_group(self) -> None:
        self.tracker.on_completed(make_result(self.region.id))
        self.tracker.on_failed(RuntimeError("boom"), self.region.id)
        assert self.tracker.stats().total == 3
