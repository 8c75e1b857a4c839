"""ScanSession 테스트"""

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest

from lensexec.config import Settings
from lensexec.services.collaborators import CaptureError, Collaborators
from lensexec.services.session import ScanSession, get_session, set_session
from tests.fakes import FakeProvider


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


class TestScanSession:
    @pytest.fixture(autouse=True)
    def make_session(
        self, settings: Settings, collaborators: Collaborators, fake_provider: FakeProvider
    ) -> None:
        self.settings = settings
        self.collaborators = collaborators
        self.provider = fake_provider
        self.session = ScanSession(
            settings=settings,
            collaborators=collaborators,
            provider_factory=lambda model: fake_provider,
        )

    async def test_scan_produces_annotations(self) -> None:
        await self.session.start()
        try:
            await wait_until(lambda: len(self.session.annotations()) == 3)
            kinds = sorted(a.kind for a in self.session.annotations())
        finally:
            await self.session.stop()

        assert kinds == ["finding", "simulation", "suggestion"]
        assert len(self.provider.calls) >= 1
        assert self.session.annotations() == []

    async def test_status_while_scanning(self) -> None:
        await self.session.start()
        await wait_until(lambda: self.session.status().annotations.total == 3)

        status = self.session.status()
        assert status.scanning
        assert status.frames.frames_processed >= 1
        assert status.frames.regions_tracked == 1
        assert status.transport.is_online
        assert status.last_error is None

        await self.session.stop()
        status = self.session.status()
        assert not status.scanning
        assert status.annotations.total == 0
        assert status.frames.regions_tracked == 0

    async def test_start_twice_is_noop(self) -> None:
        await self.session.start()
        task = self.session._scan_task
        await self.session.start()

        assert self.session._scan_task is task
        await self.session.stop()

    async def test_capture_failure_propagates(self) -> None:
        failing_start = AsyncMock(side_effect=CaptureError("no camera"))
        self.collaborators.capture.start = failing_start  # type: ignore[method-assign]

        with pytest.raises(CaptureError):
            await self.session.start()

        assert not self.session.is_scanning

    async def test_api_error_recorded(self) -> None:
        self.provider.responses = [RuntimeError("boom")]

        await self.session.start()
        await wait_until(lambda: self.session.status().last_error is not None)
        await self.session.stop()

        assert self.session.status().last_error == "분석 서비스를 일시적으로 사용할 수 없습니다"

    async def test_connectivity(self) -> None:
        self.session.set_connectivity(False)
        assert not self.session.status().transport.is_online

        self.session.set_connectivity(True)
        assert self.session.status().transport.is_online

    async def test_probe_loop_runs_when_configured(self) -> None:
        settings = self.settings.model_copy(
            update={"connectivity_probe_url": "https://example.com"}
        )
        session = ScanSession(
            settings=settings,
            collaborators=self.collaborators,
            provider_factory=lambda model: self.provider,
        )
        probe = AsyncMock(return_value=True)
        session.transport.probe = probe  # type: ignore[method-assign]

        await session.start()
        await wait_until(lambda: probe.await_count >= 1)
        await session.dispose()

        probe.assert_awaited_with("https://example.com")

    async def test_dispose(self) -> None:
        await self.session.start()
        await self.session.dispose()

        assert not self.session.is_scanning
        assert len(self.session.dispatcher.completed) == 0


class TestSessionHolder:
    def teardown_method(self) -> None:
        set_session(None)

    def test_set_session_overrides(self, settings: Settings, collaborators: Collaborators) -> None:
        session = ScanSession(settings=settings, collaborators=collaborators)
        set_session(session)
        assert get_session() is session
