"""스캔 세션

Transport, Dispatcher, RegionRegistry, FrameScheduler, AnnotationTracker를 연결하고
스캔 루프와 연결 확인 루프의 백그라운드 태스크를 소유한다.

사용법:
    session = get_session()
    await session.start()
    ...
    await session.stop()
"""

import asyncio
import logging
from collections.abc import Callable

from lensexec.config import Settings, get_settings
from lensexec.schemas.annotation import Annotation
from lensexec.schemas.base import BaseSchema
from lensexec.services.analysis import AnalysisProvider, get_provider
from lensexec.services.annotations import AnnotationStats, AnnotationTracker
from lensexec.services.collaborators import Collaborators, get_collaborators
from lensexec.services.dispatcher import AnalysisDispatcher, DispatcherStatus
from lensexec.services.scheduler import FrameScheduler, FrameStats
from lensexec.services.tracking import RegionRegistry
from lensexec.services.transport import ResilientTransport, TransportStatus

logger = logging.getLogger(__name__)


class SessionStatus(BaseSchema):
    scanning: bool
    frames: FrameStats
    dispatcher: DispatcherStatus
    transport: TransportStatus
    annotations: AnnotationStats
    last_error: str | None = None


class ScanSession:
    def __init__(
        self,
        settings: Settings | None = None,
        collaborators: Collaborators | None = None,
        provider_factory: Callable[[str], AnalysisProvider] = get_provider,
    ) -> None:
        self._settings = settings or get_settings()
        self._collaborators = collaborators or get_collaborators()

        self.transport = ResilientTransport(
            base_delay=self._settings.backoff_base,
            max_delay=self._settings.backoff_cap,
        )
        self.dispatcher = AnalysisDispatcher(
            self.transport,
            provider_factory=provider_factory,
            timeout=self._settings.llm_timeout,
            max_retries=self._settings.retry_max,
        )
        self.registry = RegionRegistry(
            iou_threshold=self._settings.tracking_iou_threshold,
            stale_after=self._settings.region_stale_after,
        )
        self.scheduler = FrameScheduler(
            self._collaborators.capture,
            self._collaborators.detector,
            self._collaborators.extractor,
            self.dispatcher,
            self.registry,
            settings=self._settings,
        )
        self.tracker = AnnotationTracker(
            self._collaborators.presenter,
            self.registry,
            viewport=(self._settings.camera_width, self._settings.camera_height),
        )
        self.tracker.attach(self.dispatcher)

        self._last_error: str | None = None
        self._scan_task: asyncio.Task[None] | None = None
        self._probe_task: asyncio.Task[None] | None = None

        self.dispatcher.api_error.connect(self._on_api_error)
        self.transport.online.connect(lambda: logger.info("네트워크 연결됨"))
        self.transport.offline.connect(lambda: logger.warning("네트워크 연결 끊김"))

    @property
    def is_scanning(self) -> bool:
        return self._scan_task is not None and not self._scan_task.done()

    async def start(self) -> None:
        """카메라 시작 + 스캔 루프 시작 (이미 스캔 중이면 무시)

        Raises:
            CaptureError: 카메라를 열 수 없음
        """
        if self.is_scanning:
            return

        await self._collaborators.capture.start()
        self._last_error = None
        self.scheduler.reset()

        loop = asyncio.get_running_loop()
        self._scan_task = loop.create_task(self.scheduler.run())
        if self._settings.connectivity_probe_url:
            probe = self._probe_loop(self._settings.connectivity_probe_url)
            self._probe_task = loop.create_task(probe)
        logger.info("스캔 시작")

    async def stop(self) -> None:
        """스캔 중지: 대기/진행 중 분석 취소, annotation 및 추적 영역 정리"""
        self.scheduler.stop()
        for task in (self._scan_task, self._probe_task):
            if task is not None and not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._scan_task = None
        self._probe_task = None

        self.dispatcher.cancel_all()
        self.tracker.clear_all()
        self.registry.clear()
        await self._collaborators.capture.stop()
        logger.info("스캔 중지")

    def set_connectivity(self, online: bool) -> None:
        if online:
            self.transport.set_online()
        else:
            self.transport.set_offline()

    def annotations(self) -> list[Annotation]:
        return self.tracker.annotations()

    def status(self) -> SessionStatus:
        return SessionStatus(
            scanning=self.is_scanning,
            frames=self.scheduler.stats(),
            dispatcher=self.dispatcher.status(),
            transport=self.transport.status(),
            annotations=self.tracker.stats(),
            last_error=self._last_error,
        )

    async def dispose(self) -> None:
        await self.stop()
        await self.dispatcher.dispose()
        self.transport.clear()
        self.tracker.detach()

    async def _probe_loop(self, url: str) -> None:
        while True:
            await self.transport.probe(url)
            await asyncio.sleep(self._settings.connectivity_probe_interval)

    def _on_api_error(self, message: str) -> None:
        self._last_error = message


class _SessionHolder:
    session: ScanSession | None = None


def get_session() -> ScanSession:
    if _SessionHolder.session is None:
        _SessionHolder.session = ScanSession()
    return _SessionHolder.session


async def close_session() -> None:
    if _SessionHolder.session is not None:
        await _SessionHolder.session.dispose()
        _SessionHolder.session = None


def set_session(session: ScanSession | None) -> None:
    _SessionHolder.session = session
