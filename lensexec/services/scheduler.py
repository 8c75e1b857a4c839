"""프레임 스케줄러

tick마다 Capture → Detection → 영역 추적 → 필터 → Extraction → Dispatch 순서로 실행.
분석 결과는 기다리지 않는다 (dispatcher.enqueue).
"""

import asyncio
import io
import logging
import time
from collections.abc import Callable

import cv2
from PIL import Image

from lensexec.config import Settings, get_settings
from lensexec.schemas.analysis import AnalysisRequest
from lensexec.schemas.base import BaseSchema
from lensexec.schemas.region import BBox, Region
from lensexec.services.analysis import resolve_provider
from lensexec.services.collaborators.base import Capture, Detector, Extractor, Frame
from lensexec.services.dispatcher import AnalysisDispatcher
from lensexec.services.tracking import RegionRegistry

logger = logging.getLogger(__name__)

JPEG_QUALITY = 85


class FrameStats(BaseSchema):
    frames_processed: int
    fps: float
    regions_tracked: int


def select_candidates(regions: list[Region], threshold: float, limit: int) -> list[Region]:
    """신뢰도 threshold 이상인 영역 중 앞에서부터 limit개 (탐지 순서 유지)"""
    return [r for r in regions if r.confidence >= threshold][:limit]


def encode_region_jpeg(frame: Frame, bbox: BBox, quality: int = JPEG_QUALITY) -> bytes | None:
    """영역 crop을 JPEG bytes로 변환 (빈 crop이면 None)"""
    x1, y1, x2, y2 = bbox.to_tuple()
    crop = frame[y1:y2, x1:x2]
    if crop.size == 0:
        return None

    rgb = cv2.cvtColor(crop, cv2.COLOR_BGR2RGB) if crop.ndim == 3 else crop
    buffer = io.BytesIO()
    Image.fromarray(rgb).save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


class FrameScheduler:
    def __init__(
        self,
        capture: Capture,
        detector: Detector,
        extractor: Extractor,
        dispatcher: AnalysisDispatcher,
        registry: RegionRegistry,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capture = capture
        self._detector = detector
        self._extractor = extractor
        self._dispatcher = dispatcher
        self._registry = registry
        self._settings = settings or get_settings()
        self._clock = clock

        self._last_tick: float | None = None
        self._last_dispatched: dict[str, str] = {}
        self._running = False

        self._frames_processed = 0
        self._fps = 0.0
        self._fps_window_start: float | None = None
        self._fps_window_frames = 0

        registry.removed.connect(self._forget_region)

    @property
    def is_running(self) -> bool:
        return self._running

    async def tick(self, now: float) -> None:
        interval = self._settings.frame_interval
        if self._last_tick is not None and now - self._last_tick < interval:
            return
        self._last_tick = now

        frame = self._capture.get_current_frame()
        if frame is None:
            return

        self._count_frame(now)

        try:
            detected = await self._detector.detect(frame)
        except Exception:
            logger.exception("영역 탐지 실패")
            detected = []

        tracked = self._registry.observe(detected, now)
        candidates = select_candidates(
            tracked,
            self._settings.confidence_threshold,
            self._settings.max_regions_per_frame,
        )

        for region in candidates:
            await self._process_region(region, frame)

        self._registry.evict_stale(now)

    async def run(self) -> None:
        """stop() 전까지 frame_interval 간격으로 tick 반복"""
        self._running = True
        logger.info("프레임 스케줄러 시작")
        try:
            while self._running:
                try:
                    await self.tick(self._clock())
                except Exception:
                    logger.exception("tick 처리 실패")
                await asyncio.sleep(self._settings.frame_interval)
        finally:
            self._running = False
            logger.info("프레임 스케줄러 정지")

    def stop(self) -> None:
        self._running = False

    def reset(self) -> None:
        """throttle/중복 제거 상태 초기화 (스캔 재시작 시)"""
        self._last_tick = None
        self._last_dispatched.clear()

    def stats(self) -> FrameStats:
        return FrameStats(
            frames_processed=self._frames_processed,
            fps=round(self._fps, 1),
            regions_tracked=len(self._registry),
        )

    async def _process_region(self, region: Region, frame: Frame) -> None:
        try:
            text = await self._extractor.extract(region, frame)
        except Exception:
            logger.exception(f"텍스트 추출 실패: {region.id}")
            return

        region.extracted_text = text
        code = text.strip()
        if len(code) <= self._settings.min_text_length:
            return

        if self._settings.dedupe_unchanged_text and self._last_dispatched.get(region.id) == code:
            return

        image = encode_region_jpeg(frame, region.bbox) if self._settings.attach_snapshot else None
        model = self._settings.llm_model
        request = AnalysisRequest(
            region_id=region.id,
            text=code,
            image=image,
            model=model,
            provider=resolve_provider(model),
        )
        self._last_dispatched[region.id] = code
        self._dispatcher.enqueue(request)
        logger.debug(f"분석 요청: {request.id} (region={region.id}, {len(code)}자)")

    def _count_frame(self, now: float) -> None:
        self._frames_processed += 1
        if self._fps_window_start is None:
            self._fps_window_start = now
        self._fps_window_frames += 1

        elapsed = now - self._fps_window_start
        if elapsed >= 1.0:
            self._fps = self._fps_window_frames / elapsed
            self._fps_window_start = now
            self._fps_window_frames = 0

    def _forget_region(self, region_id: str) -> None:
        self._last_dispatched.pop(region_id, None)
