"""OpenCV VideoCapture 기반 캡처"""

import asyncio
import logging

import cv2

from lensexec.services.collaborators.base import Frame

logger = logging.getLogger(__name__)


class CaptureError(Exception):
    pass


class OpenCVCapture:
    """카메라 프레임을 백그라운드에서 계속 읽고 최신 프레임만 보관

    VideoCapture.read()는 블로킹이므로 asyncio.to_thread로 이벤트 루프 밖에서 호출한다.
    """

    def __init__(self, index: int = 0, width: int = 1280, height: int = 720) -> None:
        self._index = index
        self._width = width
        self._height = height
        self._cap: cv2.VideoCapture | None = None
        self._reader: asyncio.Task[None] | None = None
        self._latest: Frame | None = None

    @property
    def is_active(self) -> bool:
        return self._reader is not None and not self._reader.done()

    def get_current_frame(self) -> Frame | None:
        return self._latest

    async def start(self) -> None:
        """카메라 열기 + 프레임 읽기 시작

        Raises:
            CaptureError: 카메라를 열 수 없음
        """
        if self.is_active:
            return

        cap = await asyncio.to_thread(cv2.VideoCapture, self._index)
        if not cap.isOpened():
            raise CaptureError(f"카메라를 열 수 없음: index={self._index}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
        self._cap = cap
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(cap))
        logger.info(f"카메라 시작: index={self._index} ({self._width}x{self._height})")

    async def stop(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        if self._cap is not None:
            await asyncio.to_thread(self._cap.release)
            self._cap = None
        self._latest = None
        logger.info("카메라 정지")

    async def _read_loop(self, cap: cv2.VideoCapture) -> None:
        while True:
            ok, frame = await asyncio.to_thread(cap.read)
            if not ok:
                logger.warning("프레임 읽기 실패")
                await asyncio.sleep(0.1)
                continue
            self._latest = frame
