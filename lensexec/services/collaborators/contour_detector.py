"""OpenCV contour 기반 코드 영역 탐지"""

import asyncio
import time

import cv2

from lensexec.schemas.region import BBox, Region
from lensexec.services.collaborators.base import Frame

# 코드 블록 후보 필터
MIN_WIDTH = 80
MIN_HEIGHT = 15
MAX_SIZE_RATIO = 0.9
MIN_ASPECT = 1.2
MAX_ASPECT = 15.0
MIN_AREA_RATIO = 0.001
MAX_AREA_RATIO = 0.5


def is_likely_code_region(
    rect: tuple[int, int, int, int], image_width: int, image_height: int
) -> bool:
    _, _, w, h = rect
    if w < MIN_WIDTH or h < MIN_HEIGHT:
        return False
    if w > image_width * MAX_SIZE_RATIO or h > image_height * MAX_SIZE_RATIO:
        return False

    aspect = w / h
    if aspect < MIN_ASPECT or aspect > MAX_ASPECT:
        return False

    area_ratio = (w * h) / (image_width * image_height)
    return MIN_AREA_RATIO <= area_ratio <= MAX_AREA_RATIO


def calc_confidence(contour_area: float, rect: tuple[int, int, int, int]) -> float:
    """fill ratio(60%) + 종횡비 보너스(0.3) + 크기 보너스(0.1)"""
    _, _, w, h = rect
    rect_area = w * h
    if rect_area <= 0:
        return 0.0

    confidence = (contour_area / rect_area) * 0.6
    if 1.5 <= w / h <= 8.0:
        confidence += 0.3
    if w > 100 and h > 20:
        confidence += 0.1
    return min(confidence, 1.0)


class ContourDetector:
    async def detect(self, frame: Frame) -> list[Region]:
        return await asyncio.to_thread(self._detect, frame)

    def _detect(self, frame: Frame) -> list[Region]:
        h, w = frame.shape[:2]
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        binary = cv2.adaptiveThreshold(
            gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
        )
        contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        now = time.monotonic()
        regions: list[Region] = []
        for contour in contours:
            rect = cv2.boundingRect(contour)
            if not is_likely_code_region(rect, w, h):
                continue

            x, y, rw, rh = rect
            regions.append(
                Region(
                    bbox=BBox(x=x, y=y, width=rw, height=rh),
                    confidence=calc_confidence(float(cv2.contourArea(contour)), rect),
                    detected_at=now,
                )
            )
        return regions
