"""pytesseract 기반 텍스트 추출"""

import asyncio
import logging

import cv2
import numpy as np
import pytesseract

from lensexec.schemas.region import BBox, Region
from lensexec.services.collaborators.base import Frame

logger = logging.getLogger(__name__)

# 코드 블록은 균일한 텍스트 블록으로 취급
TESSERACT_CONFIG = "--psm 6"


def preprocess_for_ocr(frame: Frame, bbox: BBox) -> np.ndarray:
    """영역 crop → grayscale → blur → adaptive threshold"""
    x1, y1, x2, y2 = bbox.to_tuple()
    roi = frame[y1:y2, x1:x2]
    gray = cv2.cvtColor(roi, cv2.COLOR_BGR2GRAY) if roi.ndim == 3 else roi
    blurred = cv2.GaussianBlur(gray, (3, 3), 0)
    return cv2.adaptiveThreshold(
        blurred, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 11, 2
    )


class TesseractExtractor:
    def __init__(self, lang: str = "eng", config: str = TESSERACT_CONFIG) -> None:
        self._lang = lang
        self._config = config

    async def extract(self, region: Region, frame: Frame) -> str:
        if not region.bbox.width or not region.bbox.height:
            return ""
        return await asyncio.to_thread(self._extract, region.bbox, frame)

    def _extract(self, bbox: BBox, frame: Frame) -> str:
        image = preprocess_for_ocr(frame, bbox)
        if image.size == 0:
            return ""
        text = pytesseract.image_to_string(image, lang=self._lang, config=self._config)
        logger.debug(f"OCR 추출: {len(text)}자")
        return text
