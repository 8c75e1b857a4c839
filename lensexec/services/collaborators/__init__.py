"""Collaborators 모듈

캡처/탐지/추출/표시 기본 구현체.

사용법:
    from lensexec.services.collaborators import get_collaborators

    collaborators = get_collaborators()
"""

from dataclasses import dataclass

from lensexec.config import get_settings
from lensexec.services.collaborators.base import Capture, Detector, Extractor, Frame, Presenter
from lensexec.services.collaborators.contour_detector import ContourDetector
from lensexec.services.collaborators.memory_presenter import InMemoryPresenter
from lensexec.services.collaborators.opencv_capture import CaptureError, OpenCVCapture
from lensexec.services.collaborators.tesseract import TesseractExtractor

__all__ = [
    "Capture",
    "CaptureError",
    "Collaborators",
    "Detector",
    "Extractor",
    "Frame",
    "Presenter",
    "get_collaborators",
    "set_collaborators",
]


@dataclass
class Collaborators:
    capture: Capture
    detector: Detector
    extractor: Extractor
    presenter: Presenter


_collaborators: Collaborators | None = None


def get_collaborators() -> Collaborators:
    """설정에 따라 기본 협력자 구성 반환"""
    global _collaborators
    if _collaborators is None:
        settings = get_settings()
        _collaborators = Collaborators(
            capture=OpenCVCapture(
                index=settings.camera_index,
                width=settings.camera_width,
                height=settings.camera_height,
            ),
            detector=ContourDetector(),
            extractor=TesseractExtractor(),
            presenter=InMemoryPresenter(),
        )
    return _collaborators


def set_collaborators(collaborators: Collaborators | None) -> None:
    """협력자 구성 설정 (테스트용)"""
    global _collaborators
    _collaborators = collaborators
