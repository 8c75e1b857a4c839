"""외부 협력자 Protocol

캡처 장치, 영역 탐지, 텍스트 추출, 표시 계층은 오케스트레이션 코어 밖의 구현이다.
코어는 아래 인터페이스만 사용한다.
"""

from typing import Protocol

import numpy as np

from lensexec.schemas.annotation import Annotation, Placement
from lensexec.schemas.region import Region

Frame = np.ndarray  # BGR (cv2 형식)


class Capture(Protocol):
    """프레임 공급 인터페이스

    구현체:
    - OpenCVCapture: cv2.VideoCapture
    """

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def get_current_frame(self) -> Frame | None:
        """가장 최근 프레임 반환 (블로킹 없음, 아직 없으면 None)"""
        ...


class Detector(Protocol):
    """후보 영역 탐지 인터페이스

    구현체:
    - ContourDetector: OpenCV adaptive threshold + contour
    """

    async def detect(self, frame: Frame) -> list[Region]:
        """프레임에서 후보 영역 탐지 (순서 보장 없음, 0개 이상)"""
        ...


class Extractor(Protocol):
    """텍스트 추출 인터페이스

    구현체:
    - TesseractExtractor: pytesseract
    """

    async def extract(self, region: Region, frame: Frame) -> str:
        """영역의 텍스트 추출 (빈 문자열 가능)"""
        ...


class Presenter(Protocol):
    """Annotation 표시 인터페이스

    구현체:
    - InMemoryPresenter: 메모리 장면 (API로 조회)
    """

    def present(self, annotation: Annotation) -> None: ...

    def update(self, annotation_id: str, placement: Placement) -> None: ...

    def dispose(self, annotation_id: str) -> None:
        """표시 자원 해제 (없는 ID면 무시)"""
        ...
