"""Annotation 모델

region_id는 식별자만 보관한다. Region 객체를 참조하지 않으므로
Annotation이 남아 있어도 Region 수명에 영향을 주지 않는다.
"""

from typing import Literal

from pydantic import BaseModel

from lensexec.schemas.base import BaseSchema

AnnotationKind = Literal["finding", "suggestion", "simulation"]


def annotation_id(region_id: str, kind: AnnotationKind, index: int) -> str:
    """region + kind + 순번으로 결정되는 ID (같은 영역 재분석 시 같은 ID 생성)"""
    return f"{region_id}:{kind}:{index}"


class Placement(BaseModel):
    x: float
    y: float
    z: float


class AnnotationContent(BaseSchema):
    text: str
    color: str = "#ffffff"
    font_size: int = 12


class Annotation(BaseSchema):
    id: str
    kind: AnnotationKind
    region_id: str
    placement: Placement
    content: AnnotationContent
    visible: bool = True
