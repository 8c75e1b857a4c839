"""메모리 장면 Presenter

3D 렌더러 대신 현재 표시 중인 Annotation을 보관한다. /annotations API가 이 장면을 조회한다.
"""

from lensexec.schemas.annotation import Annotation, Placement


class InMemoryPresenter:
    def __init__(self) -> None:
        self._scene: dict[str, Annotation] = {}

    def present(self, annotation: Annotation) -> None:
        self._scene[annotation.id] = annotation.model_copy(deep=True)

    def update(self, annotation_id: str, placement: Placement) -> None:
        annotation = self._scene.get(annotation_id)
        if annotation is not None:
            self._scene[annotation_id] = annotation.model_copy(update={"placement": placement})

    def dispose(self, annotation_id: str) -> None:
        self._scene.pop(annotation_id, None)

    def annotations(self) -> list[Annotation]:
        return list(self._scene.values())

    def __len__(self) -> int:
        return len(self._scene)
