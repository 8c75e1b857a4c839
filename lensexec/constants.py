import re


class RegionId:
    PREFIX = "region_"
    PATTERN = re.compile(r"^region_[a-f0-9]{8}$")


class RequestId:
    PREFIX = "req_"
    PATTERN = re.compile(r"^req_[a-f0-9]{8}$")


class Limits:
    REGION_HISTORY = 10  # 영역별 centroid 샘플 최대 개수
    RAW_RESPONSE_PREVIEW = 200  # 파싱 실패 시 suggestion에 담을 원문 길이
    MAX_RETRIES = 3


class Backoff:
    BASE = 1.0  # 초
    CAP = 30.0  # 초
    JITTER_RATIO = 0.1


class Placement:
    """Presenter 좌표계 (정규화 [-1, 1] × SCALE, 카메라 앞 DEPTH)"""

    SCALE = 3.0
    DEPTH = -2.0
    FINDING_OFFSET = 0.2  # 앵커 위
    SUGGESTION_OFFSET = -0.2  # 앵커 아래
    SIMULATION_GAP = -0.2  # 마지막 suggestion 아래
    STACK_STEP = 0.1  # 같은 그룹 안에서 항목 간격
