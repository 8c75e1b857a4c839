"""LLM 응답 → AnalysisResult 변환

JSON을 찾지 못하거나 파싱에 실패해도 예외를 던지지 않는다.
원문 일부를 suggestion으로 담은 결과를 대신 반환한다.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from lensexec.constants import Limits
from lensexec.schemas.analysis import AnalysisResult, Issue, SimulationSummary, Suggestion

logger = logging.getLogger(__name__)

JSON_FENCED_BLOCK = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
FENCED_BLOCK = re.compile(r"```[\w+-]*\s*([\s\S]*?)\s*```")
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
LANGUAGE_FIELD = re.compile(r'"language"\s*:\s*"([^"]+)"', re.IGNORECASE)
SUGGESTION_PATTERNS = (
    re.compile(r"suggestions?[:\-]\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"improve(?:ment)?s?[:\-]\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"consider[:\-]\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"recommend(?:ation)?s?[:\-]\s*([^\n]+)", re.IGNORECASE),
)


def extract_json_text(raw: str) -> str:
    """```json 블록 → 다른 fenced 블록 → 첫 번째 {...} 순서로 JSON 후보 텍스트 추출"""
    text = raw
    fenced = JSON_FENCED_BLOCK.search(raw) or FENCED_BLOCK.search(raw)
    if fenced:
        text = fenced.group(1)

    obj = JSON_OBJECT.search(text)
    if obj:
        text = obj.group(0)
    return text


def parse_analysis_response(raw: str, region_id: str, request_id: str = "") -> AnalysisResult:
    try:
        data = json.loads(extract_json_text(raw))
        if not isinstance(data, dict):
            raise ValueError(f"응답이 객체가 아님: {type(data).__name__}")
        result = _to_result(data, region_id, request_id)
    except (json.JSONDecodeError, TypeError, ValueError, ValidationError) as e:
        logger.warning(f"분석 응답 파싱 실패, 원문으로 대체: {region_id} - {e}")
        logger.debug(f"파싱 실패 원문: {raw}")
        return _fallback_result(raw, region_id, request_id)

    logger.debug(
        f"분석 응답 파싱 완료: {region_id} "
        f"(issues={len(result.issues)}, suggestions={len(result.suggestions)})"
    )
    return result


def _to_result(data: dict[str, Any], region_id: str, request_id: str) -> AnalysisResult:
    issues = [
        Issue(
            category=item.get("type") or "logic",
            severity=item.get("severity") or "medium",
            line_number=_as_int(item.get("lineNumber")),
            description=item.get("description") or "Unknown issue",
            suggested_fix=item.get("suggestedFix") or None,
        )
        for item in _as_dicts(data.get("errors"))
    ]
    suggestions = [
        Suggestion(
            category=item.get("type") or "improvement",
            description=item.get("description") or "No description provided",
            line_number=_as_int(item.get("lineNumber")),
            suggested_code=item.get("suggestedCode") or None,
        )
        for item in _as_dicts(data.get("suggestions"))
    ]

    simulation = None
    sim = data.get("simulation")
    if isinstance(sim, dict) and sim.get("canSimulate"):
        simulation = SimulationSummary(
            output=str(sim.get("output") or ""),
            errors=_as_strs(sim.get("errors")),
            execution_time=_as_float(sim.get("executionTime")),
            security_risks=_as_strs(sim.get("securityRisks")),
        )

    return AnalysisResult(
        region_id=region_id,
        request_id=request_id,
        language=str(data.get("language") or "unknown"),
        issues=tuple(issues),
        suggestions=tuple(suggestions),
        simulation=simulation,
    )


def _fallback_result(raw: str, region_id: str, request_id: str) -> AnalysisResult:
    language_match = LANGUAGE_FIELD.search(raw)

    suggestions = [
        Suggestion(description=match.group(1).strip())
        for pattern in SUGGESTION_PATTERNS
        for match in pattern.finditer(raw)
        if match.group(1).strip()
    ]
    if not suggestions:
        preview = raw[: Limits.RAW_RESPONSE_PREVIEW]
        if len(raw) > Limits.RAW_RESPONSE_PREVIEW:
            preview += "..."
        suggestions = [Suggestion(description=f"Analysis completed. {preview}")]

    return AnalysisResult(
        region_id=region_id,
        request_id=request_id,
        language=language_match.group(1) if language_match else "unknown",
        suggestions=tuple(suggestions),
    )


def _as_dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_strs(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value)


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
