"""
Response extractor for model output.

Turns the raw text of a chat completion into an AnalysisResult. The model
may wrap its JSON in a markdown fence or answer in prose; extraction never
raises. Anything that does not parse into the expected shape degrades to a
clearly flagged Inconclusive result that keeps the raw answer readable.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import ValidationError

from app.core.errors import ErrorKind
from app.models.schemas import (
    AchalasiaType,
    AnalysisResult,
    Diagnosis,
    ImageQuality,
)
from app.utils.logger import get_logger

logger = get_logger("response_extractor")

FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

MANUAL_REVIEW_RECOMMENDATION = "Manual review required - AI response format error"


@dataclass(frozen=True)
class Parsed:
    """The model answer parsed into the expected shape."""
    result: AnalysisResult

    @property
    def is_fallback(self) -> bool:
        return False


@dataclass(frozen=True)
class Fallback:
    """The model answer could not be parsed; result is the degraded default."""
    result: AnalysisResult
    raw_text: str
    reason: str = ""

    @property
    def is_fallback(self) -> bool:
        return True


Extraction = Union[Parsed, Fallback]


def fallback_result(raw_text: Optional[str]) -> AnalysisResult:
    """Build the degraded result shown when the model answer is unusable."""
    return AnalysisResult(
        diagnosis=Diagnosis.INCONCLUSIVE,
        confidence=0,
        accuracy_score=0,
        achalasia_type=AchalasiaType.NOT_APPLICABLE,
        findings=(),
        key_indicators={},
        differential_diagnoses=(),
        recommendations=(MANUAL_REVIEW_RECOMMENDATION,),
        clinical_notes=raw_text,
        image_quality=ImageQuality.UNKNOWN,
        image_type_detected="Unknown",
    )


def candidate_json(raw_text: str) -> str:
    """Return the interior of the first fenced block, else the whole text."""
    match = FENCED_BLOCK.search(raw_text)
    candidate = match.group(1) if match else raw_text
    return candidate.strip()


def _parse(candidate: str) -> AnalysisResult:
    payload: Any = json.loads(candidate)
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    return AnalysisResult.model_validate(payload)


def extract(raw_text: Optional[str]) -> Extraction:
    """
    Parse model output into an AnalysisResult.

    Args:
        raw_text: Message content returned by the model

    Returns:
        Parsed on success, Fallback carrying the degraded result otherwise
    """
    text = raw_text or ""

    try:
        result = _parse(candidate_json(text))
    except (ValidationError, ValueError, TypeError, RecursionError) as e:
        logger.warning(
            "Model response could not be parsed, using fallback",
            kind=ErrorKind.MALFORMED_RESULT.value,
            error=str(e).splitlines()[0] if str(e) else type(e).__name__,
            raw_length=len(text),
        )
        return Fallback(
            result=fallback_result(text),
            raw_text=text,
            reason=type(e).__name__,
        )

    logger.debug(
        "Model response parsed",
        diagnosis=result.diagnosis.value,
        findings=len(result.findings),
    )
    return Parsed(result=result)
