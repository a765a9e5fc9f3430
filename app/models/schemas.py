"""
Pydantic schemas for Achalasia Cardia AI.

Defines the structured assessment returned by the vision model and the
request/response models of the API endpoints.
"""

import math
import re
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================

class Diagnosis(str, Enum):
    """Primary diagnosis for achalasia cardia."""
    POSITIVE = "Positive"
    NEGATIVE = "Negative"
    INCONCLUSIVE = "Inconclusive"


class AchalasiaType(str, Enum):
    """Chicago Classification subtype."""
    TYPE_I = "Type I"
    TYPE_II = "Type II"
    TYPE_III = "Type III"
    NOT_APPLICABLE = "Not Applicable"


class Severity(str, Enum):
    """Severity of a single finding."""
    NORMAL = "Normal"
    MILD = "Mild"
    MODERATE = "Moderate"
    SEVERE = "Severe"


class ImageQuality(str, Enum):
    """Quality of the submitted image as judged by the model."""
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    UNKNOWN = "Unknown"


_SUBTYPE = re.compile(r"^type\s+(iii|ii|i)\b", re.IGNORECASE)


def _match_label(value: Any, enum_cls: type[Enum]) -> Any:
    """Case- and whitespace-insensitive lookup of an enum label."""
    if isinstance(value, str):
        wanted = " ".join(value.split()).lower()
        for member in enum_cls:
            if member.value.lower() == wanted:
                return member
    return value


# =============================================================================
# Analysis Result
# =============================================================================

class Finding(BaseModel):
    """A single observation reported by the model."""

    model_config = ConfigDict(frozen=True)

    finding: str = Field(description="Description of the finding")
    severity: Severity = Field(description="Severity grading")
    location: str = Field(default="", description="Anatomical location")

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        return _match_label(value, Severity)


class KeyIndicators(BaseModel):
    """
    The six radiological signs tracked per analysis.

    A missing signal stays None; downstream code treats it as not detected.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    bird_beak_sign: Optional[bool] = None
    dilated_esophagus: Optional[bool] = None
    absent_peristalsis: Optional[bool] = None
    food_retention: Optional[bool] = None
    narrowed_les: Optional[bool] = None
    sigmoid_esophagus: Optional[bool] = None

    @classmethod
    def names(cls) -> Tuple[str, ...]:
        """Indicator names in display order."""
        return tuple(cls.model_fields)

    def detected(self, name: str) -> bool:
        return getattr(self, name) is True

    def items(self) -> Iterator[Tuple[str, bool]]:
        """Yield (name, detected) pairs in display order."""
        for name in self.names():
            yield name, self.detected(name)

    @property
    def detected_count(self) -> int:
        return sum(1 for _, flag in self.items() if flag)


class AnalysisResult(BaseModel):
    """
    Structured achalasia assessment for one image.

    Immutable once built; shared by the JSON response and the PDF exporter.
    Only diagnosis and confidence are required, every other field has a
    safe default.
    """

    model_config = ConfigDict(frozen=True)

    diagnosis: Diagnosis = Field(description="Primary diagnosis")
    confidence: int = Field(ge=0, le=100, description="Model confidence 0-100")
    accuracy_score: Optional[int] = Field(
        default=None,
        ge=0,
        le=100,
        description="Self-assessed reliability of this analysis 0-100"
    )
    achalasia_type: AchalasiaType = Field(
        default=AchalasiaType.NOT_APPLICABLE,
        description="Achalasia subtype"
    )
    findings: Tuple[Finding, ...] = Field(
        default=(),
        description="Findings in presentation order"
    )
    key_indicators: KeyIndicators = Field(
        default_factory=KeyIndicators,
        description="Radiological signs"
    )
    differential_diagnoses: Tuple[str, ...] = Field(
        default=(),
        description="Alternative diagnoses, unique, in insertion order"
    )
    recommendations: Tuple[str, ...] = Field(
        default=(),
        description="Numbered recommendations"
    )
    clinical_notes: Optional[str] = Field(
        default=None,
        description="Free-text clinical interpretation"
    )
    image_quality: ImageQuality = Field(
        default=ImageQuality.UNKNOWN,
        description="Image quality"
    )
    image_type_detected: str = Field(
        default="Unknown",
        description="Imaging modality detected by the model"
    )

    @field_validator("diagnosis", mode="before")
    @classmethod
    def _normalize_diagnosis(cls, value: Any) -> Any:
        return _match_label(value, Diagnosis)

    @field_validator("image_quality", mode="before")
    @classmethod
    def _normalize_quality(cls, value: Any) -> Any:
        return _match_label(value, ImageQuality)

    @field_validator("achalasia_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        # "Type II (Panesophageal pressurization)" -> Type II
        if isinstance(value, str):
            match = _SUBTYPE.match(value.strip())
            if match:
                return f"Type {match.group(1).upper()}"
        return _match_label(value, AchalasiaType)

    @field_validator("confidence", "accuracy_score", mode="before")
    @classmethod
    def _round_scores(cls, value: Any) -> Any:
        if isinstance(value, float) and math.isfinite(value):
            return round(value)
        return value

    @field_validator("key_indicators", mode="before")
    @classmethod
    def _indicators_default(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("differential_diagnoses", mode="before")
    @classmethod
    def _unique_differentials(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return tuple(dict.fromkeys(value))
        return value

    @field_validator("clinical_notes", mode="before")
    @classmethod
    def _blank_notes(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("image_type_detected", mode="before")
    @classmethod
    def _image_type_default(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "Unknown"
        return value

    def invariant_violations(self) -> list[str]:
        """
        Report contract breaches by the producer without altering the result.
        """
        violations = []
        if (
            self.diagnosis == Diagnosis.NEGATIVE
            and self.achalasia_type != AchalasiaType.NOT_APPLICABLE
        ):
            violations.append(
                f"Negative diagnosis with achalasia_type "
                f"'{self.achalasia_type.value}' (expected 'Not Applicable')"
            )
        return violations


# =============================================================================
# API Models
# =============================================================================

class AnalysisResponse(BaseModel):
    """Response of the image analysis endpoint."""

    analysis: AnalysisResult = Field(description="Structured assessment")
    file_name: str = Field(description="Name of the analyzed file")


class ReportRequest(BaseModel):
    """Request to export an assessment as a PDF report."""

    analysis: AnalysisResult = Field(description="Assessment to render")
    file_name: str = Field(
        default="scan",
        description="Original image file name, used in the report and its filename"
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    version: str = Field(description="Application version")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(description="Human-readable error message")
