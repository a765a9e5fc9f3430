"""
Presentation policy for rendered reports.

Diagnosis and severity colour mappings and human-readable labels for the
PDF report, kept apart from the layout code that draws them.
"""

from enum import Enum
from typing import Tuple

from app.models.schemas import AchalasiaType, Diagnosis, Severity

RGB = Tuple[int, int, int]


class Tone(str, Enum):
    """Semantic colour roles."""
    DANGER = "danger"
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"


class Colors:
    """Report palette (RGB)."""
    NAVY: RGB = (15, 23, 42)
    BLUE: RGB = (37, 99, 235)
    WHITE: RGB = (255, 255, 255)
    LIGHT_GRAY: RGB = (241, 245, 249)
    TEXT: RGB = (30, 41, 59)
    MUTED_TEXT: RGB = (100, 116, 139)
    SUCCESS: RGB = (22, 163, 74)
    WARNING: RGB = (234, 179, 8)
    DANGER: RGB = (220, 38, 38)
    BORDER: RGB = (203, 213, 225)
    DETECTED_FILL: RGB = (254, 242, 242)


TONE_COLORS: dict[Tone, RGB] = {
    Tone.DANGER: Colors.DANGER,
    Tone.SUCCESS: Colors.SUCCESS,
    Tone.WARNING: Colors.WARNING,
    Tone.INFO: Colors.BLUE,
}

SEVERITY_TONES: dict[Severity, Tone] = {
    Severity.SEVERE: Tone.DANGER,
    Severity.MODERATE: Tone.WARNING,
    Severity.MILD: Tone.INFO,
    Severity.NORMAL: Tone.SUCCESS,
}

INDICATOR_LABELS: dict[str, str] = {
    "bird_beak_sign": "Bird's Beak Sign",
    "dilated_esophagus": "Dilated Esophagus",
    "absent_peristalsis": "Absent Peristalsis",
    "food_retention": "Food Retention",
    "narrowed_les": "Narrowed LES",
    "sigmoid_esophagus": "Sigmoid Esophagus",
}

ACHALASIA_TYPE_LABELS: dict[AchalasiaType, str] = {
    AchalasiaType.TYPE_I: "Type I (Classic)",
    AchalasiaType.TYPE_II: "Type II (Panesophageal pressurization)",
    AchalasiaType.TYPE_III: "Type III (Spastic)",
    AchalasiaType.NOT_APPLICABLE: "Not Applicable",
}


def diagnosis_tone(diagnosis: Diagnosis) -> Tone:
    """Accent for the diagnosis card: Positive is danger, Negative success."""
    if diagnosis == Diagnosis.POSITIVE:
        return Tone.DANGER
    if diagnosis == Diagnosis.NEGATIVE:
        return Tone.SUCCESS
    return Tone.WARNING


def severity_tone(severity: Severity) -> Tone:
    return SEVERITY_TONES.get(severity, Tone.SUCCESS)


def tone_color(tone: Tone) -> RGB:
    return TONE_COLORS[tone]


def indicator_label(name: str) -> str:
    return INDICATOR_LABELS.get(name, name.replace("_", " ").title())
