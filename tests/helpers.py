"""
Sample model answers and fake HTTP objects shared by the tests.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional

from app.models.schemas import AnalysisResult

FIXED_TIME = datetime(2026, 10, 19, 9, 30, 0, tzinfo=timezone.utc)


def sample_payload(**overrides: Any) -> dict:
    """A complete, well-formed model answer."""
    payload = {
        "diagnosis": "Positive",
        "confidence": 85,
        "achalasia_type": "Type II (Panesophageal pressurization)",
        "accuracy_score": 78,
        "findings": [
            {
                "finding": "Smooth tapering of the distal esophagus (bird's beak)",
                "severity": "Severe",
                "location": "Gastroesophageal junction",
            },
            {
                "finding": "Dilated esophageal body measuring approximately 4.5 cm",
                "severity": "Moderate",
                "location": "Mid to distal esophagus",
            },
            {
                "finding": "Retained barium column",
                "severity": "Mild",
                "location": "Distal esophagus",
            },
        ],
        "key_indicators": {
            "bird_beak_sign": True,
            "dilated_esophagus": True,
            "absent_peristalsis": True,
            "food_retention": False,
            "narrowed_les": False,
            "sigmoid_esophagus": False,
        },
        "differential_diagnoses": ["Pseudoachalasia", "Peptic stricture"],
        "recommendations": [
            "High-resolution manometry to confirm subtype",
            "Upper endoscopy to exclude malignancy",
        ],
        "clinical_notes": "Findings are classic for achalasia with pan-esophageal pressurization.",
        "image_quality": "Good",
        "image_type_detected": "Barium swallow (esophagram)",
    }
    payload.update(overrides)
    return payload


def make_result(**overrides: Any) -> AnalysisResult:
    return AnalysisResult.model_validate(sample_payload(**overrides))


def completion(content: Optional[str]) -> dict:
    """Chat-completion response body wrapping ``content``."""
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeResponse:
    """Stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload: Any = None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text or (json.dumps(payload) if payload is not None else "")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Records posts and returns a canned response or raises."""

    def __init__(self, response: Optional[FakeResponse] = None, exc: Optional[Exception] = None):
        self.response = response
        self.exc = exc
        self.calls: list[dict] = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response
