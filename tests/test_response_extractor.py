"""
Tests for the response extractor.
"""

import json

import pytest

from app.core.response_extractor import (
    MANUAL_REVIEW_RECOMMENDATION,
    Fallback,
    Parsed,
    candidate_json,
    extract,
)
from app.models.schemas import (
    AchalasiaType,
    AnalysisResult,
    Diagnosis,
    ImageQuality,
    Severity,
)
from helpers import make_result, sample_payload


class TestFencedBlocks:
    """Locating the JSON inside the model answer."""

    def test_json_tagged_fence(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nThanks'
        assert candidate_json(text) == '{"a": 1}'

    def test_untagged_fence(self):
        assert candidate_json('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence_uses_whole_text(self):
        assert candidate_json('  {"a": 1}  ') == '{"a": 1}'

    def test_first_fence_wins(self):
        text = '```json\n{"a": 1}\n```\n```json\n{"b": 2}\n```'
        assert candidate_json(text) == '{"a": 1}'


class TestParsed:
    """Well-formed answers parse into AnalysisResult."""

    def test_round_trip_through_fence(self, analysis):
        raw = f"```json\n{analysis.model_dump_json(indent=2)}\n```"
        extraction = extract(raw)

        assert isinstance(extraction, Parsed)
        assert not extraction.is_fallback
        assert extraction.result == analysis

    def test_raw_json_without_fence(self):
        extraction = extract(json.dumps(sample_payload()))
        assert isinstance(extraction, Parsed)
        assert extraction.result.diagnosis == Diagnosis.POSITIVE
        assert extraction.result.confidence == 85

    def test_absent_optional_fields_get_defaults(self):
        extraction = extract('{"diagnosis": "Negative", "confidence": 92}')
        result = extraction.result

        assert isinstance(extraction, Parsed)
        assert result.accuracy_score is None
        assert result.achalasia_type == AchalasiaType.NOT_APPLICABLE
        assert result.findings == ()
        assert result.differential_diagnoses == ()
        assert result.recommendations == ()
        assert result.clinical_notes is None
        assert result.image_quality == ImageQuality.UNKNOWN
        assert result.image_type_detected == "Unknown"
        assert result.key_indicators.detected_count == 0

    def test_descriptive_subtype_labels_normalize(self):
        for label, expected in [
            ("Type I (Classic)", AchalasiaType.TYPE_I),
            ("Type II (Panesophageal pressurization)", AchalasiaType.TYPE_II),
            ("type iii (spastic)", AchalasiaType.TYPE_III),
            ("not applicable", AchalasiaType.NOT_APPLICABLE),
        ]:
            result = extract(json.dumps(sample_payload(achalasia_type=label))).result
            assert result.achalasia_type == expected

    def test_enum_spelling_is_case_insensitive(self):
        raw = json.dumps(sample_payload(
            diagnosis=" positive ",
            image_quality="GOOD",
            findings=[{"finding": "x", "severity": "severe", "location": "GEJ"}],
        ))
        result = extract(raw).result
        assert result.diagnosis == Diagnosis.POSITIVE
        assert result.image_quality == ImageQuality.GOOD
        assert result.findings[0].severity == Severity.SEVERE

    def test_float_confidence_is_rounded(self):
        result = extract(json.dumps(sample_payload(confidence=84.6))).result
        assert result.confidence == 85

    def test_differentials_keep_first_occurrence_order(self):
        raw = json.dumps(sample_payload(
            differential_diagnoses=["Pseudoachalasia", "Chagas disease", "Pseudoachalasia"]
        ))
        result = extract(raw).result
        assert result.differential_diagnoses == ("Pseudoachalasia", "Chagas disease")

    def test_unknown_indicator_keys_are_ignored(self):
        raw = json.dumps(sample_payload(key_indicators={"bird_beak_sign": True, "air_fluid_level": True}))
        result = extract(raw).result
        assert result.key_indicators.detected("bird_beak_sign")
        assert result.key_indicators.detected_count == 1


class TestFallback:
    """Anything unparseable degrades to a flagged Inconclusive result."""

    def test_prose_answer(self):
        raw = "The image appears to show a dilated esophagus, but I cannot be sure."
        extraction = extract(raw)
        result = extraction.result

        assert isinstance(extraction, Fallback)
        assert extraction.is_fallback
        assert extraction.raw_text == raw
        assert result.diagnosis == Diagnosis.INCONCLUSIVE
        assert result.confidence == 0
        assert result.accuracy_score == 0
        assert result.clinical_notes == raw
        assert result.findings == ()
        assert result.differential_diagnoses == ()
        assert result.recommendations == (MANUAL_REVIEW_RECOMMENDATION,)
        assert result.image_quality == ImageQuality.UNKNOWN
        assert result.image_type_detected == "Unknown"
        assert result.achalasia_type == AchalasiaType.NOT_APPLICABLE
        assert result.key_indicators.detected_count == 0

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "```json\n{\"diagnosis\": \"Positive\", \n```",
        "[1, 2, 3]",
        '"just a string"',
        '{"confidence": 80}',
        '{"diagnosis": "Maybe", "confidence": 80}',
        '{"diagnosis": "Positive", "confidence": 150}',
        '{"diagnosis": "Positive", "confidence": 80, "findings": "none"}',
        '{"diagnosis": "Positive", "confidence": 80, "image_quality": "Blurry"}',
    ])
    def test_malformed_inputs_never_raise(self, raw):
        extraction = extract(raw)
        assert isinstance(extraction, Fallback)
        assert extraction.result.diagnosis == Diagnosis.INCONCLUSIVE
        assert isinstance(extraction.result, AnalysisResult)

    def test_empty_answer_has_no_notes(self):
        assert extract("   ").result.clinical_notes is None


class TestDiagnosticContract:
    """Negative diagnoses must carry 'Not Applicable'; breaches are flagged, not fixed."""

    def test_conformant_negative(self):
        result = make_result(diagnosis="Negative", achalasia_type="Not Applicable")
        assert result.invariant_violations() == []

    def test_violation_is_flagged_and_kept(self):
        raw = json.dumps(sample_payload(diagnosis="Negative", achalasia_type="Type I (Classic)"))
        extraction = extract(raw)

        assert isinstance(extraction, Parsed)
        assert extraction.result.achalasia_type == AchalasiaType.TYPE_I
        violations = extraction.result.invariant_violations()
        assert len(violations) == 1
        assert "Not Applicable" in violations[0]

    def test_positive_with_subtype_is_fine(self):
        assert make_result().invariant_violations() == []
