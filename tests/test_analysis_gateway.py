"""
Tests for the analysis request gateway.
"""

import base64
import json

import pytest
import requests

from app.core.analysis_gateway import (
    DEFAULT_MIME_TYPE,
    AnalysisGateway,
    build_payload,
    encode_image_to_data_url,
)
from app.core.errors import (
    EmptyResponseError,
    ErrorKind,
    InvalidInputError,
    MisconfiguredError,
    QuotaExhaustedError,
    RateLimitedError,
    UpstreamFailureError,
)
from app.core.prompts import SYSTEM_PROMPT
from app.core.response_extractor import Fallback, Parsed
from app.models.schemas import Diagnosis
from helpers import FakeResponse, FakeSession, completion, sample_payload

IMAGE = b"\x89PNG\r\n\x1a\nfake-image-bytes"


def make_gateway(response=None, exc=None, api_key="test-key"):
    session = FakeSession(response=response, exc=exc)
    gateway = AnalysisGateway(
        api_key=api_key,
        endpoint="https://gateway.test/v1/chat/completions",
        model="test/vision-model",
        session=session,
    )
    return gateway, session


def fenced(payload: dict) -> str:
    return f"```json\n{json.dumps(payload)}\n```"


class TestPayload:
    """Outbound request body."""

    def test_message_structure(self):
        body = build_payload("m", IMAGE, "image/png", "swallow.png")

        assert body["model"] == "m"
        system, user = body["messages"]
        assert system == {"role": "system", "content": SYSTEM_PROMPT}
        assert user["role"] == "user"
        text_part, image_part = user["content"]
        assert text_part["type"] == "text"
        assert '"swallow.png"' in text_part["text"]
        assert image_part["type"] == "image_url"
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")

    def test_rubric_points_at_published_literature(self):
        assert (
            "IMPORTANT: Consider findings from published datasets and literature on "
            "Achalasia, Esophageal Achalasia, and Cardiospasm to inform your analysis. "
            "Key radiological signs include:"
        ) in SYSTEM_PROMPT

    def test_data_url_carries_image(self):
        url = encode_image_to_data_url(IMAGE, "image/png")
        assert base64.b64decode(url.split(",", 1)[1]) == IMAGE

    @pytest.mark.parametrize("mime", [None, "", "application/octet-stream"])
    def test_unknown_mime_defaults(self, mime):
        url = encode_image_to_data_url(IMAGE, mime)
        assert url.startswith(f"data:{DEFAULT_MIME_TYPE};base64,")

    def test_missing_file_name(self):
        body = build_payload("m", IMAGE, None, None)
        assert '"unknown"' in body["messages"][1]["content"][0]["text"]

    def test_request_headers_and_endpoint(self):
        gateway, session = make_gateway(FakeResponse(200, completion(fenced(sample_payload()))))
        gateway.submit(IMAGE, "image/png", "scan.png")

        assert len(session.calls) == 1
        call = session.calls[0]
        assert call["url"] == "https://gateway.test/v1/chat/completions"
        assert call["headers"]["Authorization"] == "Bearer test-key"
        assert call["json"]["model"] == "test/vision-model"
        assert call["timeout"] is None


class TestSubmit:
    """Successful round trips."""

    def test_fenced_answer_is_parsed(self):
        gateway, _ = make_gateway(FakeResponse(200, completion(fenced(sample_payload()))))
        result = gateway.submit(IMAGE, "image/png", "scan.png")

        assert result.diagnosis == Diagnosis.POSITIVE
        assert result.confidence == 85
        assert len(result.findings) == 3

    def test_analyze_exposes_parse_outcome(self):
        gateway, _ = make_gateway(FakeResponse(200, completion(json.dumps(sample_payload()))))
        assert isinstance(gateway.analyze(IMAGE), Parsed)

    def test_prose_answer_degrades(self):
        prose = "I am unable to interpret this image with certainty."
        gateway, _ = make_gateway(FakeResponse(200, completion(prose)))

        extraction = gateway.analyze(IMAGE, "image/jpeg", "scan.jpg")
        assert isinstance(extraction, Fallback)
        assert extraction.result.diagnosis == Diagnosis.INCONCLUSIVE
        assert extraction.result.clinical_notes == prose

    def test_contract_breach_is_returned_unchanged(self):
        payload = sample_payload(diagnosis="Negative", achalasia_type="Type III (Spastic)")
        gateway, _ = make_gateway(FakeResponse(200, completion(fenced(payload))))

        result = gateway.submit(IMAGE)
        assert result.diagnosis == Diagnosis.NEGATIVE
        assert result.invariant_violations()


class TestErrors:
    """Transport and service failures map onto domain errors."""

    def test_empty_image(self):
        gateway, session = make_gateway(FakeResponse(200, completion("{}")))
        with pytest.raises(InvalidInputError) as exc_info:
            gateway.submit(b"", "image/png", "scan.png")
        assert exc_info.value.kind == ErrorKind.INVALID_INPUT
        assert exc_info.value.status_code == 400
        assert session.calls == []

    def test_missing_credential(self):
        gateway, session = make_gateway(FakeResponse(200, completion("{}")), api_key="")
        with pytest.raises(MisconfiguredError):
            gateway.submit(IMAGE)
        assert session.calls == []

    def test_rate_limited(self):
        gateway, _ = make_gateway(FakeResponse(429, {"error": "slow down"}))
        with pytest.raises(RateLimitedError) as exc_info:
            gateway.submit(IMAGE)
        assert exc_info.value.status_code == 429
        assert exc_info.value.to_dict() == {
            "error": "Rate limit exceeded. Please try again in a moment."
        }

    def test_quota_exhausted(self):
        gateway, _ = make_gateway(FakeResponse(402, {"error": "pay up"}))
        with pytest.raises(QuotaExhaustedError) as exc_info:
            gateway.submit(IMAGE)
        assert exc_info.value.status_code == 402

    @pytest.mark.parametrize("status", [400, 401, 500, 503])
    def test_other_statuses(self, status):
        gateway, _ = make_gateway(FakeResponse(status, text="upstream exploded"))
        with pytest.raises(UpstreamFailureError) as exc_info:
            gateway.submit(IMAGE)
        assert str(status) in exc_info.value.message
        assert "exploded" not in exc_info.value.message

    def test_transport_error(self):
        gateway, _ = make_gateway(exc=requests.ConnectionError("connection refused"))
        with pytest.raises(UpstreamFailureError):
            gateway.submit(IMAGE)

    @pytest.mark.parametrize("body", [
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": None}}]},
        {"choices": [{"message": {"content": "   "}}]},
        {"unexpected": True},
    ])
    def test_empty_content(self, body):
        gateway, _ = make_gateway(FakeResponse(200, body))
        with pytest.raises(EmptyResponseError):
            gateway.submit(IMAGE)

    def test_non_json_success_body(self):
        gateway, _ = make_gateway(FakeResponse(200, None, text="<html>oops</html>"))
        with pytest.raises(EmptyResponseError):
            gateway.submit(IMAGE)

    def test_no_retry(self):
        gateway, session = make_gateway(FakeResponse(503, text="busy"))
        with pytest.raises(UpstreamFailureError):
            gateway.submit(IMAGE)
        assert len(session.calls) == 1
