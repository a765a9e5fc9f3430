"""
Analysis request gateway.

Encodes an image, sends it with the diagnostic rubric to the external
chat-completion endpoint and maps transport and service failures onto
domain errors. The gateway makes exactly one request per call and never
retries; re-submission is up to the caller.
"""

import base64
from typing import Any, Optional

import requests

from app.config import settings
from app.core.errors import (
    EmptyResponseError,
    InvalidInputError,
    MisconfiguredError,
    QuotaExhaustedError,
    RateLimitedError,
    UpstreamFailureError,
)
from app.core.prompts import SYSTEM_PROMPT, build_user_instruction
from app.core.response_extractor import Extraction, extract
from app.models.schemas import AnalysisResult
from app.utils.logger import get_logger

logger = get_logger("analysis_gateway")

DEFAULT_MIME_TYPE = "image/jpeg"


def encode_image_to_data_url(image_bytes: bytes, mime_type: Optional[str] = None) -> str:
    """
    Return a base64 data URL for embedding the image in the request body.

    Example: data:image/png;base64,iVBORw0...
    """
    mime = mime_type if mime_type and mime_type.startswith("image/") else DEFAULT_MIME_TYPE
    payload = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime};base64,{payload}"


def build_payload(
    model: str,
    image_bytes: bytes,
    mime_type: Optional[str],
    file_name: Optional[str]
) -> dict[str, Any]:
    """Build the chat-completion request body."""
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": build_user_instruction(file_name)},
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": encode_image_to_data_url(image_bytes, mime_type)
                        },
                    },
                ],
            },
        ],
    }


class AnalysisGateway:
    """
    Client for the external vision model.

    Credentials and endpoint come from settings unless given explicitly.
    A requests.Session (or anything with a compatible ``post``) may be
    injected for connection reuse or testing.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.api_key = settings.ai_gateway_api_key if api_key is None else api_key
        self.endpoint = endpoint or settings.ai_gateway_url
        self.model = model or settings.ai_model
        self.timeout = timeout if timeout is not None else settings.ai_request_timeout
        self.session = session or requests.Session()

    def fetch_content(
        self,
        image_bytes: bytes,
        mime_type: Optional[str] = None,
        file_name: Optional[str] = None
    ) -> str:
        """
        Send one analysis request and return the raw message content.

        Raises:
            InvalidInputError: No image bytes
            MisconfiguredError: No API key configured
            RateLimitedError: Service answered 429
            QuotaExhaustedError: Service answered 402
            UpstreamFailureError: Any other failure status or transport error
            EmptyResponseError: Success without usable message content
        """
        if not image_bytes:
            raise InvalidInputError()

        if not self.api_key:
            logger.error("AI gateway API key missing")
            raise MisconfiguredError()

        body = build_payload(self.model, image_bytes, mime_type, file_name)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.info(
            "Sending analysis request",
            model=self.model,
            file_name=file_name,
            mime_type=mime_type,
            image_bytes=len(image_bytes),
        )

        try:
            response = self.session.post(
                self.endpoint,
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("AI gateway unreachable", error=str(e))
            raise UpstreamFailureError(f"AI analysis failed: {type(e).__name__}") from e

        status = response.status_code
        if status == 429:
            logger.warning("AI gateway rate limited")
            raise RateLimitedError()
        if status == 402:
            logger.warning("AI gateway credits exhausted")
            raise QuotaExhaustedError()
        if not 200 <= status < 300:
            logger.error("AI gateway error", status_code=status, body=response.text[:500])
            raise UpstreamFailureError(f"AI analysis failed: {status}")

        content = self._message_content(response)
        if not content:
            logger.error("AI gateway returned no content", status_code=status)
            raise EmptyResponseError()

        return content

    @staticmethod
    def _message_content(response: requests.Response) -> Optional[str]:
        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            return None
        return content if isinstance(content, str) and content.strip() else None

    def analyze(
        self,
        image_bytes: bytes,
        mime_type: Optional[str] = None,
        file_name: Optional[str] = None
    ) -> Extraction:
        """Fetch the model answer and extract it, keeping the parse outcome."""
        extraction = extract(self.fetch_content(image_bytes, mime_type, file_name))
        result = extraction.result

        for violation in result.invariant_violations():
            logger.warning("Model result breaks diagnostic contract", detail=violation)

        logger.info(
            "Analysis complete",
            file_name=file_name,
            diagnosis=result.diagnosis.value,
            confidence=result.confidence,
            fallback=extraction.is_fallback,
        )
        return extraction

    def submit(
        self,
        image_bytes: bytes,
        mime_type: Optional[str] = None,
        file_name: Optional[str] = None
    ) -> AnalysisResult:
        """
        Analyze an image.

        Args:
            image_bytes: Raw image payload (must not be empty)
            mime_type: Image MIME type; image/jpeg when unknown
            file_name: Advisory file name quoted in the instruction

        Returns:
            AnalysisResult, degraded to Inconclusive if the answer was malformed
        """
        return self.analyze(image_bytes, mime_type, file_name).result


# Lazy-loaded singleton
_gateway: Optional[AnalysisGateway] = None


def get_analysis_gateway() -> AnalysisGateway:
    """Get or create analysis gateway singleton."""
    global _gateway
    if _gateway is None:
        _gateway = AnalysisGateway()
    return _gateway
