"""
Shared fixtures for the test suite.
"""

import io
from datetime import datetime

import pytest
from PIL import Image

from app.models.schemas import AnalysisResult
from helpers import FIXED_TIME, make_result


@pytest.fixture
def analysis() -> AnalysisResult:
    return make_result()


@pytest.fixture
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("L", (64, 64), color=128).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def fixed_time() -> datetime:
    return FIXED_TIME
