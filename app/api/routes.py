"""
API routes for Achalasia Cardia AI.

Defines the REST endpoints for image analysis and report export.
"""

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from app.api.middleware import limiter
from app.config import settings
from app.core.analysis_gateway import AnalysisGateway, get_analysis_gateway
from app.core.errors import InvalidInputError
from app.models.schemas import (
    AnalysisResponse,
    ErrorResponse,
    HealthResponse,
    ReportRequest,
)
from app.services.report_generator import ReportGenerator, get_report_generator
from app.utils.file_validators import file_validator
from app.utils.logger import get_logger

logger = get_logger("routes")

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "No usable image"},
    402: {"model": ErrorResponse, "description": "Service credits exhausted"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Analysis failed"},
}


# =============================================================================
# Health Check
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint"
)
async def health_check():
    """Check if the service is healthy and running."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version
    )


# =============================================================================
# Analysis
# =============================================================================

@router.post(
    "/analyze-image",
    response_model=AnalysisResponse,
    tags=["Analysis"],
    summary="Analyze a medical image for achalasia cardia",
    responses=ERROR_RESPONSES
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def analyze_image(
    request: Request,
    file: UploadFile = File(..., description="Barium swallow, endoscopy, manometry, CT or X-ray image"),
    gateway: AnalysisGateway = Depends(get_analysis_gateway)
):
    """
    Send an image to the vision model and return the structured assessment.

    A model answer that cannot be parsed is returned as an Inconclusive
    result recommending manual review, not as an error.

    **Important**: AI-assisted reference only, not a medical diagnosis.
    """
    content = await file.read()
    filename = file.filename or "unknown"

    is_valid, error = file_validator.validate_image(content, filename)
    if not is_valid:
        raise InvalidInputError(error)

    mime_type = file.content_type
    if not mime_type or not mime_type.startswith("image/"):
        mime_type = file_validator.detect_mime_type(content)

    logger.info("Image received", file_name=filename, mime_type=mime_type, size=len(content))

    analysis = await run_in_threadpool(gateway.submit, content, mime_type, filename)

    return AnalysisResponse(analysis=analysis, file_name=filename)


# =============================================================================
# Report Export
# =============================================================================

@router.post(
    "/generate-report",
    tags=["Reports"],
    summary="Export an assessment as a PDF report",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}}
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def generate_report(
    request: Request,
    body: ReportRequest,
    generator: ReportGenerator = Depends(get_report_generator)
):
    """
    Render an assessment as a paginated PDF and return it as a download.

    The filename combines the input file name and today's date.
    """
    artifact = await run_in_threadpool(generator.generate, body.analysis, body.file_name)

    logger.info(
        "Report exported",
        filename=artifact.filename,
        pages=artifact.document.page_count
    )

    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'}
    )
