"""
Achalasia Cardia AI - FastAPI Application

Analyzes esophageal imaging with an external vision model and exports
the structured assessment as a paginated PDF report.

IMPORTANT: AI-assisted reference only, not a diagnostic device.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.routes import router
from app.api.middleware import (
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    setup_error_handlers,
    setup_rate_limiting
)
from app.utils.logger import get_logger, configure_logging

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    configure_logging(
        log_level=settings.log_level,
        json_format=not settings.debug
    )

    logger.info(
        "Starting Achalasia Cardia AI",
        version=settings.app_version,
        debug=settings.debug,
        model=settings.ai_model,
        gateway_configured=bool(settings.ai_gateway_api_key)
    )

    yield

    logger.info("Shutting down Achalasia Cardia AI")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title=settings.app_name,
        description="""
## Achalasia Cardia AI - Diagnostic Report Pipeline

Upload a barium swallow, endoscopy, manometry, CT or X-ray image and receive a
structured achalasia assessment from a vision model, then export it as a PDF.

### ⚠️ Important Disclaimer

Results are AI-assisted reference material, **not** a medical diagnosis.

### API Endpoints

| Endpoint | Method | Description |
|----------|--------|-------------|
| `/analyze-image` | POST | Analyze an uploaded image |
| `/generate-report` | POST | Export an assessment as PDF |
| `/health` | GET | Health check |
        """,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc" if settings.debug else None,
    )

    # Setup middleware
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    # CORS - Allow all origins for web frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_error_handlers(app)
    setup_rate_limiting(app)

    app.include_router(router, tags=["API"])

    return app


# Create app instance
app = create_app()


# Run with: uvicorn app.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
