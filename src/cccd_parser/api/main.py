#!/usr/bin/env python3
"""
Main FastAPI Application

FastAPI application exposing the CCCD pipeline: health check, full
extraction from uploaded card photos and a standalone quality check.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Config, get_config
from ..exceptions import CCCDParserError
from ..image_io import load_image
from ..kyc import derive_verification_status
from ..pipeline import CCCDPipeline
from .models import ExtractionResponse, HealthResponse, QualityReportModel

# Configure logging
logger = logging.getLogger(__name__)


def get_pipeline(request: Request) -> CCCDPipeline:
    """Return the application's pipeline, building it on first use."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        pipeline = CCCDPipeline(request.app.state.config)
        request.app.state.pipeline = pipeline
    return pipeline


async def _read_upload(upload: UploadFile, max_size: int) -> bytes:
    data = await upload.read()
    if len(data) > max_size:
        raise HTTPException(
            status_code=413,
            detail=f"File {upload.filename} exceeds {max_size} bytes"
        )
    return data


def create_app(config: Optional[Config] = None, pipeline: Optional[CCCDPipeline] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Configuration, defaults to the global configuration
        pipeline: Pipeline to serve; built lazily from ``config`` when omitted

    Returns:
        FastAPI: Configured application
    """
    config = config or get_config()

    app = FastAPI(
        title="CCCD Parser API",
        description="Vietnamese citizen identity card OCR and field extraction API",
        version=__version__,
        debug=config.api.debug
    )
    app.state.config = config
    app.state.pipeline = pipeline

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests."""
        start_time = time.time()
        logger.info(
            f"Request: {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(f"Response: {response.status_code} ({process_time:.3f}s)")
        return response

    # Exception handlers

    @app.exception_handler(CCCDParserError)
    async def parser_error_handler(request: Request, exc: CCCDParserError):
        """Map parser errors to their HTTP status."""
        logger.error(f"{exc.error_code} in {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": "HTTP_ERROR",
                    "message": exc.detail,
                    "status": exc.status_code,
                    "details": {}
                }
            }
        )

    # Routes

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health(pipeline: CCCDPipeline = Depends(get_pipeline)) -> Dict[str, Any]:
        """Service health and OCR engine information."""
        engine = pipeline.recognizer.get_engine_info()
        engine_ready = engine.get("engine") != "tesseract" or engine.get("tesseract_version") is not None
        return {
            "status": "healthy" if engine_ready else "degraded",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc),
            "engine": engine
        }

    @app.post("/api/v1/cccd/extract", response_model=ExtractionResponse, tags=["CCCD"])
    async def extract_cccd(front: UploadFile = File(..., description="Front side photo"),
                           back: Optional[UploadFile] = File(None, description="Back side photo"),
                           number_only: bool = Form(False, description="Only read the ID number"),
                           pipeline: CCCDPipeline = Depends(get_pipeline)) -> Dict[str, Any]:
        """Extract identity fields from CCCD photos."""
        max_size = config.api.max_upload_size
        front_data = await _read_upload(front, max_size)
        back_data = await _read_upload(back, max_size) if back is not None else None
        if not back_data:
            back_data = None

        result = await pipeline.process(front_data, back_data, number_only=number_only)

        response = result.to_dict()
        response["verification_status"] = derive_verification_status(
            result.confidence_score, config.validation.verification_threshold
        ).value
        return response

    @app.post("/api/v1/cccd/quality", response_model=QualityReportModel, tags=["CCCD"])
    async def check_quality(image: UploadFile = File(..., description="Card photo"),
                            pipeline: CCCDPipeline = Depends(get_pipeline)) -> Dict[str, Any]:
        """Run the quality gate on a single photo."""
        data = await _read_upload(image, config.api.max_upload_size)
        decoded = await run_in_threadpool(load_image, data)
        report = await run_in_threadpool(pipeline.quality_checker.check, decoded)
        return report.to_dict()

    return app


# Create FastAPI application
app = create_app()

if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(
        "cccd_parser.api.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=config.api.debug,
        log_level="info" if not config.api.debug else "debug"
    )
