from fastapi import FastAPI, Query, status
from fastapi.responses import JSONResponse, Response
from typing import List, Optional
import logging
import sys

from . import schemas
from .config import settings
from .fhir import (
    DocumentType,
    JpClinsError,
    UnsupportedFormatError,
    check_document_bundle,
    is_valid_format,
    serialize_bundle,
    transform_document,
)
from .fhir.constants import FHIR_VERSION, IMPLEMENTATION_GUIDE_VERSION
from .fhir.serializer import SUPPORTED_FORMATS

from contextlib import asynccontextmanager

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log effective configuration on startup"""
    logger.info(
        "%s %s started (default format=%s, require_encounter=%s)",
        settings.app_name, settings.app_version, settings.default_format, settings.require_encounter
    )
    yield

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Converts eReferral, eDischargeSummary and eCheckup documents to JP-CLINS FHIR Bundles",
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan
)


def _error_response(status_code: int, message: str, validation_errors: Optional[List[str]] = None) -> JSONResponse:
    body = schemas.ApiResponse(
        success=False,
        error_message=message,
        validation_errors=validation_errors or []
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))


def _convert(
    document: schemas.ClinicalDocument,
    document_type: DocumentType,
    format: Optional[str],
    pretty_format: Optional[bool]
) -> Response:
    """Shared conversion flow: check format, transform, serialize"""
    fmt = format or settings.default_format
    pretty = settings.default_pretty_format if pretty_format is None else pretty_format

    if not is_valid_format(fmt):
        logger.info("Rejected %s request: unsupported format %r", document_type.value, fmt)
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            f"Unsupported format '{fmt}'. Supported formats: {', '.join(SUPPORTED_FORMATS)}"
        )

    try:
        result = transform_document(document, document_type)
        if not result.success:
            return _error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", result.errors)

        if settings.check_output_conformance:
            for problem in check_document_bundle(result.bundle):
                logger.warning("Bundle %s: %s", result.bundle.id, problem)

        output = serialize_bundle(result.bundle, fmt, pretty)
    except UnsupportedFormatError as e:
        return _error_response(status.HTTP_400_BAD_REQUEST, str(e))
    except JpClinsError:
        logger.exception("%s conversion failed", document_type.value)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error during conversion")
    except Exception:
        logger.exception("Unexpected error converting %s", document_type.value)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error during conversion")

    logger.info("Converted %s to bundle %s (%s)", document_type.value, output.bundle_id, output.format)
    return Response(content=output.content, media_type=output.content_type)

# ============================================================================
# SERVICE ENDPOINTS
# ============================================================================

@app.get("/health", response_model=schemas.HealthResponse)
def health_check():
    """
    Health check endpoint - returns {"status": "ok"}
    """
    return {"status": "ok"}

@app.get("/api/hl7conversion/health", response_model=schemas.ServiceHealth, response_model_by_alias=True)
def conversion_health():
    """Conversion service health with name and version"""
    return schemas.ServiceHealth(status="Healthy", service=settings.app_name, version=settings.app_version)

@app.get("/api/hl7conversion/capabilities", response_model=schemas.CapabilitiesResponse, response_model_by_alias=True)
def capabilities():
    """
    Supported output formats and document types
    """
    return schemas.CapabilitiesResponse(
        service=settings.app_name,
        version=settings.app_version,
        supported_formats=list(SUPPORTED_FORMATS),
        supported_document_types=[t.value for t in DocumentType if t != DocumentType.UNKNOWN],
        compliance=f"JP-CLINS v{IMPLEMENTATION_GUIDE_VERSION}",
        fhir_version=FHIR_VERSION
    )

# ============================================================================
# CONVERSION ENDPOINTS
# ============================================================================

@app.post("/api/hl7conversion/ereferral")
def convert_ereferral(
    document: schemas.ClinicalDocument,
    format: Optional[str] = Query(None, description="Output format: json or xml"),
    pretty_format: Optional[bool] = Query(None, alias="prettyFormat", description="Indent output")
):
    """
    Convert an eReferral (電子紹介状) document to a FHIR document Bundle

    Returns the serialized Bundle with a FHIR content type, or an ApiResponse
    error (400) listing every validation problem.
    """
    return _convert(document, DocumentType.EREFERRAL, format, pretty_format)

@app.post("/api/hl7conversion/dischargesummary")
def convert_discharge_summary(
    document: schemas.ClinicalDocument,
    format: Optional[str] = Query(None, description="Output format: json or xml"),
    pretty_format: Optional[bool] = Query(None, alias="prettyFormat", description="Indent output")
):
    """
    Convert an eDischargeSummary (退院時サマリー) document to a FHIR document Bundle
    """
    return _convert(document, DocumentType.EDISCHARGE_SUMMARY, format, pretty_format)

@app.post("/api/hl7conversion/checkup")
def convert_checkup(
    document: schemas.ClinicalDocument,
    format: Optional[str] = Query(None, description="Output format: json or xml"),
    pretty_format: Optional[bool] = Query(None, alias="prettyFormat", description="Indent output")
):
    """
    Convert an eCheckup (健診結果) document to a FHIR document Bundle
    """
    return _convert(document, DocumentType.ECHECKUP, format, pretty_format)
