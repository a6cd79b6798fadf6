"""
Certificate issuance API endpoints.

``POST /certificates/create-complete`` runs the whole pipeline. The per-stage
endpoints run one stage each so an interrupted issuance can be resumed.
Domain errors propagate to the application exception handler.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ...core.config import Settings
from ...core.dependencies import PipelineDep, get_settings_dependency
from ...core.errors import ValidationInputError
from ...models.certificate import (
    AnchorResult,
    Certificate,
    CertificateCreate,
    ContentUploadResult,
    ProgressSnapshot,
    ValidationSnapshot,
)
from ...services.certificate_pipeline import CertificatePipeline
from ...utils.logger import get_logger

logger = get_logger("certificates_api")

router = APIRouter(
    prefix="/api/v1/certificates",
    tags=["certificates"],
    responses={
        400: {"description": "Invalid input or stage precondition not met"},
        404: {"description": "Certificate not found"},
        502: {"description": "External service failure"}
    }
)


async def _read_image(image: Optional[UploadFile], settings: Settings) -> bytes:
    if image is None:
        raise ValidationInputError("Image file is required")

    content = await image.read()
    if not content:
        raise ValidationInputError("Image file is empty")
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise ValidationInputError(
            f"Image file exceeds maximum size of {settings.MAX_UPLOAD_SIZE} bytes"
        )
    return content


def _certificate_input(
    recipient_name: Optional[str],
    course_name: Optional[str],
    institute_id: Optional[str],
    issued_at: Optional[str],
) -> CertificateCreate:
    missing = [
        name for name, value in (
            ("recipient_name", recipient_name),
            ("course_name", course_name),
            ("institute_id", institute_id),
            ("issued_at", issued_at),
        )
        if not value or not value.strip()
    ]
    if missing:
        raise ValidationInputError(f"Missing required fields: {', '.join(missing)}")

    try:
        return CertificateCreate(
            recipient_name=recipient_name,
            course_name=course_name,
            institute_id=institute_id,
            issued_at=issued_at,
        )
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationInputError(f"Invalid certificate fields: {details}") from e


@router.post(
    "/create-complete",
    summary="Create Complete Certificate",
    description=(
        "Create a certificate and run every issuance stage: upload to Pinata, "
        "anchoring on Avalanche and QR code generation. Answers 201 when all "
        "stages complete and 206 when the record was created but a later stage failed."
    ),
    status_code=status.HTTP_201_CREATED,
    responses={206: {"description": "Certificate created, a later stage failed"}}
)
async def create_complete_certificate(
    recipient_name: Optional[str] = Form(None),
    course_name: Optional[str] = Form(None),
    institute_id: Optional[str] = Form(None),
    issued_at: Optional[str] = Form(None, description="Issue timestamp (ISO-8601)"),
    image: Optional[UploadFile] = File(None, description="Certificate image (PNG, JPEG, GIF or WebP)"),
    pipeline: CertificatePipeline = PipelineDep,
    settings: Settings = Depends(get_settings_dependency),
):
    """
    Run the full issuance pipeline for a new certificate.

    Returns:
        PipelineSuccess (201) or PipelinePartial (206) as JSON

    Raises:
        ValidationInputError: If a field or the image is missing or invalid
        PersistenceError: If the basic record cannot be created
    """
    data = _certificate_input(recipient_name, course_name, institute_id, issued_at)
    content = await _read_image(image, settings)

    result = await pipeline.create_complete_certificate(
        data,
        content,
        content_type=image.content_type or "image/png",
    )
    if not result.success:
        logger.warning(f"Certificate {result.certificate_id} stopped at: {result.progress.current_step}")

    status_code = status.HTTP_201_CREATED if result.success else status.HTTP_206_PARTIAL_CONTENT
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.post(
    "",
    response_model=Certificate,
    response_model_by_alias=False,
    summary="Create Basic Certificate",
    description="Create the certificate record only (stage 1)",
    status_code=status.HTTP_201_CREATED
)
async def create_basic_certificate(
    data: CertificateCreate,
    pipeline: CertificatePipeline = PipelineDep,
):
    return await pipeline.create_basic_record(data)


@router.get(
    "/health",
    summary="Certificates Service Health",
    description="Liveness of the certificates service with its endpoints and features"
)
async def certificates_health(settings: Settings = Depends(get_settings_dependency)):
    return {
        "success": True,
        "service": "certificates",
        "status": "healthy",
        "version": settings.API_VERSION,
        "timestamp": int(time.time()),
        "endpoints": {
            "create_complete": "POST /api/v1/certificates/create-complete",
            "create_basic": "POST /api/v1/certificates",
            "upload": "POST /api/v1/certificates/{id}/upload",
            "anchor": "POST /api/v1/certificates/{id}/anchor",
            "qr": "POST /api/v1/certificates/{id}/qr",
            "get": "GET /api/v1/certificates/{id}",
            "status": "GET /api/v1/certificates/{id}/status",
            "validate": "GET /api/v1/certificates/{id}/validate"
        },
        "features": [
            "IPFS pinning through Pinata",
            "Avalanche anchoring with Arbitrum receipt",
            "QR verification codes",
            "Resumable per-stage issuance"
        ]
    }


@router.get(
    "/{certificate_id}",
    response_model=Certificate,
    response_model_by_alias=False,
    summary="Get Certificate",
    description="Raw certificate record"
)
async def get_certificate(certificate_id: str, pipeline: CertificatePipeline = PipelineDep):
    return await pipeline.get_certificate(certificate_id)


@router.post(
    "/{certificate_id}/upload",
    response_model=ContentUploadResult,
    summary="Upload to Pinata",
    description="Pin the certificate image and its metadata (stage 2)"
)
async def upload_certificate_content(
    certificate_id: str,
    image: Optional[UploadFile] = File(None, description="Certificate image (PNG, JPEG, GIF or WebP)"),
    pipeline: CertificatePipeline = PipelineDep,
    settings: Settings = Depends(get_settings_dependency),
):
    content = await _read_image(image, settings)
    return await pipeline.upload_to_content_store(
        certificate_id,
        content,
        content_type=image.content_type or "image/png",
    )


@router.post(
    "/{certificate_id}/anchor",
    response_model=AnchorResult,
    summary="Send to Avalanche",
    description=(
        "Validate the pinned content and mint the certificate (stage 3). "
        "An anchored certificate is only minted again with force=true."
    )
)
async def anchor_certificate(
    certificate_id: str,
    force: bool = Query(False, description="Mint again even if already anchored"),
    pipeline: CertificatePipeline = PipelineDep,
):
    return await pipeline.anchor_to_ledger(certificate_id, force=force)


@router.post(
    "/{certificate_id}/qr",
    summary="Generate QR Code",
    description="Render and pin the verification QR code (stage 4)"
)
async def generate_certificate_qr(certificate_id: str, pipeline: CertificatePipeline = PipelineDep):
    qr_url = await pipeline.generate_verification_code(certificate_id)
    return {"success": True, "certificate_id": certificate_id, "qr_url": qr_url}


@router.get(
    "/{certificate_id}/status",
    response_model=ProgressSnapshot,
    summary="Certificate Status",
    description="Progress of the certificate through the issuance stages"
)
async def get_certificate_status(certificate_id: str, pipeline: CertificatePipeline = PipelineDep):
    return await pipeline.get_status(certificate_id)


@router.get(
    "/{certificate_id}/validate",
    response_model=ValidationSnapshot,
    summary="Validate Certificate",
    description="Completion and consistency checks of the certificate"
)
async def validate_certificate(certificate_id: str, pipeline: CertificatePipeline = PipelineDep):
    return await pipeline.validate(certificate_id)
