"""
Certificate issuance pipeline.

Issues a certificate in four dependent stages:

1. create the basic record in the store,
2. pin the certificate image and its NFT metadata on IPFS,
3. anchor the pinned content through the ledger minting service,
4. render a verification QR code and pin it.

Every stage reads its inputs from the store and writes its output back before
the next stage starts, so a run that stops anywhere leaves a record that
``get_status`` can describe and the per-stage methods can resume.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from ..core.config import Settings, get_settings
from ..core.errors import (
    LedgerError,
    NotFoundError,
    PersistenceError,
    PipelineError,
    PreconditionError,
    ValidationInputError,
)
from ..db.repositories import CertificateRepository, DirectoryRepository
from ..models.certificate import (
    AnchorPayload,
    AnchorResult,
    Certificate,
    CertificateCreate,
    CertificateDetails,
    CertificateMetadata,
    ContentUploadResult,
    Institution,
    InstitutionDetails,
    IpfsReferences,
    MetadataAttribute,
    PipelinePartial,
    PipelineProgress,
    PipelineResult,
    PipelineStep,
    PipelineSuccess,
    PipelineUrls,
    ProgressSnapshot,
    Recipient,
    StudentIdentity,
    ValidationSnapshot,
)
from ..utils.logger import get_logger
from ..utils.serialization import to_iso8601
from .content_store import PinataClient
from .content_validator import ContentValidator
from .ledger_client import LedgerClient
from .ledger_response import parse_mint_response
from .qr_service import QRCodeService
from .status_reporter import StatusReporter

logger = get_logger("certificate_pipeline")

UNKNOWN_INSTITUTION = "Unknown Institution"

IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CertificatePipeline:
    """Drives a certificate through the issuance stages."""

    def __init__(
        self,
        certificates: CertificateRepository,
        directory: DirectoryRepository,
        content_store: PinataClient,
        ledger: LedgerClient,
        qr_service: QRCodeService,
        validator: ContentValidator,
        settings: Optional[Settings] = None,
    ):
        self.certificates = certificates
        self.directory = directory
        self.content_store = content_store
        self.ledger = ledger
        self.qr_service = qr_service
        self.validator = validator
        self.settings = settings or get_settings()
        self.reporter = StatusReporter(self.settings)

    # ------------------------------------------------------------------
    # Stage 1: basic record
    # ------------------------------------------------------------------

    async def create_basic_record(self, data: CertificateCreate) -> Certificate:
        """
        Create a certificate record with no progress fields.

        Every call creates a new certificate, so callers must not retry
        blindly after an ambiguous failure.

        Raises:
            ValidationInputError: If a descriptive field is blank
            PersistenceError: If the institution does not exist or the write fails
        """
        for field in ("recipient_name", "course_name", "institute_id"):
            if not str(getattr(data, field) or "").strip():
                raise ValidationInputError(f"{field} is required")

        logger.info(f"Creating basic certificate for: {data.recipient_name}")

        institution = await self.directory.get_institution(data.institute_id)
        if institution is None:
            raise PersistenceError(f"Institution {data.institute_id} does not exist")

        now = _utcnow()
        document = {
            "_id": str(uuid.uuid4()),
            "recipient_name": data.recipient_name,
            "course_name": data.course_name,
            "institute_id": data.institute_id,
            "issued_at": data.issued_at,
            "image_hash": None,
            "metadata_hash": None,
            "transaction_hash": None,
            "arbitrum_hash": None,
            "qr_url": None,
            "created_at": now,
            "updated_at": now,
        }
        certificate = await self.certificates.insert(document)

        logger.info(f"Basic certificate created: {certificate.id}")
        return certificate

    # ------------------------------------------------------------------
    # Stage 2: content store
    # ------------------------------------------------------------------

    async def upload_to_content_store(
        self,
        certificate_id: str,
        image_bytes: bytes,
        content_type: str = "image/png",
    ) -> ContentUploadResult:
        """
        Pin the certificate image, then the metadata that points at it, and
        persist both content identifiers in one update.

        The two uploads are sequential because the metadata embeds the
        image's URL. On failure the record keeps its previous state.

        Raises:
            ValidationInputError: If the image is empty or too large
            NotFoundError: If the certificate does not exist
            PreconditionError: If the certificate is already anchored
            UploadError: If the content store fails
            PersistenceError: If the hashes cannot be saved
        """
        if not image_bytes:
            raise ValidationInputError("Certificate image is empty")
        if len(image_bytes) > self.settings.MAX_UPLOAD_SIZE:
            raise ValidationInputError(
                f"Certificate image exceeds maximum size of {self.settings.MAX_UPLOAD_SIZE} bytes"
            )

        logger.info(f"Uploading certificate {certificate_id} to Pinata")

        certificate = await self.certificates.get(certificate_id)
        if certificate.is_anchored:
            raise PreconditionError(
                f"Certificate {certificate_id} is already anchored; its content can no longer change"
            )

        institution = await self.directory.get_institution(certificate.institute_id)
        institution_name = (institution.name if institution else None) or UNKNOWN_INSTITUTION

        image = await self.content_store.upload_blob(
            image_bytes,
            f"certificate-{certificate_id}{IMAGE_EXTENSIONS.get(content_type, '.png')}",
            self._tags(certificate, "image"),
            content_type=content_type,
        )

        metadata = self.build_metadata(
            certificate,
            institution_name,
            image_url=self.content_store.public_url(image.cid),
        )
        metadata_upload = await self.content_store.upload_json(
            metadata.model_dump(mode="json", exclude_none=True),
            f"certificate-metadata-{certificate_id}.json",
            self._tags(certificate, "metadata"),
        )

        result = ContentUploadResult(
            image_hash=image.cid,
            metadata_hash=metadata_upload.cid,
            image_url=self.content_store.resolve_url(image.cid),
            metadata_url=self.content_store.resolve_url(metadata_upload.cid),
        )

        await self.certificates.set_content_hashes(certificate_id, result.image_hash, result.metadata_hash)

        logger.info(f"Certificate {certificate_id} uploaded to Pinata successfully")
        return result

    def build_metadata(
        self,
        certificate: Certificate,
        institution_name: str,
        image_url: str,
    ) -> CertificateMetadata:
        """NFT-style metadata document consumed by wallets and explorers."""
        issued_at = to_iso8601(certificate.issued_at)
        external_url = (
            self.reporter.certificate_view_url(certificate.id) if self.settings.frontend_url else None
        )

        return CertificateMetadata(
            id=certificate.id,
            name=f"Certificate - {certificate.recipient_name}",
            description=f"Certificate of {certificate.course_name} issued by {institution_name}",
            course_name=certificate.course_name,
            recipient_name=certificate.recipient_name,
            institution_name=institution_name,
            issued_at=issued_at,
            blockchain=self.settings.BLOCKCHAIN_NAME,
            api_version=self.settings.API_VERSION,
            created_at=to_iso8601(certificate.created_at),
            image=image_url,
            external_url=external_url,
            attributes=[
                MetadataAttribute(trait_type="Recipient", value=certificate.recipient_name),
                MetadataAttribute(trait_type="Course", value=certificate.course_name),
                MetadataAttribute(trait_type="Institution", value=institution_name),
                MetadataAttribute(trait_type="Issued At", value=issued_at),
            ],
        )

    # ------------------------------------------------------------------
    # Stage 3: ledger anchoring
    # ------------------------------------------------------------------

    async def anchor_to_ledger(self, certificate_id: str, force: bool = False) -> AnchorResult:
        """
        Mint the certificate through the ledger service.

        The pinned metadata and image are fetched and checked first; nothing
        is submitted to the ledger unless both resolve. An already anchored
        certificate is only minted again when ``force`` is set.

        Raises:
            NotFoundError: If the certificate or its institution does not exist
            PreconditionError: If the content hashes are missing, or the
                certificate is anchored and ``force`` is false
            ContentValidationError: If the pre-flight check fails
            LedgerError: If minting fails or returns no transaction hash
            PersistenceError: If the transaction hash cannot be saved
        """
        logger.info(f"Sending certificate {certificate_id} to Avalanche")

        certificate = await self.certificates.get(certificate_id)

        if not certificate.has_content:
            raise PreconditionError("Certificate must have image and metadata hashes before anchoring")
        if certificate.is_anchored and not force:
            raise PreconditionError(
                f"Certificate {certificate_id} is already anchored ({certificate.transaction_hash}); "
                f"use force to mint again"
            )

        institution = await self.directory.get_institution(certificate.institute_id)
        if institution is None:
            raise NotFoundError(f"Institution {certificate.institute_id} not found")

        recipient = await self.directory.find_recipient(certificate.recipient_name, certificate.institute_id)
        if recipient:
            logger.info(f"Recipient found: {recipient.full_name} ({recipient.email})")
        else:
            logger.info(f"Recipient not found, using placeholder identity for: {certificate.recipient_name}")

        payload = self.build_anchor_payload(certificate, institution, recipient)

        await self.validator.validate(payload.ipfs.metadata_url)

        reply = await self.ledger.mint(payload.model_dump(mode="json", exclude_none=True))
        if not reply.ok:
            logger.error(f"Ledger service error: {reply.status_code} - {reply.text}")
            raise LedgerError(
                f"Ledger service failed: {reply.status_code} - {reply.text[:500]}",
                upstream_status=reply.status_code,
                upstream_body=reply.body if reply.body is not None else reply.text,
            )

        result = parse_mint_response(reply.body)

        try:
            await self.certificates.set_transaction_hash(certificate_id, result.transaction_hash, allow_replace=force)
        except PersistenceError as e:
            # already minted on the ledger
            logger.error(
                f"Minted transaction {result.transaction_hash} for certificate {certificate_id} "
                f"could not be stored: {e.message}"
            )
            raise PersistenceError(
                f"{e.message} (minted transaction {result.transaction_hash} was not stored)"
            ) from e

        if result.secondary_hash:
            try:
                await self.certificates.set_secondary_hash(certificate_id, result.secondary_hash)
            except PersistenceError as e:
                # supplementary data, the primary anchoring already succeeded
                logger.warning(f"Could not store Arbitrum hash for certificate {certificate_id}: {e}")

        logger.info(f"Certificate {certificate_id} anchored: {result.transaction_hash}")
        return result

    def build_anchor_payload(
        self,
        certificate: Certificate,
        institution: Institution,
        recipient: Optional[Recipient] = None,
    ) -> AnchorPayload:
        """Mint request body; missing recipient or institution fields fall back to settings."""
        s = self.settings

        if recipient:
            student = StudentIdentity(
                id=recipient.id,
                email=recipient.email or s.DEFAULT_STUDENT_EMAIL,
                full_name=recipient.full_name,
                wallet_address=recipient.wallet_address or s.DEFAULT_WALLET_ADDRESS,
            )
        else:
            student = StudentIdentity(
                id=s.DEFAULT_STUDENT_ID,
                email=s.DEFAULT_STUDENT_EMAIL,
                full_name=certificate.recipient_name,
                wallet_address=s.DEFAULT_WALLET_ADDRESS,
            )

        metadata_url = self.content_store.resolve_url(certificate.metadata_hash)

        return AnchorPayload(
            student=student,
            certificate=CertificateDetails(
                title=f"Certificate of Completion - {certificate.course_name}",
                description="Certificate attesting the successful completion of the course",
                course_name=certificate.course_name,
                issued_at=to_iso8601(certificate.issued_at),
                grade=s.DEFAULT_GRADE,
                credits=s.DEFAULT_CREDITS,
            ),
            institution=InstitutionDetails(
                id=institution.id,
                name=institution.name or s.DEFAULT_INSTITUTION_NAME,
                legal_id=institution.legal_id or s.DEFAULT_INSTITUTION_LEGAL_ID,
                address=institution.address or s.DEFAULT_INSTITUTION_ADDRESS,
                website=institution.website or s.DEFAULT_INSTITUTION_WEBSITE,
            ),
            ipfs=IpfsReferences(
                image_hash=certificate.image_hash,
                metadata_hash=certificate.metadata_hash,
                image_url=self.content_store.resolve_url(certificate.image_hash),
                metadata_url=metadata_url,
                token_uri=metadata_url,
                front_end_url=(
                    self.reporter.certificate_view_url(certificate.id) if s.frontend_url else None
                ),
            ),
        )

    # ------------------------------------------------------------------
    # Stage 4: verification code
    # ------------------------------------------------------------------

    async def generate_verification_code(self, certificate_id: str) -> str:
        """
        Render the verification URL as a QR code, pin it and save its URL.

        The code carries ``{frontend}/verify/{id}`` rather than chain data,
        so verification can change without reissuing codes.

        Raises:
            NotFoundError: If the certificate does not exist
            PreconditionError: If the certificate is not anchored
            EncodingError: If the QR image cannot be rendered
            UploadError: If the content store fails
            PersistenceError: If the URL cannot be saved
        """
        logger.info(f"Generating QR code for certificate: {certificate_id}")

        certificate = await self.certificates.get(certificate_id)
        if not certificate.is_anchored:
            raise PreconditionError("Certificate must have a transaction hash before generating its QR code")

        verification_url = self.reporter.verification_url(certificate_id)
        image = self.qr_service.encode(verification_url)

        upload = await self.content_store.upload_blob(
            image,
            f"certificate-qr-{certificate_id}.png",
            self._tags(certificate, "qr_code"),
            content_type="image/png",
        )
        qr_url = self.content_store.resolve_url(upload.cid)

        await self.certificates.set_qr_url(certificate_id, qr_url)

        logger.info(f"QR code generated and uploaded: {qr_url}")
        return qr_url

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def create_complete_certificate(
        self,
        data: CertificateCreate,
        image_bytes: bytes,
        content_type: str = "image/png",
    ) -> PipelineResult:
        """
        Run every stage for a new certificate.

        Errors raised before the record exists propagate. Once the record
        exists, a failing stage yields a PipelinePartial describing what is
        persisted, so the run can be resumed stage by stage.

        Returns:
            PipelineSuccess or PipelinePartial
        """
        if not image_bytes:
            raise ValidationInputError("Image file is required for automatic certificate creation")

        logger.info(f"Starting automatic certificate creation for: {data.recipient_name}")

        logger.info("Step 1/4: Creating basic certificate...")
        certificate = await self.create_basic_record(data)
        certificate_id = certificate.id

        progress = PipelineProgress(
            certificate_id=certificate_id,
            recipient_name=certificate.recipient_name,
            current_step=PipelineStep.CREATING_RECORD.value,
        )

        try:
            logger.info("Step 2/4: Uploading to Pinata...")
            progress.current_step = PipelineStep.UPLOADING_CONTENT.value
            content = await self.upload_to_content_store(certificate_id, image_bytes, content_type=content_type)

            logger.info("Step 3/4: Sending to Avalanche...")
            progress.current_step = PipelineStep.ANCHORING.value
            ledger = await self.anchor_to_ledger(certificate_id)

            logger.info("Step 4/4: Generating QR code...")
            progress.current_step = PipelineStep.GENERATING_CODE.value
            qr_url = await self.generate_verification_code(certificate_id)

            final = await self.certificates.get(certificate_id)
        except Exception as e:
            return await self._partial_result(certificate, progress, e)

        progress.current_step = PipelineStep.COMPLETED.value
        progress.completed_at = _utcnow()

        logger.info(f"Certificate creation completed successfully: {certificate_id}")
        return PipelineSuccess(
            certificate_id=certificate_id,
            certificate=final,
            content=content,
            ledger=ledger,
            qr_url=qr_url,
            progress=progress,
            urls=self._result_urls(certificate_id, content, ledger),
        )

    async def _partial_result(
        self,
        certificate: Certificate,
        progress: PipelineProgress,
        error: Exception,
    ) -> PipelinePartial:
        if isinstance(error, PipelineError):
            logger.error(f"Error in automatic creation at step \"{progress.current_step}\": {error.message}")
            message, code = error.message, error.code
        else:
            logger.error(
                f"Unexpected error in automatic creation at step \"{progress.current_step}\": {error}",
                exc_info=True,
            )
            message, code = str(error) or type(error).__name__, "INTERNAL_ERROR"

        progress.error = message
        progress.failed_at = _utcnow()

        try:
            current_status = await self.get_status(certificate.id)
        except PipelineError as e:
            logger.error(f"Could not read back certificate {certificate.id} after failure: {e.message}")
            current_status = self.reporter.progress(certificate)

        return PipelinePartial(
            certificate_id=certificate.id,
            error=message,
            error_code=code,
            progress=progress,
            current_status=current_status,
            message=(
                f"Certificate basic creation succeeded, but failed at: {progress.current_step}. "
                f"You can continue manually using the individual step endpoints."
            ),
        )

    def _result_urls(
        self,
        certificate_id: str,
        content: ContentUploadResult,
        ledger: AnchorResult,
    ) -> PipelineUrls:
        if ledger.avalanche and ledger.avalanche.transaction_hash:
            avalanche_hash = ledger.avalanche.transaction_hash
        elif ledger.arbitrum is None:
            # flat answers carry the primary chain hash
            avalanche_hash = ledger.transaction_hash
        else:
            avalanche_hash = None

        verification_url = self.reporter.verification_url(certificate_id)
        return PipelineUrls(
            certificate_view=self.reporter.certificate_view_url(certificate_id),
            verification=verification_url,
            image=content.image_url,
            metadata=content.metadata_url,
            qr=verification_url,
            blockchain_avalanche_url=self.reporter.avalanche_explorer_url(avalanche_hash),
            blockchain_arbitrum_url=self.reporter.arbitrum_explorer_url(ledger.secondary_hash),
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    async def get_certificate(self, certificate_id: str) -> Certificate:
        return await self.certificates.get(certificate_id)

    async def get_status(self, certificate_id: str) -> ProgressSnapshot:
        """Progress derived from persisted fields; raises NotFoundError for unknown ids."""
        certificate = await self.certificates.get(certificate_id)
        return self.reporter.progress(certificate)

    async def validate(self, certificate_id: str) -> ValidationSnapshot:
        """Validation snapshot; lookup failures are reported in the snapshot, not raised."""
        logger.info(f"Validating certificate: {certificate_id}")
        try:
            certificate = await self.certificates.get(certificate_id)
        except (NotFoundError, PersistenceError) as e:
            logger.warning(f"Validation of certificate {certificate_id} failed: {e.message}")
            return self.reporter.invalid(certificate_id, e.message)

        return self.reporter.validation(certificate)

    @staticmethod
    def _tags(certificate: Certificate, kind: str) -> dict:
        return {
            "certificate_id": certificate.id,
            "type": kind,
            "recipient_name": certificate.recipient_name,
        }
