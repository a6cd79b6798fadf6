"""
Derived views over a certificate's persisted fields.

Nothing here performs I/O: the snapshots are pure functions of the record and
the configured URLs, so reading the same record twice yields equal snapshots.
"""

from typing import Optional

from ..core.config import Settings, get_settings
from ..models.certificate import (
    Certificate,
    LedgerStatus,
    PipelineStep,
    ProgressFlags,
    ProgressSnapshot,
    StatusUrls,
    ValidationSnapshot,
)


class StatusReporter:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    # -- URLs ---------------------------------------------------------------

    def _frontend_path(self, path: str) -> str:
        # relative path when no frontend is configured
        return f"{self.settings.frontend_url}{path}"

    def verification_url(self, certificate_id: str) -> str:
        return self._frontend_path(f"/verify/{certificate_id}")

    def certificate_view_url(self, certificate_id: str) -> str:
        return self._frontend_path(f"/certificate/{certificate_id}")

    def gateway_url(self, cid: Optional[str]) -> Optional[str]:
        return f"{self.settings.gateway_url}/ipfs/{cid}" if cid else None

    def avalanche_explorer_url(self, transaction_hash: Optional[str]) -> Optional[str]:
        if not transaction_hash:
            return None
        return f"{self.settings.AVALANCHE_EXPLORER_URL}/tx/{transaction_hash}"

    def arbitrum_explorer_url(self, transaction_hash: Optional[str]) -> Optional[str]:
        if not transaction_hash:
            return None
        return f"{self.settings.ARBITRUM_EXPLORER_URL}/tx/{transaction_hash}"

    # -- Snapshots ----------------------------------------------------------

    @staticmethod
    def next_step(certificate: Certificate) -> PipelineStep:
        """The first stage whose output is not persisted yet."""
        if not certificate.has_content:
            return PipelineStep.UPLOADING_CONTENT
        if not certificate.is_anchored:
            return PipelineStep.ANCHORING
        if not certificate.has_code:
            return PipelineStep.GENERATING_CODE
        return PipelineStep.COMPLETED

    @staticmethod
    def consistency_error(certificate: Certificate) -> Optional[str]:
        """Describe a broken stage ordering, or None when the record is consistent."""
        if certificate.is_anchored and not certificate.has_content:
            return "transaction hash present without image and metadata hashes"
        if certificate.arbitrum_hash and not certificate.is_anchored:
            return "secondary chain hash present without transaction hash"
        if certificate.has_code and not certificate.is_anchored:
            return "QR code present without transaction hash"
        return None

    def progress(self, certificate: Certificate) -> ProgressSnapshot:
        return ProgressSnapshot(
            certificate_id=certificate.id,
            recipient_name=certificate.recipient_name,
            progress=ProgressFlags(
                basic_created=True,
                uploaded_to_content_store=certificate.has_content,
                anchored_to_ledger=certificate.is_anchored,
                code_generated=certificate.has_code,
            ),
            current_step=self.next_step(certificate).value,
            urls=StatusUrls(
                image_url=self.gateway_url(certificate.image_hash),
                metadata_url=self.gateway_url(certificate.metadata_hash),
                qr_url=certificate.qr_url,
            ),
            ledger=LedgerStatus(
                transaction_hash=certificate.transaction_hash,
                arbitrum_hash=certificate.arbitrum_hash,
            ),
        )

    def validation(self, certificate: Certificate) -> ValidationSnapshot:
        error = self.consistency_error(certificate)
        return ValidationSnapshot(
            certificate_id=certificate.id,
            valid=error is None,
            error=error,
            database_check=True,
            content_store_check=certificate.has_content,
            ledger_check=certificate.is_anchored,
            secondary_ledger_check=bool(certificate.arbitrum_hash),
            code_check=certificate.has_code,
            recipient_name=certificate.recipient_name,
            course_name=certificate.course_name,
            issued_at=certificate.issued_at,
            verification_url=self.verification_url(certificate.id),
            image_url=self.gateway_url(certificate.image_hash),
            metadata_url=self.gateway_url(certificate.metadata_hash),
            qr_url=certificate.qr_url,
            avalanche_explorer_url=self.avalanche_explorer_url(certificate.transaction_hash),
            arbitrum_explorer_url=self.arbitrum_explorer_url(certificate.arbitrum_hash),
        )

    @staticmethod
    def invalid(certificate_id: str, error: str) -> ValidationSnapshot:
        return ValidationSnapshot(certificate_id=certificate_id, valid=False, error=error)
