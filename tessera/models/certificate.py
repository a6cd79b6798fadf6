"""
Certificate models and schemas for the issuance pipeline.

Covers the persisted certificate record, the read-only collaborator entities
(institutions and recipients), the payloads sent to external services and the
results and snapshots returned by the pipeline.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PipelineStep(str, Enum):
    """Labels of the pipeline stages, in execution order."""
    CREATING_RECORD = "Creating basic record"
    UPLOADING_CONTENT = "Uploading to Pinata"
    ANCHORING = "Sending to Avalanche"
    GENERATING_CODE = "Generating QR code"
    COMPLETED = "Completed"


class CertificateCreate(BaseModel):
    """Schema for creating a basic certificate record."""

    recipient_name: str = Field(..., min_length=1, max_length=200, description="Full name of the recipient")
    course_name: str = Field(..., min_length=1, max_length=300, description="Course or program name")
    institute_id: str = Field(..., min_length=1, description="Issuing institution id")
    issued_at: datetime = Field(..., description="Issue timestamp (ISO-8601)")

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "recipient_name": "Jane Doe",
                "course_name": "Blockchain 101",
                "institute_id": "a61fbe42-db63-4b1d-853f-bebb56fae790",
                "issued_at": "2025-01-15T00:00:00Z"
            }
        }
    )


class Certificate(BaseModel):
    """Certificate record as stored in the ``certificates`` collection."""

    id: str = Field(..., alias="_id", description="Certificate UUID")
    recipient_name: str
    course_name: str
    institute_id: str
    issued_at: datetime

    image_hash: Optional[str] = Field(None, description="CID of the certificate image")
    metadata_hash: Optional[str] = Field(None, description="CID of the NFT metadata JSON")
    transaction_hash: Optional[str] = Field(None, description="Primary chain transaction hash")
    arbitrum_hash: Optional[str] = Field(None, description="Secondary chain transaction hash")
    qr_url: Optional[str] = Field(None, description="Gateway URL of the verification QR image")

    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def has_content(self) -> bool:
        return bool(self.image_hash and self.metadata_hash)

    @property
    def is_anchored(self) -> bool:
        return bool(self.transaction_hash)

    @property
    def has_code(self) -> bool:
        return bool(self.qr_url)


class Institution(BaseModel):
    """Issuing institution, read-only from the pipeline's perspective."""

    id: str = Field(..., alias="_id")
    name: Optional[str] = None
    legal_id: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Recipient(BaseModel):
    """User record matched to a certificate recipient by name."""

    id: str = Field(..., alias="_id")
    email: Optional[str] = None
    full_name: str
    institution_id: Optional[str] = None
    wallet_address: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Content store
# ---------------------------------------------------------------------------

class ContentUpload(BaseModel):
    """Result of a single upload to the content-addressed store."""

    cid: str
    name: Optional[str] = None
    size: Optional[int] = None


class MetadataAttribute(BaseModel):
    trait_type: str
    value: str


class CertificateMetadata(BaseModel):
    """NFT-style metadata document uploaded next to the certificate image."""

    id: str
    name: str
    description: str
    course_name: str
    recipient_name: str
    institution_name: str
    issued_at: str
    certificate_type: str = "Digital Certificate"
    blockchain: str
    api_version: str
    created_at: str
    image: str
    external_url: Optional[str] = None
    attributes: List[MetadataAttribute] = Field(default_factory=list)


class ContentUploadResult(BaseModel):
    """Hashes and gateway URLs produced by the upload step."""

    image_hash: str
    metadata_hash: str
    image_url: str
    metadata_url: str


# ---------------------------------------------------------------------------
# Ledger anchoring
# ---------------------------------------------------------------------------

class StudentIdentity(BaseModel):
    id: str
    email: str
    full_name: str
    wallet_address: str


class CertificateDetails(BaseModel):
    title: str
    description: str
    course_name: str
    issued_at: str
    grade: str
    credits: int


class InstitutionDetails(BaseModel):
    id: str
    name: str
    legal_id: str
    address: str
    website: str


class IpfsReferences(BaseModel):
    image_hash: str
    metadata_hash: str
    image_url: str
    metadata_url: str
    token_uri: str
    front_end_url: Optional[str] = None


class AnchorPayload(BaseModel):
    """Request body of the external mint service."""

    student: StudentIdentity
    certificate: CertificateDetails
    institution: InstitutionDetails
    ipfs: IpfsReferences


class ChainReceipt(BaseModel):
    """Per-chain details reported by the mint service."""

    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[Any] = None
    contract_address: Optional[str] = None
    network: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class AnchorResult(BaseModel):
    """Outcome of the anchoring step."""

    transaction_hash: str
    secondary_hash: Optional[str] = None
    avalanche: Optional[ChainReceipt] = None
    arbitrum: Optional[ChainReceipt] = None


# ---------------------------------------------------------------------------
# Snapshots and pipeline results
# ---------------------------------------------------------------------------

class ProgressFlags(BaseModel):
    basic_created: bool = True
    uploaded_to_content_store: bool = False
    anchored_to_ledger: bool = False
    code_generated: bool = False


class StatusUrls(BaseModel):
    image_url: Optional[str] = None
    metadata_url: Optional[str] = None
    qr_url: Optional[str] = None


class LedgerStatus(BaseModel):
    transaction_hash: Optional[str] = None
    arbitrum_hash: Optional[str] = None


class ProgressSnapshot(BaseModel):
    """Progress of a certificate derived from its persisted fields."""

    certificate_id: str
    recipient_name: str
    progress: ProgressFlags
    current_step: str = Field(..., description="Next stage to run, or 'Completed'")
    urls: StatusUrls
    ledger: LedgerStatus


class ValidationSnapshot(BaseModel):
    """Completion and validity checks of a certificate."""

    certificate_id: str
    valid: bool
    error: Optional[str] = None
    database_check: bool = False
    content_store_check: bool = False
    ledger_check: bool = False
    secondary_ledger_check: bool = False
    code_check: bool = False
    recipient_name: Optional[str] = None
    course_name: Optional[str] = None
    issued_at: Optional[datetime] = None
    verification_url: Optional[str] = None
    image_url: Optional[str] = None
    metadata_url: Optional[str] = None
    qr_url: Optional[str] = None
    avalanche_explorer_url: Optional[str] = None
    arbitrum_explorer_url: Optional[str] = None


class PipelineProgress(BaseModel):
    """Step tracking of one ``create_complete_certificate`` run."""

    certificate_id: str
    recipient_name: str
    current_step: str
    error: Optional[str] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None


class PipelineUrls(BaseModel):
    certificate_view: str
    verification: str
    image: str
    metadata: str
    qr: str
    blockchain_avalanche_url: Optional[str] = None
    blockchain_arbitrum_url: Optional[str] = None


class PipelineSuccess(BaseModel):
    """Every stage completed."""

    success: Literal[True] = True
    certificate_id: str
    certificate: Certificate
    content: ContentUploadResult
    ledger: AnchorResult
    qr_url: str
    progress: PipelineProgress
    urls: PipelineUrls


class PipelinePartial(BaseModel):
    """The record exists but a later stage failed; resumable per step."""

    success: Literal[False] = False
    certificate_id: str
    error: str
    error_code: str
    progress: PipelineProgress
    current_status: ProgressSnapshot
    message: str


PipelineResult = Union[PipelineSuccess, PipelinePartial]
