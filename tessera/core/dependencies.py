"""
FastAPI dependencies that assemble the certificate pipeline per request.
"""

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..db.mongo import DatabaseDep
from ..db.repositories import CertificateRepository, DirectoryRepository
from ..services.certificate_pipeline import CertificatePipeline
from ..services.content_store import PinataClient
from ..services.content_validator import ContentValidator
from ..services.ledger_client import LedgerClient
from ..services.qr_service import QRCodeService
from .config import Settings, get_settings


def get_settings_dependency() -> Settings:
    """FastAPI dependency wrapper around get_settings()."""
    return get_settings()


async def get_certificate_pipeline(
    db: AsyncIOMotorDatabase = DatabaseDep,
    settings: Settings = Depends(get_settings_dependency),
) -> CertificatePipeline:
    """
    Build a pipeline bound to the connected database.

    Args:
        db: MongoDB database dependency
        settings: Application settings

    Returns:
        CertificatePipeline wired to the configured external services
    """
    return CertificatePipeline(
        certificates=CertificateRepository(db),
        directory=DirectoryRepository(db),
        content_store=PinataClient(settings),
        ledger=LedgerClient(settings),
        qr_service=QRCodeService(),
        validator=ContentValidator(settings),
        settings=settings,
    )


PipelineDep = Depends(get_certificate_pipeline)
