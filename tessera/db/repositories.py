"""
Record store for the certificate pipeline.

``CertificateRepository`` owns the ``certificates`` collection. Every progress
update is a single-field-group ``$set`` whose filter also encodes the stage
precondition, so a write that would break the stage ordering matches no
document and is reported instead of applied.

``DirectoryRepository`` gives read-only access to the ``institutions`` and
``users`` collections maintained by the administrative side of the platform.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError
from pydantic import ValidationError

from ..core.errors import NotFoundError, PersistenceError
from ..models.certificate import Certificate, Institution, Recipient
from ..utils.logger import get_logger

logger = get_logger("repositories")

_SET = {"$ne": None}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CertificateRepository:
    """Persistence for certificate records and their progress fields."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.certificates

    async def insert(self, document: Dict[str, Any]) -> Certificate:
        """
        Insert a new certificate document.

        Args:
            document: Fields of the record, ``_id`` included

        Returns:
            The stored certificate

        Raises:
            PersistenceError: If the store rejects the write
        """
        try:
            await self.collection.insert_one(document)
        except DuplicateKeyError as e:
            raise PersistenceError(f"Certificate {document.get('_id')} already exists") from e
        except PyMongoError as e:
            logger.error(f"Failed to insert certificate {document.get('_id')}: {e}")
            raise PersistenceError(f"Database error: {e}") from e

        return Certificate.model_validate(document)

    async def get(self, certificate_id: str) -> Certificate:
        """
        Fetch a certificate by id.

        Raises:
            NotFoundError: If no certificate has this id
            PersistenceError: If the store cannot be read or the stored record is malformed
        """
        try:
            document = await self.collection.find_one({"_id": certificate_id})
        except PyMongoError as e:
            logger.error(f"Failed to read certificate {certificate_id}: {e}")
            raise PersistenceError(f"Database error: {e}") from e

        if not document:
            raise NotFoundError(f"Certificate {certificate_id} not found")

        try:
            return Certificate.model_validate(document)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            logger.error(f"Certificate {certificate_id} is malformed: {e}")
            raise PersistenceError(f"Certificate {certificate_id} is malformed: invalid {fields}") from e

    async def set_content_hashes(self, certificate_id: str, image_hash: str, metadata_hash: str) -> None:
        """Persist both content identifiers; refused once the certificate is anchored."""
        self._require_values(image_hash=image_hash, metadata_hash=metadata_hash)
        await self._update(
            certificate_id,
            {"transaction_hash": None},
            {"image_hash": image_hash, "metadata_hash": metadata_hash},
            "content hashes",
        )

    async def set_transaction_hash(
        self,
        certificate_id: str,
        transaction_hash: str,
        allow_replace: bool = False,
    ) -> None:
        """Persist the primary chain transaction hash; requires both content hashes."""
        self._require_values(transaction_hash=transaction_hash)
        precondition = {"image_hash": _SET, "metadata_hash": _SET}
        if not allow_replace:
            precondition["transaction_hash"] = None
        await self._update(
            certificate_id,
            precondition,
            {"transaction_hash": transaction_hash},
            "transaction hash",
        )

    async def set_secondary_hash(self, certificate_id: str, arbitrum_hash: str) -> None:
        """Persist the secondary chain transaction hash; requires the primary hash."""
        self._require_values(arbitrum_hash=arbitrum_hash)
        await self._update(
            certificate_id,
            {"transaction_hash": _SET},
            {"arbitrum_hash": arbitrum_hash},
            "secondary chain hash",
        )

    async def set_qr_url(self, certificate_id: str, qr_url: str) -> None:
        """Persist the QR image URL; requires the primary transaction hash."""
        self._require_values(qr_url=qr_url)
        await self._update(
            certificate_id,
            {"transaction_hash": _SET},
            {"qr_url": qr_url},
            "QR URL",
        )

    @staticmethod
    def _require_values(**values: Optional[str]) -> None:
        # progress fields are never cleared
        empty = [name for name, value in values.items() if not value]
        if empty:
            raise PersistenceError(f"Refusing to write empty value for {', '.join(empty)}")

    async def _update(
        self,
        certificate_id: str,
        precondition: Dict[str, Any],
        fields: Dict[str, Any],
        label: str,
    ) -> None:
        query = {"_id": certificate_id, **precondition}
        try:
            result = await self.collection.update_one(
                query,
                {"$set": {**fields, "updated_at": _utcnow()}},
            )
        except PyMongoError as e:
            logger.error(f"Failed to update {label} for certificate {certificate_id}: {e}")
            raise PersistenceError(f"Failed to update {label}: {e}") from e

        if result.matched_count == 0:
            raise PersistenceError(
                f"Failed to update {label}: certificate {certificate_id} is missing "
                f"or its earlier stages are not persisted"
            )

        logger.info(f"Certificate {certificate_id}: {label} updated")


class DirectoryRepository:
    """Read-only lookups of institutions and platform users."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.institutions = db.institutions
        self.users = db.users

    async def get_institution(self, institution_id: str) -> Optional[Institution]:
        """
        Resolve an institution by id.

        Raises:
            PersistenceError: If the store cannot be read
        """
        try:
            document = await self.institutions.find_one({"_id": institution_id})
        except PyMongoError as e:
            logger.error(f"Failed to read institution {institution_id}: {e}")
            raise PersistenceError(f"Database error: {e}") from e

        return Institution.model_validate(document) if document else None

    async def find_recipient(self, full_name: str, institution_id: str) -> Optional[Recipient]:
        """
        Best-effort match of a recipient to a user by display name.

        Names are not unique: more than one match is treated as no match.
        Lookup failures are logged and reported as no match.
        """
        try:
            cursor = self.users.find({"full_name": full_name, "institution_id": institution_id}).limit(2)
            matches = await cursor.to_list(length=2)
        except PyMongoError as e:
            logger.warning(f"Recipient lookup failed for '{full_name}': {e}")
            return None

        if len(matches) != 1:
            if matches:
                logger.warning(f"Recipient name '{full_name}' is ambiguous within institution {institution_id}")
            return None

        try:
            return Recipient.model_validate(matches[0])
        except ValueError as e:
            logger.warning(f"Recipient record for '{full_name}' is malformed: {e}")
            return None
