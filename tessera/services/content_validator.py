"""
Pre-flight checks run before a certificate is minted.

Minting is irreversible, so the metadata document and the image it points at
must both resolve through the gateway before the ledger service is called.
"""

from typing import Any, Dict, Optional

import httpx

from ..core.config import Settings, get_settings
from ..core.errors import ContentValidationError
from ..utils.logger import get_logger

logger = get_logger("content_validator")


class ContentValidator:
    """Verifies that pinned certificate content is reachable and well formed."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.timeout = httpx.Timeout(self.settings.PREFLIGHT_TIMEOUT)
        self._transport = transport

    async def validate(self, metadata_url: str) -> Dict[str, Any]:
        """
        Fetch the metadata JSON and the image it references.

        Args:
            metadata_url: Gateway URL of the metadata document

        Returns:
            The parsed metadata document

        Raises:
            ContentValidationError: If either resource is unreachable, the
                metadata is not JSON or has no ``image``, or the image is not
                served with an ``image/*`` content type
        """
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            logger.info(f"Validating metadata URL: {metadata_url}")
            metadata_response = await self._get(client, metadata_url, "Metadata")

            try:
                metadata = metadata_response.json()
            except ValueError as e:
                raise ContentValidationError(f"Metadata at {metadata_url} is not valid JSON") from e

            image_ref = metadata.get("image") if isinstance(metadata, dict) else None
            if not isinstance(image_ref, str) or not image_ref.strip():
                logger.error(f"Metadata JSON missing 'image' field: {metadata_url}")
                raise ContentValidationError('Metadata JSON missing required "image" field')

            image_url = self._resolve_image_url(image_ref.strip())
            logger.info(f"Validating image URL: {image_url}")
            image_response = await self._get(client, image_url, "Image")

        content_type = image_response.headers.get("content-type", "")
        if not content_type.lower().startswith("image/"):
            logger.error(f"Image URL content-type is not image/*: {content_type}")
            raise ContentValidationError(f"Image URL does not return image content-type: {content_type or 'none'}")

        logger.info("Metadata and image validated successfully")
        return metadata

    def _resolve_image_url(self, image_ref: str) -> str:
        if image_ref.lower().startswith(("http://", "https://")):
            return image_ref
        if image_ref.startswith("ipfs://"):
            image_ref = image_ref[len("ipfs://"):]
        return f"{self.settings.gateway_url}/ipfs/{image_ref}"

    @staticmethod
    async def _get(client: httpx.AsyncClient, url: str, label: str) -> httpx.Response:
        try:
            response = await client.get(url)
        except httpx.RequestError as e:
            logger.error(f"{label} URL not reachable: {url} ({e})")
            raise ContentValidationError(f"{label} URL not accessible: {url}") from e

        if not response.is_success:
            logger.error(f"{label} URL not accessible: {response.status_code} - {url}")
            raise ContentValidationError(f"{label} URL not accessible: {url} (HTTP {response.status_code})")

        return response
