"""
Content store client for certificate artifacts.
Pins images and JSON documents on IPFS through the Pinata upload API.
"""

import json
from typing import Any, Dict, Optional

import httpx

from ..core.config import Settings, get_settings
from ..core.errors import UploadError
from ..models.certificate import ContentUpload
from ..utils.logger import get_logger

logger = get_logger("content_store")


class PinataClient:
    """Uploads blobs to Pinata and resolves their gateway URLs."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.upload_url = f"{self.settings.PINATA_UPLOAD_URL}/files"
        self.timeout = httpx.Timeout(self.settings.UPLOAD_TIMEOUT)
        self._transport = transport

    async def upload_blob(
        self,
        content: bytes,
        name: str,
        keyvalues: Optional[Dict[str, str]] = None,
        content_type: str = "application/octet-stream",
    ) -> ContentUpload:
        """
        Pin raw bytes as a named public file.

        Args:
            content: File content
            name: File name recorded by the pinning service
            keyvalues: Searchable tags attached to the pin
            content_type: MIME type sent with the file part

        Returns:
            ContentUpload with the content identifier

        Raises:
            UploadError: On transport failures, non-2xx answers or a missing CID
        """
        if not content:
            raise UploadError(f"Refusing to upload empty content for {name}")

        logger.info(f"Uploading file to IPFS: {name} ({len(content)} bytes)")
        form = {"network": "public", "name": name}
        if keyvalues:
            form["keyvalues"] = json.dumps({k: str(v) for k, v in keyvalues.items()})

        return await self._post(name, data=form, files={"file": (name, content, content_type)})

    async def upload_json(
        self,
        document: Dict[str, Any],
        name: str,
        keyvalues: Optional[Dict[str, str]] = None,
    ) -> ContentUpload:
        """Pin a JSON document; same contract as upload_blob()."""
        try:
            content = json.dumps(document, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise UploadError(f"Document {name} is not JSON serializable: {e}") from e

        logger.info(f"Uploading JSON to IPFS: {name}")
        return await self.upload_blob(content, name, keyvalues, content_type="application/json")

    def resolve_url(self, cid: str) -> str:
        """Gateway URL of a content identifier."""
        return f"{self.settings.gateway_url}/ipfs/{cid}"

    def public_url(self, cid: str) -> str:
        """Public gateway URL, used where third-party viewers resolve the content."""
        return f"{self.settings.public_gateway_url}/ipfs/{cid}"

    async def _post(self, name: str, **request: Any) -> ContentUpload:
        if not self.settings.PINATA_JWT:
            raise UploadError("PINATA_JWT is not configured")

        headers = {"Authorization": f"Bearer {self.settings.PINATA_JWT}"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.upload_url, headers=headers, **request)
                response.raise_for_status()
                result = response.json()
            except httpx.HTTPStatusError as e:
                logger.error(f"Pinata error for {name}: {e.response.status_code} - {e.response.text}")
                raise UploadError(f"Pinata upload failed for {name}: HTTP {e.response.status_code}") from e
            except httpx.RequestError as e:
                logger.error(f"Failed to connect to Pinata: {e}")
                raise UploadError(f"Failed to connect to Pinata: {e}") from e
            except ValueError as e:
                raise UploadError(f"Pinata returned a non-JSON answer for {name}") from e

        upload = self._parse_upload(result)
        if upload is None:
            logger.error(f"Pinata answer without CID for {name}: {result}")
            raise UploadError(f"Pinata did not return a CID for {name}")

        logger.info(f"Uploaded {name} to IPFS: {upload.cid}")
        return upload

    @staticmethod
    def _parse_upload(result: Any) -> Optional[ContentUpload]:
        if not isinstance(result, dict):
            return None

        # v3 uploads API
        data = result.get("data")
        if isinstance(data, dict) and data.get("cid"):
            return ContentUpload(cid=data["cid"], name=data.get("name"), size=data.get("size"))

        # legacy pinning API
        if result.get("IpfsHash"):
            return ContentUpload(cid=result["IpfsHash"], size=result.get("PinSize"))

        return None
