"""
HTTP client of the external certificate minting service.

The client only transports: it returns the raw status and body and leaves
interpretation of the answer to the pipeline.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..core.config import Settings, get_settings
from ..core.errors import LedgerError
from ..utils.logger import get_logger

logger = get_logger("ledger_client")


@dataclass
class LedgerReply:
    """Raw answer of the minting service."""
    status_code: int
    body: Any
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class LedgerClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.mint_url = self.settings.LEDGER_API_URL
        self.timeout = httpx.Timeout(self.settings.LEDGER_TIMEOUT)
        self._transport = transport

    async def mint(self, payload: Dict[str, Any]) -> LedgerReply:
        """
        Submit a mint request.

        Raises:
            LedgerError: If the service cannot be reached or times out
        """
        headers = {"Content-Type": "application/json"}
        if self.settings.LEDGER_API_KEY:
            headers["Authorization"] = f"Bearer {self.settings.LEDGER_API_KEY}"

        logger.info(f"Submitting mint request to {self.mint_url}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.mint_url, json=payload, headers=headers)
            except httpx.TimeoutException as e:
                logger.error(f"Mint request timed out: {e}")
                raise LedgerError("Ledger service timed out") from e
            except httpx.RequestError as e:
                logger.error(f"Failed to connect to ledger service: {e}")
                raise LedgerError(f"Failed to connect to ledger service: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        logger.info(f"Ledger service answered HTTP {response.status_code}")
        return LedgerReply(status_code=response.status_code, body=body, text=response.text)
