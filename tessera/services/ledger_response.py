"""
Interpretation of minting service answers.

The service has answered in several shapes over time: nested per chain under
``data.<chain>.data`` or flat at the top level under various field names.
The transaction hash is located with an ordered list of rules, first match
wins. Support for a new shape is one more entry in ``TRANSACTION_HASH_RULES``.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..core.errors import LedgerError
from ..models.certificate import AnchorResult, ChainReceipt
from ..utils.logger import get_logger

logger = get_logger("ledger_response")

PRIMARY_CHAIN = "avalanche"
SECONDARY_CHAIN = "arbitrum"

FLAT_HASH_ALIASES = ("transaction_hash", "hash", "txHash", "tx_hash", "transactionHash")


@dataclass(frozen=True)
class ExtractionRule:
    path: Tuple[str, ...]
    chain: Optional[str] = None

    def apply(self, body: Any) -> Optional[str]:
        node = body
        for key in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
        if isinstance(node, str) and node.strip():
            return node.strip()
        return None


def _chain_path(chain: str) -> Tuple[str, ...]:
    return ("data", chain, "data")


TRANSACTION_HASH_RULES: Sequence[ExtractionRule] = (
    ExtractionRule(_chain_path(PRIMARY_CHAIN) + ("transaction_hash",), chain=PRIMARY_CHAIN),
    ExtractionRule(_chain_path(SECONDARY_CHAIN) + ("transaction_hash",), chain=SECONDARY_CHAIN),
    *(ExtractionRule((alias,)) for alias in FLAT_HASH_ALIASES),
)


def find_transaction_hash(body: Any) -> Optional[Tuple[str, ExtractionRule]]:
    """Return the first hash matched by TRANSACTION_HASH_RULES with its rule."""
    for rule in TRANSACTION_HASH_RULES:
        value = rule.apply(body)
        if value:
            return value, rule
    return None


def chain_receipt(body: Any, chain: str) -> Optional[ChainReceipt]:
    """Per-chain block under ``data.<chain>.data``, if the answer has one."""
    node = body
    for key in _chain_path(chain):
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    if not isinstance(node, dict):
        return None
    try:
        return ChainReceipt.model_validate(node)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed {chain} receipt: {e}")
        return None


def parse_mint_response(body: Any) -> AnchorResult:
    """
    Build the anchoring result from a successful minting answer.

    Raises:
        LedgerError: If no rule yields a transaction hash
    """
    match = find_transaction_hash(body)
    if match is None:
        logger.error(f"Minting answer without transaction hash: {body}")
        raise LedgerError("No transaction hash received from ledger service", upstream_body=body)

    transaction_hash, rule = match
    logger.info(f"Transaction hash found at {'.'.join(rule.path)}: {transaction_hash}")

    avalanche = chain_receipt(body, PRIMARY_CHAIN)
    arbitrum = chain_receipt(body, SECONDARY_CHAIN)

    return AnchorResult(
        transaction_hash=transaction_hash,
        secondary_hash=arbitrum.transaction_hash if arbitrum and arbitrum.transaction_hash else None,
        avalanche=avalanche,
        arbitrum=arbitrum,
    )
