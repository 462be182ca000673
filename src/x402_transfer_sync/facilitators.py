"""Static facilitator registry.

The table is built and validated once at import time. A duplicate
(chain, token, address) triple or a malformed address raises
FacilitatorConfigError, which stops the process before any job runs.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import UTC, datetime

from web3 import Web3

from x402_transfer_sync.errors import FacilitatorConfigError
from x402_transfer_sync.models import Chain, FacilitatorConfig, TokenConfig

logger = logging.getLogger(__name__)

USDC_DECIMALS = 6

USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
USDC_POLYGON = "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"
USDC_SOLANA = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

USDC_BASE_TOKEN = TokenConfig(address=USDC_BASE, decimals=USDC_DECIMALS, symbol="USDC")
USDC_POLYGON_TOKEN = TokenConfig(address=USDC_POLYGON, decimals=USDC_DECIMALS, symbol="USDC")
USDC_SOLANA_TOKEN = TokenConfig(address=USDC_SOLANA, decimals=USDC_DECIMALS, symbol="USDC")

_BASE58_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def _utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=UTC)


def normalize_address(chain: Chain, address: str) -> str:
    """Return the comparison form of an address (EVM addresses are case-insensitive)."""
    if chain == Chain.SOLANA:
        return address
    return address.lower()


def is_valid_address(chain: Chain, address: str) -> bool:
    if chain == Chain.SOLANA:
        return bool(_BASE58_RE.match(address))
    # Checksum casing is not enforced; the lowercase form must be a valid address.
    return bool(Web3.is_address(address.lower()))


def validate_unique_facilitators(
    facilitators: Iterable[FacilitatorConfig],
) -> tuple[FacilitatorConfig, ...]:
    """Validate the facilitator table.

    Args:
        facilitators: Candidate facilitator configs.

    Returns:
        The facilitators as an immutable tuple.

    Raises:
        FacilitatorConfigError: On a malformed address or a duplicate
            (chain, token address, facilitator address) triple.
    """
    seen: dict[tuple[str, str, str], str] = {}
    validated: list[FacilitatorConfig] = []
    for facilitator in facilitators:
        for label, addr in (("address", facilitator.address), ("token", facilitator.token.address)):
            if not is_valid_address(facilitator.chain, addr):
                raise FacilitatorConfigError(
                    f"Invalid {label} for facilitator '{facilitator.id}' on {facilitator.chain.value}: {addr}"
                )
        if facilitator.sync_start_date is not None and facilitator.sync_start_date.tzinfo is None:
            raise FacilitatorConfigError(
                f"sync_start_date for facilitator '{facilitator.id}' must be timezone-aware"
            )

        key = (
            facilitator.chain.value,
            normalize_address(facilitator.chain, facilitator.token.address),
            normalize_address(facilitator.chain, facilitator.address),
        )
        if key in seen:
            raise FacilitatorConfigError(
                "Duplicate address/token pair detected: "
                f"'{facilitator.id}:{key[0]}:{key[2]}:{key[1]}' (already used by '{seen[key]}')"
            )
        seen[key] = facilitator.id
        validated.append(facilitator)
    return tuple(validated)


FACILITATORS: tuple[FacilitatorConfig, ...] = validate_unique_facilitators(
    [
        FacilitatorConfig(
            id="coinbase",
            chain=Chain.BASE,
            address="0xdbdf3d8ed80f84c35d01c6c9f9271761bad90ba6",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2025, 5, 5),
        ),
        FacilitatorConfig(
            id="openx402",
            chain=Chain.BASE,
            address="0x97316fa4730bc7d3b295234f8e4d04a0a4c093e8",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2025, 10, 25),
        ),
        FacilitatorConfig(
            id="payAI",
            chain=Chain.BASE,
            address="0xc6699d2aada6c36dfea5c248dd70f9cb0235cb63",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2025, 5, 18),
        ),
        FacilitatorConfig(
            id="x402rs",
            chain=Chain.BASE,
            address="0xd8dfc729cbd05381647eb5540d756f4f8ad63eec",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2024, 12, 5),
        ),
        FacilitatorConfig(
            id="aurracloud",
            chain=Chain.BASE,
            address="0x222c4367a2950f3b53af260e111fc3060b0983ff",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2025, 10, 5),
        ),
        FacilitatorConfig(
            id="thirdweb",
            chain=Chain.BASE,
            address="0x80c08de1a05df2bd633cf520754e40fde3c794d3",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2025, 10, 7),
        ),
        FacilitatorConfig(
            id="x402rs",
            chain=Chain.POLYGON,
            address="0xd8dfc729cbd05381647eb5540d756f4f8ad63eec",
            token=USDC_POLYGON_TOKEN,
            enabled=False,
            sync_start_date=_utc(2025, 4, 1),
        ),
        FacilitatorConfig(
            id="payAI",
            chain=Chain.SOLANA,
            address="2wKupLR9q6wXYppw8Gr2NvWxKBUqm4PPJKkQfoxHDBg4",
            token=USDC_SOLANA_TOKEN,
            sync_start_date=_utc(2025, 7, 1),
        ),
        FacilitatorConfig(
            id="corbits",
            chain=Chain.SOLANA,
            address="AepWpq3GQwL8CeKMtZyKtKPa7W91Coygh3ropAJapVdU",
            token=USDC_SOLANA_TOKEN,
            sync_start_date=_utc(2025, 9, 21),
        ),
        FacilitatorConfig(
            id="x402rs-base-2",
            chain=Chain.BASE,
            address="0x97D38AA5dE015245DCCa76305b53ABE6DA25F6a5",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2025, 10, 20),
        ),
        FacilitatorConfig(
            id="daydreams",
            chain=Chain.BASE,
            address="0x279e08f711182c79Ba6d09669127a426228a4653",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2025, 10, 16),
        ),
        FacilitatorConfig(
            id="mogami",
            chain=Chain.BASE,
            address="0xfe0920a0a7f0f8a1ec689146c30c3bbef439bf8a",
            token=USDC_BASE_TOKEN,
            sync_start_date=_utc(2025, 10, 24),
        ),
    ]
)


def get_facilitators(
    chain: Chain,
    *,
    enabled_only: bool = True,
    facilitators: Iterable[FacilitatorConfig] | None = None,
) -> list[FacilitatorConfig]:
    """Return the facilitators configured for a chain, in table order."""
    source = FACILITATORS if facilitators is None else facilitators
    return [f for f in source if f.chain == chain and (f.enabled or not enabled_only)]
