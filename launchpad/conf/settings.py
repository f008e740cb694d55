from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LaunchpadSettings(BaseModel):
    """Network-wide constants used by the sale contracts and the API."""

    model_config = ConfigDict(frozen=True)

    NETWORK_NAME: str

    # Chain id bound into every whitelist signature.
    CHAIN_ID: int = Field(gt=0)

    # EIP-712 domain of the sale contract.
    EIP712_DOMAIN_NAME: str = 'PrivateSale'
    EIP712_DOMAIN_VERSION: str = '1'

    # Token price is USD per sold token, scaled by 10**PRICE_DECIMALS.
    # Payment amounts are normalized to the same scale before pricing.
    PRICE_DECIMALS: int = 18

    MAX_SOLD_TOKEN_DECIMALS: int = 36

    # Largest page returned by the paginated views.
    MAX_PAGE_SIZE: int = Field(default=100, gt=0)
