"""
Chain Configuration Module

Contains the blockchain constants used by the settlement resolver:
tracked token contracts, event signatures, the Chainlink price feed and the
pool of public RPC endpoints used as last-resort fallbacks.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict


@dataclass(frozen=True)
class TrackedAsset:
    """Token contract whose transfers count towards settlement value."""
    symbol: str
    address: str
    decimals: int
    kind: str  # 'stable' or 'wrapped_native'

    @property
    def is_stable(self) -> bool:
        return self.kind == ASSET_KIND_STABLE

    @property
    def is_wrapped_native(self) -> bool:
        return self.kind == ASSET_KIND_WRAPPED_NATIVE


ASSET_KIND_STABLE = "stable"
ASSET_KIND_WRAPPED_NATIVE = "wrapped_native"

# ERC20 Transfer(address,address,uint256)
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

# Tracked token contracts (Ethereum mainnet)
TRACKED_ASSETS: Dict[str, TrackedAsset] = {
    "USDT": TrackedAsset("USDT", "0xdAC17F958D2ee523a2206206994597C13D831ec7", 6, ASSET_KIND_STABLE),
    "USDC": TrackedAsset("USDC", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6, ASSET_KIND_STABLE),
    "WETH": TrackedAsset("WETH", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18, ASSET_KIND_WRAPPED_NATIVE),
}

# Native asset (ETH)
NATIVE_DECIMALS = 18

# RPC Configuration
DEFAULT_PRIMARY_RPC_URL = "http://localhost:8545"

# Public RPCs, tried in this order after the configured endpoints
PUBLIC_RPC_URLS = (
    "https://eth.llamarpc.com",
    "https://rpc.ankr.com/eth",
    "https://ethereum.publicnode.com",
    "https://1rpc.io/eth",
    "https://eth.drpc.org",
)

RPC_TIMEOUT = 3  # seconds

# Chainlink Price Feed Address (ETH/USD)
CHAINLINK_ETH_USD_FEED = "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419"
CHAINLINK_DECIMALS = 8

# Chainlink ABI for Price Feed
CHAINLINK_AGGREGATOR_V3_ABI = [{
    "inputs": [],
    "name": "latestRoundData",
    "outputs": [
        {"internalType": "uint80", "name": "roundId", "type": "uint80"},
        {"internalType": "int256", "name": "answer", "type": "int256"},
        {"internalType": "uint256", "name": "startedAt", "type": "uint256"},
        {"internalType": "uint256", "name": "updatedAt", "type": "uint256"},
        {"internalType": "uint80", "name": "answeredInRound", "type": "uint80"},
    ],
    "stateMutability": "view",
    "type": "function",
}]

# CoinGecko API Configuration
COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
# Pro keys are only accepted on the pro host
COINGECKO_PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"
COINGECKO_NATIVE_ID = "ethereum"
PRICE_API_TIMEOUT = 5  # seconds

# Price cache validity window
ETH_PRICE_CACHE_TTL = 3600  # seconds

# Last-resort ETH price when no source and no cache is available
FALLBACK_ETH_PRICE_USD = Decimal("3000")

# On-chain values below this are treated as a decode failure
MIN_ONCHAIN_VALUE_USD = Decimal("1")

