# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional, Tuple

logger = logging.getLogger("bsc_demo_rpc.config")

BSC_CHAIN_ID = 56
BINANCE_PRICE_URL = "https://api.binance.com/api/v3/ticker/price"
NATIVE_SYMBOL = "BNB"


@dataclass(frozen=True)
class TokenDescriptor:
    """A simulated ERC-20 contract. Immutable once the process starts."""

    address: str
    name: str
    symbol: str
    decimals: int
    total_supply: int
    # Whole units granted by demo_faucet.
    faucet_amount: Decimal = Decimal(0)
    # A real BSC contract lives at the same address.
    mirrors_real: bool = False

    def __post_init__(self):
        object.__setattr__(self, "address", self.address.lower())

    @property
    def key(self) -> str:
        return self.symbol.lower()


DEFAULT_TOKENS: Tuple[TokenDescriptor, ...] = (
    TokenDescriptor(
        address="0x55d398326f99059ff775485246999027b3197955",
        name="Tether USD",
        symbol="USDT",
        decimals=18,
        total_supply=1_000_000 * 10**18,
        faucet_amount=Decimal(1000),
        mirrors_real=True,
    ),
    TokenDescriptor(
        address="0x1234567890123456789012345678901234567890",
        name="OffChain Token",
        symbol="OCH",
        decimals=18,
        total_supply=1_000_000 * 10**18,
        faucet_amount=Decimal(5000),
    ),
)

# Served when the price feed has never answered.
DEFAULT_PRICES: Dict[str, Decimal] = {
    "BNB": Decimal("600"),
    "USDT": Decimal("1"),
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value, 0)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


@dataclass
class Settings:
    """Runtime configuration of the demo node."""

    host: str = "127.0.0.1"
    port: int = 8545
    chain_id: int = BSC_CHAIN_ID
    client_version: str = "BscDemoNode/v0.1.0/python"
    native_symbol: str = NATIVE_SYMBOL
    native_faucet_amount: Decimal = Decimal(10)
    # Balance a never-seen address starts with, in wei.
    seed_native_balance: int = 0
    seed_token_balance: int = 0
    # Faucet grants reset balances; the additive variant tops them up instead.
    faucet_additive: bool = False
    tokens: Tuple[TokenDescriptor, ...] = DEFAULT_TOKENS
    start_block: int = 12345678
    gas_price_wei: int = 0
    # Seed for the transaction hash generator; None draws from the OS.
    tx_seed: Optional[int] = None
    # Real BSC node for balance lookups and passthrough of unknown methods.
    upstream_rpc_url: Optional[str] = None
    upstream_timeout: float = 10.0
    combine_real_balance: bool = True
    price_url: Optional[str] = BINANCE_PRICE_URL
    price_cache_seconds: float = 60.0
    default_prices: Dict[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_PRICES))
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            host=os.getenv("BSC_DEMO_HOST", defaults.host),
            port=_env_int("BSC_DEMO_PORT", defaults.port),
            upstream_rpc_url=os.getenv("BSC_DEMO_UPSTREAM_RPC_URL") or None,
            upstream_timeout=_env_float("BSC_DEMO_UPSTREAM_TIMEOUT", defaults.upstream_timeout),
            combine_real_balance=_env_bool("BSC_DEMO_COMBINE_REAL_BALANCE", defaults.combine_real_balance),
            faucet_additive=_env_bool("BSC_DEMO_FAUCET_ADDITIVE", defaults.faucet_additive),
            price_url=os.getenv("BSC_DEMO_PRICE_URL", defaults.price_url) or None,
            price_cache_seconds=_env_float("BSC_DEMO_PRICE_CACHE_SECONDS", defaults.price_cache_seconds),
            gas_price_wei=_env_int("BSC_DEMO_GAS_PRICE_WEI", defaults.gas_price_wei),
            tx_seed=_env_int("BSC_DEMO_TX_SEED", None),
            log_level=os.getenv("BSC_DEMO_LOG_LEVEL", defaults.log_level),
        )

    def token_by_address(self, address: str) -> Optional[TokenDescriptor]:
        address = address.lower()
        for token in self.tokens:
            if token.address == address:
                return token
        return None

    def token_by_key(self, key: str) -> Optional[TokenDescriptor]:
        """Looks a token up by symbol or contract address, case-insensitively."""
        key = key.lower()
        for token in self.tokens:
            if key in (token.key, token.address):
                return token
        return None
