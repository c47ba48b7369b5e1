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

"""USD prices for the balance breakdown.

Prices are auxiliary: a failing feed never fails a request. The cache is
refreshed lazily by the next caller once an entry is older than
``cache_seconds``.
"""

import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional, Tuple

import requests

logger = logging.getLogger("bsc_demo_rpc.price")

STABLECOINS = frozenset({"USDT", "BUSD", "USDC"})


class PriceSource:
    """Binance ticker client with a staleness-gated cache."""

    def __init__(self, url: Optional[str], cache_seconds: float = 60.0,
                 defaults: Optional[Dict[str, Decimal]] = None,
                 timeout: float = 5.0,
                 clock: Callable[[], float] = time.monotonic):
        self.url = url
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self._defaults = {k.upper(): v for k, v in (defaults or {}).items()}
        self._cache: Dict[str, Tuple[Decimal, float]] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def get_price(self, symbol: str) -> Optional[Decimal]:
        """USD price of ``symbol``; last known or default when the feed fails."""
        symbol = symbol.upper()
        if symbol in STABLECOINS:
            return Decimal(1)

        with self._lock:
            cached = self._cache.get(symbol)
        now = self._clock()
        if cached and now - cached[1] < self.cache_seconds:
            return cached[0]

        try:
            price = self._fetch(symbol)
        except (requests.RequestException, KeyError, TypeError, ValueError, InvalidOperation) as e:
            fallback = cached[0] if cached else self._defaults.get(symbol)
            logger.warning(f"Price fetch for {symbol} failed: {e}. Using {fallback}")
            return fallback

        with self._lock:
            self._cache[symbol] = (price, now)
        return price

    def _fetch(self, symbol: str) -> Decimal:
        if not self.url:
            raise ValueError("no price feed configured")
        response = requests.get(
            self.url, params={"symbol": f"{symbol}USDT"}, timeout=self.timeout
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"unexpected ticker payload: {payload!r}")
        price = Decimal(str(payload["price"]))
        logger.info(f"Fetched {symbol} price: {price}")
        return price
