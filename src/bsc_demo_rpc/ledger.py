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

"""In-memory demo balances, keyed by lowercased address.

Nothing here is persisted: a new process starts with an empty ledger.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional

from .config import DEFAULT_TOKENS
from .errors import InsufficientBalance

logger = logging.getLogger("bsc_demo_rpc.ledger")


def normalize_address(address: str) -> str:
    if not isinstance(address, str) or not address.strip():
        raise ValueError("address must be a non-empty string")
    return address.strip().lower()


@dataclass
class LedgerEntry:
    """Demo balances of one address, in base units."""

    native_balance: int = 0
    # token contract address -> balance
    token_balances: Dict[str, int] = field(default_factory=dict)


class Ledger:
    """Process-wide demo balance store.

    Every mutation happens under one lock so a transfer's debit and credit
    are never observed separately.
    """

    def __init__(self, seed_native_balance: int = 0, seed_token_balance: int = 0,
                 tokens: Optional[Iterable[str]] = None):
        self._seed_native = seed_native_balance
        self._seed_token = seed_token_balance
        if tokens is None:
            tokens = (token.address for token in DEFAULT_TOKENS)
        # New entries start with the seed balance for each of these contracts.
        self._tokens = tuple(token.lower() for token in tokens)
        self._entries: Dict[str, LedgerEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: str) -> bool:
        return normalize_address(address) in self._entries

    @contextmanager
    def atomic(self) -> Iterator["Ledger"]:
        """Holds the ledger lock so several updates land as one."""
        with self._lock:
            yield self

    def _entry(self, address: str) -> LedgerEntry:
        key = normalize_address(address)
        entry = self._entries.get(key)
        if entry is None:
            entry = LedgerEntry(
                native_balance=self._seed_native,
                token_balances={token: self._seed_token for token in self._tokens},
            )
            self._entries[key] = entry
        return entry

    def get(self, address: str) -> LedgerEntry:
        """Returns a copy of the entry, creating it with seed balances if absent."""
        with self._lock:
            return copy.deepcopy(self._entry(address))

    def snapshot(self) -> Dict[str, LedgerEntry]:
        """Returns a copy of every entry, keyed by lowercased address."""
        with self._lock:
            return copy.deepcopy(self._entries)

    def native_balance(self, address: str) -> int:
        with self._lock:
            return self._entry(address).native_balance

    def token_balance(self, address: str, token: str) -> int:
        with self._lock:
            return self._entry(address).token_balances.get(token.lower(), self._seed_token)

    def balance(self, address: str, token: Optional[str] = None) -> int:
        """Native balance when ``token`` is None, else the token balance."""
        if token is None:
            return self.native_balance(address)
        return self.token_balance(address, token)

    def set_native(self, address: str, amount: int) -> None:
        _check_amount(amount)
        with self._lock:
            self._entry(address).native_balance = amount

    def set_token(self, address: str, token: str, amount: int) -> None:
        _check_amount(amount)
        with self._lock:
            self._entry(address).token_balances[token.lower()] = amount

    def credit(self, address: str, amount: int, token: Optional[str] = None) -> int:
        _check_amount(amount)
        with self._lock:
            new_balance = self.balance(address, token) + amount
            self._store(address, token, new_balance)
            return new_balance

    def debit(self, address: str, amount: int, token: Optional[str] = None,
              asset: str = "native") -> int:
        _check_amount(amount)
        with self._lock:
            current = self.balance(address, token)
            if current < amount:
                raise InsufficientBalance(normalize_address(address), asset, current, amount)
            self._store(address, token, current - amount)
            return current - amount

    def transfer(self, sender: str, receiver: str, amount: int,
                 token: Optional[str] = None, asset: str = "native") -> None:
        """Moves ``amount`` from sender to receiver, or raises without mutating."""
        with self._lock:
            self.debit(sender, amount, token, asset=asset)
            self.credit(receiver, amount, token)
        logger.info(f"Ledger transfer {amount} {asset} {sender} -> {receiver}")

    def _store(self, address: str, token: Optional[str], amount: int) -> None:
        if token is None:
            self._entry(address).native_balance = amount
        else:
            self._entry(address).token_balances[token.lower()] = amount


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"amount must be an int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError("amount must be non-negative")
