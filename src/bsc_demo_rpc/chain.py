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

"""Fabricated chain state: block counter, transactions and receipts.

Nothing is executed. Transactions are recorded so that wallets polling for
receipts after a send get a consistent answer.
"""

import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger("bsc_demo_rpc.chain")

ZERO_HASH = "0x" + "0" * 64
ZERO_ADDRESS = "0x" + "0" * 40
EMPTY_BLOOM = "0x" + "0" * 512
TRANSFER_GAS = 21000
BLOCK_GAS_LIMIT = 30_000_000


class TxHashGenerator:
    """Produces random-looking 32-byte hashes with no link to tx content.

    Seeding makes the sequence reproducible.
    """

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            return "0x" + format(self._random.getrandbits(256), "064x")


@dataclass
class TransactionRecord:
    hash: str
    sender: Optional[str]
    to: Optional[str]
    value: int = 0
    data: str = "0x"
    gas: int = TRANSFER_GAS
    nonce: int = 0
    block_number: int = 0
    block_hash: str = ZERO_HASH
    # Set for demo_send transfers.
    asset: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_transaction(self, gas_price: int) -> Dict[str, Any]:
        """The ``eth_getTransactionByHash`` view."""
        return {
            "hash": self.hash,
            "nonce": hex(self.nonce),
            "blockHash": self.block_hash,
            "blockNumber": hex(self.block_number),
            "transactionIndex": "0x0",
            "from": self.sender,
            "to": self.to,
            "value": hex(self.value),
            "gas": hex(self.gas),
            "gasPrice": hex(gas_price),
            "input": self.data,
            "type": "0x0",
            "chainId": self.extra.get("chainId"),
            "v": "0x0",
            "r": "0x0",
            "s": "0x0",
        }

    def to_receipt(self, gas_price: int) -> Dict[str, Any]:
        """The ``eth_getTransactionReceipt`` view; always successful."""
        return {
            "transactionHash": self.hash,
            "transactionIndex": "0x0",
            "blockHash": self.block_hash,
            "blockNumber": hex(self.block_number),
            "from": self.sender,
            "to": self.to,
            "cumulativeGasUsed": hex(TRANSFER_GAS),
            "gasUsed": hex(TRANSFER_GAS),
            "effectiveGasPrice": hex(gas_price),
            "contractAddress": None,
            "logs": [],
            "logsBloom": EMPTY_BLOOM,
            "type": "0x0",
            "status": "0x1",
        }


class ChainState:
    """Block height and the transactions recorded during this process lifetime."""

    def __init__(self, start_block: int, chain_id: int,
                 hash_generator: Optional[TxHashGenerator] = None):
        self.chain_id = chain_id
        self._block_number = start_block
        self._block_timestamps: Dict[int, int] = {start_block: int(time.time())}
        self._transactions: Dict[str, TransactionRecord] = {}
        self._nonces: Dict[str, int] = {}
        self._lock = threading.RLock()
        self.new_hash = hash_generator or TxHashGenerator()

    @property
    def block_number(self) -> int:
        return self._block_number

    def block_hash(self, number: int) -> str:
        # Stable per height so repeated block lookups agree.
        return "0x" + format(number, "064x")

    def nonce_of(self, address: str) -> int:
        with self._lock:
            return self._nonces.get(address.lower(), 0)

    def record(self, sender: Optional[str], to: Optional[str], value: int = 0,
               data: str = "0x", gas: int = TRANSFER_GAS,
               tx_hash: Optional[str] = None, **extra: Any) -> TransactionRecord:
        """Mines a transaction into its own fabricated block."""
        with self._lock:
            self._block_number += 1
            number = self._block_number
            self._block_timestamps[number] = int(time.time())
            sender = sender.lower() if sender else None
            nonce = self._nonces.get(sender, 0) if sender else 0
            if sender:
                self._nonces[sender] = nonce + 1
            extra.setdefault("chainId", hex(self.chain_id))
            record = TransactionRecord(
                hash=(tx_hash or self.new_hash()).lower(),
                sender=sender,
                to=to.lower() if to else None,
                value=value,
                data=data,
                gas=gas,
                nonce=nonce,
                block_number=number,
                block_hash=self.block_hash(number),
                asset=extra.pop("asset", None),
                extra=extra,
            )
            self._transactions[record.hash] = record
        logger.info(f"Recorded tx {record.hash} in block {number}")
        return record

    def get(self, tx_hash: str) -> Optional[TransactionRecord]:
        with self._lock:
            return self._transactions.get(tx_hash.lower())

    def synthesize(self, tx_hash: str) -> TransactionRecord:
        """A successful stand-in for a hash this process never saw."""
        number = self._block_number
        return TransactionRecord(
            hash=tx_hash.lower(),
            sender=ZERO_ADDRESS,
            to=ZERO_ADDRESS,
            block_number=number,
            block_hash=self.block_hash(number),
            extra={"chainId": hex(self.chain_id)},
        )

    def lookup(self, tx_hash: str) -> TransactionRecord:
        return self.get(tx_hash) or self.synthesize(tx_hash)

    def block(self, number: Optional[int] = None, full_transactions: bool = False,
              base_fee: int = 0) -> Optional[Dict[str, Any]]:
        """Fabricated block header; ``None`` means latest, future heights yield None."""
        with self._lock:
            if number is None:
                number = self._block_number
            elif number > self._block_number:
                return None
            timestamp = self._block_timestamps.get(number, int(time.time()))
            txs: List[Any] = [
                tx for tx in self._transactions.values() if tx.block_number == number
            ]
        transactions = [
            tx.to_transaction(base_fee) if full_transactions else tx.hash for tx in txs
        ]
        return {
            "number": hex(number),
            "hash": self.block_hash(number),
            "parentHash": self.block_hash(number - 1) if number > 0 else ZERO_HASH,
            "nonce": "0x0000000000000000",
            "sha3Uncles": ZERO_HASH,
            "logsBloom": EMPTY_BLOOM,
            "transactionsRoot": ZERO_HASH,
            "stateRoot": ZERO_HASH,
            "receiptsRoot": ZERO_HASH,
            "miner": ZERO_ADDRESS,
            "difficulty": "0x2",
            "totalDifficulty": hex(number * 2),
            "extraData": "0x",
            "size": "0x3e8",
            "gasLimit": hex(BLOCK_GAS_LIMIT),
            "gasUsed": hex(TRANSFER_GAS * len(transactions)),
            "timestamp": hex(timestamp),
            "transactions": transactions,
            "uncles": [],
            "baseFeePerGas": hex(base_fee),
        }
