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

"""Minimal Contract ABI codec for ERC-20 balance and metadata calls.

Call payloads are ``0x``-prefixed hex strings: a 4-byte selector followed by
32-byte argument words. Return values are encoded as 32-byte words.
"""

from eth_abi import decode, encode
from web3 import Web3

WORD_SIZE = 32
SELECTOR_SIZE = 4
EMPTY_RESULT = "0x"


def function_selector(signature: str) -> str:
    """Returns the 4-byte selector for a function signature, e.g. ``balanceOf(address)``."""
    return Web3.to_hex(Web3.keccak(text=signature)[:SELECTOR_SIZE])


BALANCE_OF = function_selector("balanceOf(address)")  # 0x70a08231
NAME = function_selector("name()")  # 0x06fdde03
SYMBOL = function_selector("symbol()")  # 0x95d89b41
DECIMALS = function_selector("decimals()")  # 0x313ce567
TOTAL_SUPPLY = function_selector("totalSupply()")  # 0x18160ddd
TRANSFER = function_selector("transfer(address,uint256)")  # 0xa9059cbb


def _strip_0x(data: str) -> str:
    return data[2:] if data[:2].lower() == "0x" else data


def _payload(data: str) -> bytes:
    try:
        return bytes.fromhex(_strip_0x(data))
    except ValueError as e:
        raise ValueError(f"call data is not valid hex: {data!r}") from e


def decode_selector(data: str) -> str:
    """Returns the lowercase ``0x``-prefixed selector of a call payload."""
    payload = _payload(data)
    if len(payload) < SELECTOR_SIZE:
        raise ValueError("call data is shorter than a function selector")
    return "0x" + payload[:SELECTOR_SIZE].hex()


def _argument_word(data: str, arg_index: int) -> bytes:
    payload = _payload(data)
    start = SELECTOR_SIZE + arg_index * WORD_SIZE
    word = payload[start:start + WORD_SIZE]
    if len(word) != WORD_SIZE:
        raise ValueError(f"call data has no argument word at index {arg_index}")
    return word


def decode_address_arg(data: str, arg_index: int = 0) -> str:
    """Extracts the low 20 bytes of an argument word as a lowercase address."""
    word = _argument_word(data, arg_index)
    # eth_abi rejects words with dirty high bytes; wallets never send those,
    # but the node should still answer, so only the low 20 bytes are read.
    (address,) = decode(["address"], bytes(12) + word[12:])
    return address.lower()


def decode_uint_arg(data: str, arg_index: int = 0) -> int:
    (value,) = decode(["uint256"], _argument_word(data, arg_index))
    return value


def encode_uint(value: int, width: int = WORD_SIZE) -> str:
    """Big-endian hex of ``value`` left-padded to ``width`` bytes."""
    if value < 0:
        raise ValueError(f"cannot encode negative value {value} as uint")
    if value.bit_length() > 256:
        raise ValueError(f"value {value} does not fit in uint256")
    try:
        return "0x" + value.to_bytes(width, "big").hex()
    except OverflowError as e:
        raise ValueError(f"value {value} does not fit in {width} bytes") from e


def encode_bool(value: bool) -> str:
    return encode_uint(1 if value else 0)


def encode_string(value: str) -> str:
    """Length word followed by the UTF-8 bytes right-padded to a word boundary."""
    # eth_abi emits a leading offset word for dynamic types; drop it.
    return "0x" + encode(["string"], [value])[WORD_SIZE:].hex()


def decode_string(data: str) -> str:
    payload = _payload(data)
    (length,) = decode(["uint256"], payload[:WORD_SIZE])
    return payload[WORD_SIZE:WORD_SIZE + length].decode("utf-8")
