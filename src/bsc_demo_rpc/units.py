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

"""Conversion between whole units ("1.5 BNB") and base units (wei)."""

from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from web3 import Web3

Amount = Union[int, float, str, Decimal]


def to_base_units(amount: Amount, decimals: int = 18) -> int:
    """Parses a whole-unit amount, or a ``0x`` hex string of base units."""
    if isinstance(amount, bool):
        raise ValueError("amount must be a number")
    if isinstance(amount, str) and amount[:2].lower() == "0x":
        return int(amount, 16)
    try:
        number = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"invalid amount {amount!r}") from e
    if not number.is_finite() or number < 0:
        raise ValueError(f"invalid amount {amount!r}")
    with localcontext() as ctx:
        # Exact for every input, so surplus decimals are never rounded away.
        ctx.prec = len(number.as_tuple().digits) + decimals + 1
        value = number.scaleb(decimals)
    if value != value.to_integral_value():
        raise ValueError(f"amount {amount} has more than {decimals} decimals")
    if decimals == 18:
        return Web3.to_wei(number, "ether")
    return int(value)


def format_units(value: int, decimals: int = 18) -> str:
    """Renders base units as a whole-unit decimal string without trailing zeros."""
    if value == 0:
        return "0"
    if decimals == 18:
        whole = Web3.from_wei(value, "ether")
    else:
        with localcontext() as ctx:
            ctx.prec = len(str(abs(value))) + decimals + 1
            whole = Decimal(value).scaleb(-decimals)
    text = format(whole, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
