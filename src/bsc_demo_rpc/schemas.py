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

"""Request envelope and per-method parameter schemas.

JSON-RPC params arrive positionally (``["0xabc...", "latest"]``). Each method
declares a model whose field order matches the positional order; ``bind``
maps the list onto the model and turns validation failures into
``InvalidParams``.
"""

import re
from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidParams, InvalidRequest

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def _address(v: Any) -> str:
    if not isinstance(v, str) or not v:
        raise ValueError("address is required")
    if not ADDRESS_RE.match(v):
        raise ValueError("address must be 0x followed by 40 hex characters")
    return v.lower()


def _hex(v: Any) -> str:
    if not isinstance(v, str) or not HEX_RE.match(v):
        raise ValueError("must be a 0x-prefixed hex string")
    return v.lower()


class RPCRequest(BaseModel):
    """JSON-RPC 2.0 request envelope."""
    jsonrpc: str = "2.0"
    id: Union[int, str, None] = None
    method: str
    params: Union[List[Any], dict] = Field(default_factory=list)

    @field_validator("params", mode="before")
    @classmethod
    def default_params(cls, v):
        return [] if v is None else v


class AddressParams(BaseModel):
    address: str

    @field_validator("address", mode="before")
    @classmethod
    def validate_address(cls, v):
        return _address(v)


class BalanceParams(AddressParams):
    block: Union[str, int] = "latest"


class CallObject(BaseModel):
    """Transaction-shaped object used by eth_call and eth_sendTransaction."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    sender: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    data: Optional[str] = None
    input: Optional[str] = None
    value: Optional[str] = None
    gas: Optional[str] = None

    @field_validator("sender", "to", mode="before")
    @classmethod
    def validate_address(cls, v):
        return None if v is None else _address(v)

    @field_validator("data", "input", "value", "gas", mode="before")
    @classmethod
    def validate_hex(cls, v):
        return None if v is None else _hex(v)

    @property
    def payload(self) -> Optional[str]:
        # Clients send either field; "input" is the newer name.
        return self.input or self.data


class CallParams(BaseModel):
    tx: CallObject
    block: Union[str, int, dict] = "latest"
    # geth state overrides; accepted and ignored.
    overrides: Optional[dict] = None


class SendTransactionParams(BaseModel):
    tx: CallObject


class RawTransactionParams(BaseModel):
    raw: str

    @field_validator("raw", mode="before")
    @classmethod
    def validate_raw(cls, v):
        raw = _hex(v)
        if len(raw) <= 2:
            raise ValueError("raw transaction is empty")
        return raw


class TxHashParams(BaseModel):
    tx_hash: str

    @field_validator("tx_hash", mode="before")
    @classmethod
    def validate_hash(cls, v):
        if not isinstance(v, str) or not HASH_RE.match(v):
            raise ValueError("transaction hash must be 0x followed by 64 hex characters")
        return v.lower()


class BlockParams(BaseModel):
    block: Union[str, int] = "latest"
    full_transactions: bool = False


class FeeHistoryParams(BaseModel):
    block_count: Union[str, int] = 1
    newest_block: Union[str, int] = "latest"
    reward_percentiles: Optional[List[float]] = None


class DemoSendParams(BaseModel):
    sender: str
    receiver: str
    asset: str = Field(min_length=1)
    amount: Union[str, int, float]

    @field_validator("sender", "receiver", mode="before")
    @classmethod
    def validate_addresses(cls, v):
        return _address(v)

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        if v is None or v == "" or isinstance(v, bool):
            raise ValueError("amount is required")
        return v


def parse_request(payload: Any) -> RPCRequest:
    if not isinstance(payload, dict):
        raise InvalidRequest("Request must be a JSON object")
    try:
        return RPCRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequest(_first_error(e)) from e


def bind(model: Type[ModelT], params: Union[List[Any], dict]) -> ModelT:
    """Validates positional or named params against ``model``."""
    if isinstance(params, dict):
        values = params
    else:
        names = list(model.model_fields)
        if len(params) > len(names):
            raise InvalidParams(
                f"too many arguments, want at most {len(names)}, got {len(params)}")
        values = dict(zip(names, params))
    try:
        return model.model_validate(values)
    except ValidationError as e:
        raise InvalidParams(_first_error(e)) from e


def _first_error(e: ValidationError) -> str:
    error = e.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = error.get("msg", "invalid value")
    if error.get("type") == "missing":
        message = "missing value for required argument"
    return f"{location}: {message}" if location else message
