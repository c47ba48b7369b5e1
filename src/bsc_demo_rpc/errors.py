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

"""JSON-RPC error taxonomy for the demo node."""

from enum import IntEnum
from typing import Any, Dict, Optional


class RPCErrorCode(IntEnum):
    """Standard JSON-RPC 2.0 codes plus the node-specific ones."""
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # -32000 to -32099 are reserved for server errors
    INSUFFICIENT_BALANCE = -32000


class RPCError(Exception):
    """An error that maps directly to a JSON-RPC error object."""

    code = RPCErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class ParseError(RPCError):
    code = RPCErrorCode.PARSE_ERROR


class InvalidRequest(RPCError):
    code = RPCErrorCode.INVALID_REQUEST


class UnsupportedMethod(RPCError):
    code = RPCErrorCode.METHOD_NOT_FOUND

    def __init__(self, method: Optional[str]):
        super().__init__(f"Method {method} not supported")
        self.method = method


class InvalidParams(RPCError):
    code = RPCErrorCode.INVALID_PARAMS


class UpstreamFailure(RPCError):
    """A downstream call (real BSC node or price feed) failed."""
    code = RPCErrorCode.INTERNAL_ERROR


class InsufficientBalance(RPCError):
    code = RPCErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, address: str, asset: str, balance: int, amount: int):
        super().__init__(f"Insufficient demo {asset.upper()} balance")
        self.data = {"address": address, "balance": hex(balance), "required": hex(amount)}
