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
from typing import Any, List, Optional, Union

from web3 import Web3

from .errors import UpstreamFailure

logger = logging.getLogger("bsc_demo_rpc.upstream")

ERC20_BALANCE_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]


class RealChainClient:
    """Talks to a real BSC node for balances and passthrough calls."""

    def __init__(self, rpc_url: str, timeout: float = 10.0):
        self.rpc_url = rpc_url
        self._w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        logger.info(f"Using upstream BSC RPC: {rpc_url}")

    def get_balance(self, address: str) -> int:
        try:
            return int(self._w3.eth.get_balance(Web3.to_checksum_address(address)))
        except Exception as e:
            raise UpstreamFailure(f"Could not fetch real balance: {e}") from e

    def token_balance(self, token: str, address: str) -> int:
        try:
            contract = self._w3.eth.contract(
                address=Web3.to_checksum_address(token), abi=ERC20_BALANCE_ABI
            )
            return int(contract.functions.balanceOf(Web3.to_checksum_address(address)).call())
        except Exception as e:
            raise UpstreamFailure(f"Could not fetch real token balance: {e}") from e

    def send(self, method: str, params: Optional[Union[List[Any], dict]] = None) -> Any:
        """Forwards a raw JSON-RPC call and returns its ``result`` verbatim."""
        try:
            response = self._w3.provider.make_request(method, params or [])
        except Exception as e:
            raise UpstreamFailure(f"Upstream call {method} failed: {e}") from e
        if response.get("error"):
            error = response["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise UpstreamFailure(f"Upstream call {method} failed: {message}")
        return response.get("result")
