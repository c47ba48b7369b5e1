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

"""JSON-RPC dispatcher of the demo BSC node.

Maps ``(method, params)`` to fabricated Ethereum-compatible results. Every
handler takes the dispatcher and the raw params and returns the JSON result;
all failures come back as JSON-RPC error envelopes, never as exceptions.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union

from eth_account import Account
from web3 import Web3

from . import abi
from .chain import TRANSFER_GAS, ZERO_ADDRESS, ZERO_HASH, ChainState, TxHashGenerator
from .config import Settings, TokenDescriptor
from .errors import (
    InvalidParams,
    InvalidRequest,
    ParseError,
    RPCError,
    UnsupportedMethod,
    UpstreamFailure,
)
from .ledger import Ledger
from .price import PriceSource
from .schemas import (
    AddressParams,
    BalanceParams,
    BlockParams,
    CallParams,
    DemoSendParams,
    FeeHistoryParams,
    RawTransactionParams,
    SendTransactionParams,
    TxHashParams,
    bind,
    parse_request,
)
from .units import format_units, to_base_units
from .upstream import RealChainClient

logger = logging.getLogger("bsc_demo_rpc.dispatcher")

Params = Union[List[Any], dict]
Handler = Callable[["RPCDispatcher", Params], Any]

_HANDLERS: Dict[str, Handler] = {}

# Answered locally for unknown methods when no upstream is configured.
DEFAULT_RESULTS: Dict[str, Any] = {
    "eth_syncing": False,
    "eth_mining": False,
    "eth_hashrate": "0x0",
    "eth_coinbase": ZERO_ADDRESS,
    "eth_getLogs": [],
    "eth_getStorageAt": ZERO_HASH,
    "eth_getBlockByHash": None,
    "eth_getUncleCountByBlockNumber": "0x0",
    "net_listening": True,
    "net_peerCount": "0x0",
}

# Runtime code reported for the simulated token contracts so wallets treat
# them as contracts.
TOKEN_CODE = "0x6080604052348015600f57600080fd5b50"

MAX_FEE_HISTORY_BLOCKS = 1024
BLOCK_TAGS = ("latest", "pending", "safe", "finalized")


def rpc_method(name: str) -> Callable[[Handler], Handler]:
    def register(func: Handler) -> Handler:
        _HANDLERS[name] = func
        return func
    return register


def supported_methods() -> List[str]:
    return sorted(_HANDLERS)


def error_response(req_id: Any, error: RPCError) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": req_id, "error": error.to_dict()}


class RPCDispatcher:
    """Resolves JSON-RPC requests against the demo ledger and chain state."""

    def __init__(self, settings: Optional[Settings] = None,
                 ledger: Optional[Ledger] = None,
                 chain: Optional[ChainState] = None,
                 upstream: Optional[RealChainClient] = None,
                 price_source: Optional[PriceSource] = None):
        self.settings = settings or Settings()
        self.ledger = ledger or Ledger(
            self.settings.seed_native_balance,
            self.settings.seed_token_balance,
            tokens=[token.address for token in self.settings.tokens],
        )
        self.chain = chain or ChainState(
            self.settings.start_block,
            self.settings.chain_id,
            TxHashGenerator(self.settings.tx_seed),
        )
        self.upstream = upstream
        self.price_source = price_source

    @classmethod
    def from_settings(cls, settings: Settings) -> "RPCDispatcher":
        upstream = None
        if settings.upstream_rpc_url:
            upstream = RealChainClient(settings.upstream_rpc_url, settings.upstream_timeout)
        price_source = PriceSource(
            settings.price_url,
            cache_seconds=settings.price_cache_seconds,
            defaults=settings.default_prices,
        )
        return cls(settings, upstream=upstream, price_source=price_source)

    def handle_body(self, body: Union[bytes, str]) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
        """Entry point for the transport: raw request body in, envelope(s) out."""
        try:
            payload = json.loads(body)
        except ValueError as e:
            logger.warning(f"Unparseable RPC body: {e}")
            return error_response(None, ParseError(f"Parse error: {e}"))
        return self.handle_payload(payload)

    def handle_payload(self, payload: Any) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
        if isinstance(payload, list):
            if not payload:
                return error_response(None, InvalidRequest("Empty batch"))
            return [self.handle_request(item) for item in payload]
        return self.handle_request(payload)

    def handle_request(self, payload: Any) -> Dict[str, Any]:
        req_id = payload.get("id") if isinstance(payload, dict) else None
        method = payload.get("method") if isinstance(payload, dict) else None
        try:
            request = parse_request(payload)
            logger.info(f"RPC Request: {request.method} params={request.params}")
            result = self.dispatch(request.method, request.params)
        except RPCError as e:
            logger.warning(f"RPC Error for {method}: {e.message}")
            return error_response(req_id, e)
        except Exception as e:
            logger.exception(f"Unexpected error handling {method}")
            return error_response(req_id, RPCError(str(e)))
        return {"jsonrpc": "2.0", "id": req_id, "result": result}

    def dispatch(self, method: str, params: Params) -> Any:
        handler = _HANDLERS.get(method)
        if handler is not None:
            return handler(self, params)
        return self._fallback(method, params)

    def _fallback(self, method: str, params: Params) -> Any:
        if self.upstream is not None:
            logger.info(f"Forwarding {method} to upstream")
            return self.upstream.send(method, params)
        if method in DEFAULT_RESULTS:
            logger.warning(f"Unhandled RPC Method: {method}, answering with default")
            result = DEFAULT_RESULTS[method]
            return list(result) if isinstance(result, list) else result
        raise UnsupportedMethod(method)

    def resolve_asset(self, key: str) -> Optional[TokenDescriptor]:
        """None for the native currency, else the token; unknown keys are rejected."""
        if key.lower() in (self.settings.native_symbol.lower(), "native"):
            return None
        token = self.settings.token_by_key(key)
        if token is None:
            raise InvalidParams(f"Unknown asset {key}")
        return token

    def real_balance(self, address: str, token: Optional[TokenDescriptor] = None) -> int:
        """Best-effort real BSC balance; 0 when no upstream answers."""
        if self.upstream is None:
            return 0
        try:
            if token is None:
                return self.upstream.get_balance(address)
            return self.upstream.token_balance(token.address, address)
        except UpstreamFailure as e:
            logger.warning(f"Could not fetch real balance for {address}: {e.message}")
            return 0


def _block_number(tag: Union[str, int, None]) -> Optional[int]:
    """Resolves a block tag; None means the latest block."""
    if tag is None or tag in BLOCK_TAGS:
        return None
    if tag == "earliest":
        return 0
    if isinstance(tag, int):
        return tag
    try:
        return int(tag, 16)
    except ValueError:
        raise InvalidParams(f"invalid block tag {tag!r}")


def _quantity(value: Union[str, int]) -> int:
    if isinstance(value, int):
        return value
    try:
        return int(value, 16) if value.startswith("0x") else int(value)
    except ValueError:
        raise InvalidParams(f"invalid quantity {value!r}")


# ---------------------------------------------------------------------------
# Chain metadata
# ---------------------------------------------------------------------------

@rpc_method("net_version")
def net_version(node: RPCDispatcher, params: Params) -> str:
    return str(node.settings.chain_id)


@rpc_method("eth_chainId")
def eth_chain_id(node: RPCDispatcher, params: Params) -> str:
    return hex(node.settings.chain_id)


@rpc_method("web3_clientVersion")
def web3_client_version(node: RPCDispatcher, params: Params) -> str:
    return node.settings.client_version


@rpc_method("eth_gasPrice")
def eth_gas_price(node: RPCDispatcher, params: Params) -> str:
    return hex(node.settings.gas_price_wei)


@rpc_method("eth_maxPriorityFeePerGas")
def eth_max_priority_fee(node: RPCDispatcher, params: Params) -> str:
    return hex(node.settings.gas_price_wei)


@rpc_method("eth_blockNumber")
def eth_block_number(node: RPCDispatcher, params: Params) -> str:
    return hex(node.chain.block_number)


@rpc_method("eth_estimateGas")
def eth_estimate_gas(node: RPCDispatcher, params: Params) -> str:
    bind(CallParams, params)
    return hex(TRANSFER_GAS)


@rpc_method("eth_getTransactionCount")
def eth_get_transaction_count(node: RPCDispatcher, params: Params) -> str:
    address = bind(BalanceParams, params).address
    return hex(node.chain.nonce_of(address))


@rpc_method("eth_accounts")
def eth_accounts(node: RPCDispatcher, params: Params) -> List[Any]:
    # The node holds no keys; wallets that pass their own accounts get them back.
    return list(params) if isinstance(params, list) else []


@rpc_method("eth_getBlockByNumber")
def eth_get_block_by_number(node: RPCDispatcher, params: Params) -> Optional[Dict[str, Any]]:
    request = bind(BlockParams, params)
    number = _block_number(request.block)
    return node.chain.block(number, request.full_transactions, node.settings.gas_price_wei)


@rpc_method("eth_feeHistory")
def eth_fee_history(node: RPCDispatcher, params: Params) -> Dict[str, Any]:
    request = bind(FeeHistoryParams, params)
    count = max(1, min(_quantity(request.block_count), MAX_FEE_HISTORY_BLOCKS))
    newest = _block_number(request.newest_block)
    if newest is None or newest > node.chain.block_number:
        newest = node.chain.block_number
    count = min(count, newest + 1)
    oldest = newest - count + 1
    gas_price = hex(node.settings.gas_price_wei)
    history: Dict[str, Any] = {
        "oldestBlock": hex(oldest),
        "baseFeePerGas": [gas_price] * (count + 1),
        "gasUsedRatio": [0.0] * count,
    }
    if request.reward_percentiles:
        history["reward"] = [[gas_price] * len(request.reward_percentiles) for _ in range(count)]
    return history


@rpc_method("eth_getCode")
def eth_get_code(node: RPCDispatcher, params: Params) -> str:
    request = bind(BalanceParams, params)
    if node.settings.token_by_address(request.address) is not None:
        return TOKEN_CODE
    if node.upstream is not None:
        try:
            return node.upstream.send("eth_getCode", [request.address, request.block])
        except UpstreamFailure as e:
            logger.warning(f"eth_getCode upstream failed: {e.message}")
    return abi.EMPTY_RESULT


# ---------------------------------------------------------------------------
# Balances and contract calls
# ---------------------------------------------------------------------------

@rpc_method("eth_getBalance")
def eth_get_balance(node: RPCDispatcher, params: Params) -> str:
    address = bind(BalanceParams, params).address
    balance = node.ledger.native_balance(address)
    if node.settings.combine_real_balance:
        balance += node.real_balance(address)
    return hex(balance)


def _call_balance_of(node: RPCDispatcher, token: TokenDescriptor, data: str) -> str:
    owner = abi.decode_address_arg(data, 0)
    return abi.encode_uint(node.ledger.token_balance(owner, token.address))


def _call_name(node: RPCDispatcher, token: TokenDescriptor, data: str) -> str:
    return abi.encode_string(token.name)


def _call_symbol(node: RPCDispatcher, token: TokenDescriptor, data: str) -> str:
    return abi.encode_string(token.symbol)


def _call_decimals(node: RPCDispatcher, token: TokenDescriptor, data: str) -> str:
    return abi.encode_uint(token.decimals)


def _call_total_supply(node: RPCDispatcher, token: TokenDescriptor, data: str) -> str:
    return abi.encode_uint(token.total_supply)


def _call_transfer(node: RPCDispatcher, token: TokenDescriptor, data: str) -> str:
    # Simulated only; demo_send moves balances.
    return abi.encode_bool(True)


TOKEN_CALLS: Dict[str, Callable[[RPCDispatcher, TokenDescriptor, str], str]] = {
    abi.BALANCE_OF: _call_balance_of,
    abi.NAME: _call_name,
    abi.SYMBOL: _call_symbol,
    abi.DECIMALS: _call_decimals,
    abi.TOTAL_SUPPLY: _call_total_supply,
    abi.TRANSFER: _call_transfer,
}


@rpc_method("eth_call")
def eth_call(node: RPCDispatcher, params: Params) -> str:
    call = bind(CallParams, params).tx
    data = call.payload
    if not call.to or not data:
        return abi.EMPTY_RESULT
    token = node.settings.token_by_address(call.to)
    if token is None:
        return abi.EMPTY_RESULT
    try:
        selector = abi.decode_selector(data)
        handler = TOKEN_CALLS.get(selector)
        if handler is None:
            logger.info(f"Unknown selector {selector} on {token.symbol}")
            return abi.EMPTY_RESULT
        return handler(node, token, data)
    except ValueError as e:
        logger.warning(f"Malformed eth_call data for {token.symbol}: {e}")
        return abi.EMPTY_RESULT


# ---------------------------------------------------------------------------
# Transaction simulation
# ---------------------------------------------------------------------------

@rpc_method("eth_sendTransaction")
def eth_send_transaction(node: RPCDispatcher, params: Params) -> str:
    tx = bind(SendTransactionParams, params).tx
    record = node.chain.record(
        tx.sender,
        tx.to,
        value=int(tx.value, 16) if tx.value and tx.value != "0x" else 0,
        data=tx.payload or "0x",
        gas=int(tx.gas, 16) if tx.gas and tx.gas != "0x" else TRANSFER_GAS,
    )
    return record.hash


@rpc_method("eth_sendRawTransaction")
def eth_send_raw_transaction(node: RPCDispatcher, params: Params) -> str:
    raw = bind(RawTransactionParams, params).raw
    # Real nodes report keccak256 of the signed payload as the tx hash.
    tx_hash = Web3.to_hex(Web3.keccak(hexstr=raw))
    try:
        sender = Account.recover_transaction(raw)
    except Exception as e:
        logger.warning(f"Could not recover sender of raw tx {tx_hash}: {e}")
        sender = None
    record = node.chain.record(sender, None, tx_hash=tx_hash)
    return record.hash


@rpc_method("eth_getTransactionReceipt")
def eth_get_transaction_receipt(node: RPCDispatcher, params: Params) -> Dict[str, Any]:
    tx_hash = bind(TxHashParams, params).tx_hash
    return node.chain.lookup(tx_hash).to_receipt(node.settings.gas_price_wei)


@rpc_method("eth_getTransactionByHash")
def eth_get_transaction_by_hash(node: RPCDispatcher, params: Params) -> Dict[str, Any]:
    tx_hash = bind(TxHashParams, params).tx_hash
    return node.chain.lookup(tx_hash).to_transaction(node.settings.gas_price_wei)


# ---------------------------------------------------------------------------
# Demo extensions
# ---------------------------------------------------------------------------

def _grant(ledger: Ledger, address: str, amount: int, token: Optional[str],
           additive: bool) -> None:
    if additive:
        ledger.credit(address, amount, token)
    elif token is None:
        ledger.set_native(address, amount)
    else:
        ledger.set_token(address, token, amount)


@rpc_method("demo_faucet")
def demo_faucet(node: RPCDispatcher, params: Params) -> Dict[str, str]:
    """Grants the fixed faucet amounts; resets balances unless additive."""
    address = bind(AddressParams, params).address
    settings = node.settings
    additive = settings.faucet_additive

    native_amount = to_base_units(settings.native_faucet_amount)
    granted = {settings.native_symbol.lower(): format_units(native_amount)}
    with node.ledger.atomic() as ledger:
        _grant(ledger, address, native_amount, None, additive)
        for token in settings.tokens:
            amount = to_base_units(token.faucet_amount, token.decimals)
            _grant(ledger, address, amount, token.address, additive)
            granted[token.key] = format_units(amount, token.decimals)
    logger.info(f"Faucet granted {granted} to {address}")
    return granted


@rpc_method("demo_getBalances")
def demo_get_balances(node: RPCDispatcher, params: Params) -> Dict[str, Any]:
    address = bind(AddressParams, params).address
    settings = node.settings
    native_key = settings.native_symbol.lower()

    with node.ledger.atomic() as ledger:
        demo = {native_key: ledger.native_balance(address)}
        for token in settings.tokens:
            demo[token.key] = ledger.token_balance(address, token.address)

    real = {native_key: node.real_balance(address)}
    for token in settings.tokens:
        if token.mirrors_real:
            real[token.key] = node.real_balance(address, token)

    decimals = {token.key: token.decimals for token in settings.tokens}
    decimals[native_key] = 18

    # Only assets with a real market get a price.
    priced_keys = set(real)
    prices: Dict[str, Optional[str]] = {}
    total_usd = Decimal(0)
    priced = False
    for key, demo_amount in demo.items():
        price = None
        if node.price_source is not None and key in priced_keys:
            price = node.price_source.get_price(key)
        prices[key] = str(price) if price is not None else None
        if price is None:
            continue
        priced = True
        units = Decimal(format_units(demo_amount + real.get(key, 0), decimals[key]))
        total_usd += units * price

    return {
        "address": address,
        "real": {k: format_units(v, decimals[k]) for k, v in real.items()},
        "demo": {k: format_units(v, decimals[k]) for k, v in demo.items()},
        "prices": prices,
        "totalUsd": str(total_usd.quantize(Decimal("0.01"))) if priced else None,
    }


@rpc_method("demo_send")
def demo_send(node: RPCDispatcher, params: Params) -> str:
    request = bind(DemoSendParams, params)
    token = node.resolve_asset(request.asset)
    decimals = token.decimals if token else 18
    label = token.symbol if token else node.settings.native_symbol
    try:
        amount = to_base_units(request.amount, decimals)
    except ValueError as e:
        raise InvalidParams(f"amount: {e}")
    if amount <= 0:
        raise InvalidParams("amount: must be greater than zero")

    node.ledger.transfer(
        request.sender, request.receiver, amount,
        token=token.address if token else None, asset=label,
    )
    if token is None:
        record = node.chain.record(request.sender, request.receiver, value=amount, asset=label)
    else:
        data = (
            abi.TRANSFER
            + abi.encode_uint(int(request.receiver, 16))[2:]
            + abi.encode_uint(amount)[2:]
        )
        record = node.chain.record(request.sender, token.address, data=data, gas=65000,
                                   asset=label)
    logger.info(f"Demo send {request.amount} {label} {request.sender} -> {request.receiver}: {record.hash}")
    return record.hash
