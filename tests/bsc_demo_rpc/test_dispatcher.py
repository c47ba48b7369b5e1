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


import json
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from eth_account import Account
from web3 import Web3

from bsc_demo_rpc import abi
from bsc_demo_rpc.config import Settings
from bsc_demo_rpc.dispatcher import RPCDispatcher, supported_methods
from bsc_demo_rpc.errors import UpstreamFailure
from bsc_demo_rpc.price import PriceSource

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
USDT = "0x55d398326f99059ff775485246999027b3197955"
OCH = "0x1234567890123456789012345678901234567890"
UNKNOWN_CONTRACT = "0x" + "c" * 40
ETHER = 10**18


class DispatcherTestCase(unittest.TestCase):
    settings_overrides = {}

    def setUp(self):
        self.settings = Settings(tx_seed=7, **self.settings_overrides)
        self.node = RPCDispatcher(self.settings)

    def rpc(self, method, *params, req_id=1):
        return self.node.handle_request(
            {"jsonrpc": "2.0", "id": req_id, "method": method, "params": list(params)}
        )

    def result(self, method, *params):
        response = self.rpc(method, *params)
        self.assertNotIn("error", response, response.get("error"))
        return response["result"]

    def error(self, method, *params):
        response = self.rpc(method, *params)
        self.assertNotIn("result", response)
        return response["error"]


class TestChainMetadata(DispatcherTestCase):
    def test_chain_id(self):
        self.assertEqual(
            self.rpc("eth_chainId"), {"jsonrpc": "2.0", "id": 1, "result": "0x38"}
        )
        self.assertEqual(self.result("net_version"), "56")

    def test_constants(self):
        self.assertEqual(self.result("eth_gasPrice"), "0x0")
        self.assertEqual(self.result("eth_maxPriorityFeePerGas"), "0x0")
        self.assertEqual(self.result("eth_estimateGas", {"to": BOB}), "0x5208")
        self.assertEqual(self.result("eth_blockNumber"), hex(12345678))
        self.assertEqual(self.result("web3_clientVersion"), self.settings.client_version)
        self.assertEqual(self.result("eth_getTransactionCount", ALICE, "latest"), "0x0")
        self.assertEqual(self.result("eth_accounts"), [])

    def test_supported_methods(self):
        for method in ("eth_call", "eth_getBalance", "demo_faucet", "demo_send",
                       "demo_getBalances", "eth_feeHistory", "eth_getCode"):
            self.assertIn(method, supported_methods())

    def test_latest_block(self):
        block = self.result("eth_getBlockByNumber", "latest", False)
        self.assertEqual(block["number"], hex(12345678))
        self.assertEqual(block["transactions"], [])
        self.assertIn("baseFeePerGas", block)
        self.assertIsNone(self.result("eth_getBlockByNumber", hex(12345679), False))

    def test_fee_history(self):
        history = self.result("eth_feeHistory", "0x4", "latest", [25, 75])
        self.assertEqual(history["oldestBlock"], hex(12345678 - 3))
        self.assertEqual(len(history["baseFeePerGas"]), 5)
        self.assertEqual(len(history["gasUsedRatio"]), 4)
        self.assertEqual(history["reward"], [["0x0", "0x0"]] * 4)

    def test_fee_history_reward_rows_are_independent(self):
        history = self.result("eth_feeHistory", "0x3", "latest", [50])
        rows = history["reward"]
        self.assertEqual(len({id(row) for row in rows}), 3)
        rows[0].append("0x1")
        self.assertEqual(rows[1], ["0x0"])

    def test_get_code(self):
        self.assertNotEqual(self.result("eth_getCode", USDT, "latest"), "0x")
        self.assertEqual(self.result("eth_getCode", ALICE, "latest"), "0x")


class TestBalances(DispatcherTestCase):
    def test_unknown_address_has_zero_balance(self):
        self.assertEqual(self.result("eth_getBalance", ALICE, "latest"), "0x0")
        self.assertEqual(self.result("eth_getBalance", ALICE, "latest"), "0x0")

    def test_get_balance_requires_address(self):
        self.assertEqual(self.error("eth_getBalance")["code"], -32602)
        self.assertEqual(self.error("eth_getBalance", "")["code"], -32602)
        self.assertEqual(self.error("eth_getBalance", "0x1234")["code"], -32602)

    def test_faucet_then_get_balance(self):
        granted = self.result("demo_faucet", ALICE)
        self.assertEqual(granted, {"bnb": "10", "usdt": "1000", "och": "5000"})
        self.assertEqual(self.result("eth_getBalance", ALICE, "latest"), hex(10 * ETHER))

    def test_faucet_requires_address(self):
        self.assertEqual(self.error("demo_faucet")["code"], -32602)

    def test_faucet_resets_rather_than_accumulates(self):
        self.result("demo_faucet", ALICE)
        self.result("demo_send", ALICE, BOB, "bnb", "3")
        self.node.ledger.set_token(ALICE, OCH, 1)
        self.result("demo_faucet", ALICE)
        self.result("demo_faucet", ALICE)
        balances = self.result("demo_getBalances", ALICE)
        self.assertEqual(balances["demo"], {"bnb": "10", "usdt": "1000", "och": "5000"})

    def test_address_case_insensitive(self):
        self.result("demo_faucet", "0x" + "A" * 40)
        self.assertEqual(self.result("eth_getBalance", ALICE, "latest"), hex(10 * ETHER))

    def test_get_balances_without_upstream_or_prices(self):
        balances = self.result("demo_getBalances", ALICE)
        self.assertEqual(balances["address"], ALICE)
        self.assertEqual(balances["real"], {"bnb": "0", "usdt": "0"})
        self.assertEqual(balances["demo"], {"bnb": "0", "usdt": "0", "och": "0"})
        self.assertEqual(balances["prices"], {"bnb": None, "usdt": None, "och": None})
        self.assertIsNone(balances["totalUsd"])

    def test_get_balances_with_prices(self):
        prices = {"bnb": Decimal("600"), "usdt": Decimal("1")}
        self.node.price_source = MagicMock()
        self.node.price_source.get_price.side_effect = lambda symbol: prices[symbol]
        self.result("demo_faucet", ALICE)
        balances = self.result("demo_getBalances", ALICE)
        self.assertEqual(balances["prices"], {"bnb": "600", "usdt": "1", "och": None})
        self.assertEqual(balances["totalUsd"], "7000.00")

    @patch("bsc_demo_rpc.price.requests.get")
    def test_get_balances_survives_malformed_price_feed(self, mock_get):
        mock_get.return_value.json.return_value = [{"symbol": "BNBUSDT", "price": "600"}]
        self.node.price_source = PriceSource(
            "https://prices.example/ticker", defaults={"BNB": Decimal("600")})
        self.result("demo_faucet", ALICE)
        balances = self.result("demo_getBalances", ALICE)
        self.assertEqual(balances["prices"], {"bnb": "600", "usdt": "1", "och": None})
        self.assertEqual(balances["totalUsd"], "7000.00")


class TestAdditiveFaucet(DispatcherTestCase):
    settings_overrides = {"faucet_additive": True}

    def test_faucet_accumulates(self):
        self.result("demo_faucet", ALICE)
        self.result("demo_faucet", ALICE)
        self.assertEqual(self.result("eth_getBalance", ALICE, "latest"), hex(20 * ETHER))
        self.assertEqual(self.result("demo_getBalances", ALICE)["demo"]["och"], "10000")


class TestDemoSend(DispatcherTestCase):
    def setUp(self):
        super().setUp()
        self.result("demo_faucet", ALICE)

    def test_send_native(self):
        tx_hash = self.result("demo_send", ALICE, BOB, "bnb", "2.5")
        self.assertRegex(tx_hash, r"^0x[0-9a-f]{64}$")
        self.assertEqual(self.node.ledger.native_balance(ALICE), 75 * 10**17)
        self.assertEqual(self.node.ledger.native_balance(BOB), 25 * 10**17)
        total = self.node.ledger.native_balance(ALICE) + self.node.ledger.native_balance(BOB)
        self.assertEqual(total, 10 * ETHER)

        receipt = self.result("eth_getTransactionReceipt", tx_hash)
        self.assertEqual(receipt["transactionHash"], tx_hash)
        self.assertEqual(receipt["from"], ALICE)
        self.assertEqual(receipt["to"], BOB)
        self.assertEqual(receipt["status"], "0x1")
        self.assertEqual(self.result("eth_blockNumber"), hex(12345679))
        self.assertEqual(self.result("eth_getTransactionCount", ALICE, "latest"), "0x1")

    def test_send_token_by_symbol(self):
        self.result("demo_send", ALICE, BOB, "USDT", 250)
        self.assertEqual(self.node.ledger.token_balance(ALICE, USDT), 750 * ETHER)
        self.assertEqual(self.node.ledger.token_balance(BOB, USDT), 250 * ETHER)
        data = abi.BALANCE_OF + "0" * 24 + BOB[2:]
        result = self.result("eth_call", {"to": USDT, "data": data}, "latest")
        self.assertEqual(int(result, 16), 250 * ETHER)

    def test_send_token_by_contract_address(self):
        tx_hash = self.result("demo_send", ALICE, BOB, OCH, "0x" + format(ETHER, "x"))
        self.assertEqual(self.node.ledger.token_balance(BOB, OCH), ETHER)
        tx = self.result("eth_getTransactionByHash", tx_hash)
        self.assertEqual(tx["to"], OCH)
        self.assertTrue(tx["input"].startswith(abi.TRANSFER))

    def test_send_insufficient_balance(self):
        error = self.error("demo_send", ALICE, BOB, "bnb", "10.5")
        self.assertEqual(error["code"], -32000)
        self.assertIn("Insufficient", error["message"])
        self.assertEqual(self.node.ledger.native_balance(ALICE), 10 * ETHER)
        self.assertEqual(self.node.ledger.native_balance(BOB), 0)
        self.assertEqual(self.result("eth_blockNumber"), hex(12345678))

    def test_send_validates_params(self):
        self.assertEqual(self.error("demo_send", ALICE, BOB, "bnb")["code"], -32602)
        self.assertEqual(self.error("demo_send", ALICE, BOB, "doge", "1")["code"], -32602)
        self.assertEqual(self.error("demo_send", ALICE, BOB, "bnb", "abc")["code"], -32602)
        self.assertEqual(self.error("demo_send", ALICE, BOB, "bnb", "0")["code"], -32602)
        self.assertEqual(self.error("demo_send", ALICE, "bob", "bnb", "1")["code"], -32602)

    def test_hashes_reproducible_with_seed(self):
        other = RPCDispatcher(Settings(tx_seed=7))
        other.handle_request(
            {"jsonrpc": "2.0", "id": 1, "method": "demo_faucet", "params": [ALICE]})
        first = self.result("demo_send", ALICE, BOB, "bnb", "1")
        second = other.handle_request(
            {"jsonrpc": "2.0", "id": 2, "method": "demo_send",
             "params": [ALICE, BOB, "bnb", "1"]})["result"]
        self.assertEqual(first, second)


class TestEthCall(DispatcherTestCase):
    def call(self, to, data):
        return self.result("eth_call", {"to": to, "data": data}, "latest")

    def test_balance_of(self):
        self.result("demo_faucet", ALICE)
        result = self.call(USDT, abi.BALANCE_OF + "0" * 24 + ALICE[2:])
        self.assertEqual(len(result), 66)
        self.assertEqual(int(result, 16), 1000 * ETHER)

    def test_balance_of_checksummed_contract(self):
        result = self.call(Web3.to_checksum_address(USDT), abi.BALANCE_OF + "0" * 64)
        self.assertEqual(result, "0x" + "0" * 64)

    def test_metadata(self):
        self.assertEqual(abi.decode_string(self.call(USDT, abi.NAME)), "Tether USD")
        self.assertEqual(abi.decode_string(self.call(OCH, abi.SYMBOL)), "OCH")
        self.assertEqual(int(self.call(USDT, abi.DECIMALS), 16), 18)
        self.assertEqual(int(self.call(OCH, abi.TOTAL_SUPPLY), 16), 1_000_000 * ETHER)

    def test_transfer_is_simulated(self):
        data = abi.TRANSFER + "0" * 24 + BOB[2:] + abi.encode_uint(1)[2:]
        self.assertEqual(int(self.call(USDT, data), 16), 1)
        self.assertEqual(self.node.ledger.token_balance(BOB, USDT), 0)

    def test_state_override_argument_ignored(self):
        overrides = {ALICE: {"balance": "0xffff"}}
        result = self.result(
            "eth_call", {"to": USDT, "data": abi.DECIMALS}, "latest", overrides)
        self.assertEqual(int(result, 16), 18)
        self.assertEqual(
            self.result("eth_estimateGas", {"to": BOB}, "latest", overrides), "0x5208")

    def test_input_field_accepted(self):
        result = self.result("eth_call", {"to": USDT, "input": abi.DECIMALS}, "latest")
        self.assertEqual(int(result, 16), 18)

    def test_unknown_contract_or_selector(self):
        self.assertEqual(self.call(UNKNOWN_CONTRACT, abi.BALANCE_OF + "0" * 64), "0x")
        self.assertEqual(self.call(USDT, "0xdeadbeef"), "0x")
        self.assertEqual(self.call(USDT, abi.BALANCE_OF), "0x")
        self.assertEqual(self.result("eth_call", {"to": USDT}, "latest"), "0x")


class TestTransactions(DispatcherTestCase):
    def test_send_transaction_recorded(self):
        tx_hash = self.result(
            "eth_sendTransaction", {"from": ALICE, "to": BOB, "value": "0x10"})
        receipt = self.result("eth_getTransactionReceipt", tx_hash)
        self.assertEqual(receipt["from"], ALICE)
        self.assertEqual(receipt["to"], BOB)
        self.assertEqual(receipt["blockNumber"], hex(12345679))
        tx = self.result("eth_getTransactionByHash", tx_hash)
        self.assertEqual(tx["value"], "0x10")
        block = self.result("eth_getBlockByNumber", "latest", False)
        self.assertEqual(block["transactions"], [tx_hash])
        # Simulation only; the demo ledger is untouched.
        self.assertEqual(self.node.ledger.native_balance(ALICE), 0)

    def test_receipt_synthesized_for_unknown_hash(self):
        tx_hash = "0x" + "1" * 64
        receipt = self.result("eth_getTransactionReceipt", tx_hash)
        self.assertEqual(receipt["transactionHash"], tx_hash)
        self.assertEqual(receipt["status"], "0x1")
        self.assertEqual(self.error("eth_getTransactionReceipt", "0x12")["code"], -32602)

    def test_send_raw_transaction(self):
        account = Account.create()
        signed = Account.sign_transaction(
            {
                "nonce": 0,
                "gasPrice": 0,
                "gas": 21000,
                "to": Web3.to_checksum_address(BOB),
                "value": 1,
                "data": b"",
                "chainId": 56,
            },
            account.key,
        )
        raw = Web3.to_hex(signed.raw_transaction)
        tx_hash = self.result("eth_sendRawTransaction", raw)
        self.assertEqual(tx_hash, Web3.to_hex(signed.hash))
        receipt = self.result("eth_getTransactionReceipt", tx_hash)
        self.assertEqual(receipt["from"], account.address.lower())

    def test_send_raw_transaction_garbage_still_hashed(self):
        tx_hash = self.result("eth_sendRawTransaction", "0xdeadbeef")
        self.assertEqual(tx_hash, Web3.to_hex(Web3.keccak(hexstr="0xdeadbeef")))
        self.assertIsNone(self.result("eth_getTransactionReceipt", tx_hash)["from"])


class TestEnvelopes(DispatcherTestCase):
    def test_parse_error(self):
        response = self.node.handle_body(b"{not json")
        self.assertEqual(response["id"], None)
        self.assertEqual(response["jsonrpc"], "2.0")
        self.assertEqual(response["error"]["code"], -32700)

    def test_invalid_request(self):
        self.assertEqual(self.node.handle_body(b"5")["error"]["code"], -32600)
        response = self.node.handle_request({"jsonrpc": "2.0", "id": 9})
        self.assertEqual(response["id"], 9)
        self.assertEqual(response["error"]["code"], -32600)

    def test_batch(self):
        body = json.dumps([
            {"jsonrpc": "2.0", "id": 1, "method": "eth_chainId", "params": []},
            {"jsonrpc": "2.0", "id": 2, "method": "no_such_method", "params": []},
        ])
        responses = self.node.handle_body(body)
        self.assertEqual(responses[0], {"jsonrpc": "2.0", "id": 1, "result": "0x38"})
        self.assertEqual(responses[1]["error"]["code"], -32601)
        self.assertEqual(self.node.handle_body("[]")["error"]["code"], -32600)

    def test_null_params(self):
        response = self.node.handle_request(
            {"jsonrpc": "2.0", "id": "a", "method": "eth_blockNumber", "params": None})
        self.assertEqual(response["id"], "a")
        self.assertEqual(response["result"], hex(12345678))

    def test_defaults_without_upstream(self):
        self.assertIs(self.result("eth_syncing"), False)
        self.assertEqual(self.result("eth_getLogs", {}), [])

    def test_unexpected_exception_becomes_internal_error(self):
        self.node.ledger = MagicMock()
        self.node.ledger.native_balance.side_effect = RuntimeError("boom")
        error = self.error("eth_getBalance", ALICE, "latest")
        self.assertEqual(error, {"code": -32603, "message": "boom"})


class TestUpstream(DispatcherTestCase):
    def setUp(self):
        super().setUp()
        self.upstream = MagicMock()
        self.node.upstream = self.upstream

    def test_passthrough(self):
        self.upstream.send.return_value = {"number": "0x1"}
        self.assertEqual(self.result("eth_getBlockByHash", "0x" + "2" * 64, False),
                         {"number": "0x1"})
        self.upstream.send.assert_called_once_with(
            "eth_getBlockByHash", ["0x" + "2" * 64, False])

    def test_passthrough_failure(self):
        self.upstream.send.side_effect = UpstreamFailure("Upstream call failed: boom")
        error = self.error("eth_getLogs", {})
        self.assertEqual(error["code"], -32603)
        self.assertIn("boom", error["message"])

    def test_balance_combines_real_and_demo(self):
        self.upstream.get_balance.return_value = 5
        self.result("demo_faucet", ALICE)
        self.assertEqual(self.result("eth_getBalance", ALICE, "latest"), hex(10 * ETHER + 5))

    def test_balance_survives_upstream_failure(self):
        self.upstream.get_balance.side_effect = UpstreamFailure("down")
        self.assertEqual(self.result("eth_getBalance", ALICE, "latest"), "0x0")

    def test_get_balances_reports_real(self):
        self.upstream.get_balance.return_value = 2 * ETHER
        self.upstream.token_balance.return_value = 3 * ETHER
        balances = self.result("demo_getBalances", ALICE)
        self.assertEqual(balances["real"], {"bnb": "2", "usdt": "3"})
        self.upstream.token_balance.assert_called_once_with(USDT, ALICE)


if __name__ == "__main__":
    unittest.main()
