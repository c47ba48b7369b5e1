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



import os
import unittest
from unittest.mock import patch

from bsc_demo_rpc.config import Settings
from bsc_demo_rpc.dispatcher import RPCDispatcher
from bsc_demo_rpc.upstream import RealChainClient


class TestSettingsFromEnv(unittest.TestCase):
    @patch.dict(os.environ, {}, clear=True)
    def test_upstream_off_by_default(self):
        settings = Settings.from_env()
        self.assertIsNone(settings.upstream_rpc_url)
        self.assertIsNone(RPCDispatcher.from_settings(settings).upstream)

    @patch.dict(os.environ, {
        "BSC_DEMO_UPSTREAM_RPC_URL": "https://bsc-dataseed.binance.org/",
        "BSC_DEMO_UPSTREAM_TIMEOUT": "3.5",
    }, clear=True)
    @patch("bsc_demo_rpc.upstream.Web3")
    def test_upstream_configured(self, mock_web3):
        settings = Settings.from_env()
        self.assertEqual(settings.upstream_rpc_url, "https://bsc-dataseed.binance.org/")
        self.assertEqual(settings.upstream_timeout, 3.5)
        self.assertIsInstance(RPCDispatcher.from_settings(settings).upstream, RealChainClient)

    @patch.dict(os.environ, {
        "BSC_DEMO_PORT": "not-a-port",
        "BSC_DEMO_FAUCET_ADDITIVE": "yes",
        "BSC_DEMO_TX_SEED": "0x2a",
    }, clear=True)
    def test_invalid_values_fall_back(self):
        with self.assertLogs("bsc_demo_rpc.config", level="WARNING"):
            settings = Settings.from_env()
        self.assertEqual(settings.port, 8545)
        self.assertTrue(settings.faucet_additive)
        self.assertEqual(settings.tx_seed, 42)


if __name__ == "__main__":
    unittest.main()
