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


import unittest
from decimal import Decimal

from bsc_demo_rpc.units import format_units, to_base_units


class TestUnits(unittest.TestCase):
    def test_whole_units_to_wei(self):
        self.assertEqual(to_base_units("10"), 10 * 10**18)
        self.assertEqual(to_base_units(1.5), 15 * 10**17)
        self.assertEqual(to_base_units(Decimal("0.000000000000000001")), 1)

    def test_hex_is_base_units(self):
        self.assertEqual(to_base_units("0x10"), 16)

    def test_other_decimals(self):
        self.assertEqual(to_base_units("2.5", 6), 2_500_000)
        with self.assertRaises(ValueError):
            to_base_units("0.0000001", 6)

    def test_long_amounts_keep_every_digit(self):
        whole = "1" * 90
        self.assertEqual(to_base_units(whole + ".5", 6), int(whole + "5") * 10**5)
        self.assertEqual(format_units(int(whole + "5") * 10**5, 6), whole + ".5")
        with self.assertRaises(ValueError):
            to_base_units(whole + ".0000001", 6)
        # 81 significant digits with a nonzero 22nd decimal.
        with self.assertRaises(ValueError):
            to_base_units("1" * 59 + "." + "0" * 21 + "1")

    def test_invalid_amounts(self):
        for value in ("abc", "-1", "NaN", True):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    to_base_units(value)

    def test_format_units(self):
        self.assertEqual(format_units(0), "0")
        self.assertEqual(format_units(10 * 10**18), "10")
        self.assertEqual(format_units(1000 * 10**18), "1000")
        self.assertEqual(format_units(15 * 10**17), "1.5")
        self.assertEqual(format_units(2_500_000, 6), "2.5")


if __name__ == "__main__":
    unittest.main()
