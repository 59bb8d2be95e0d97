# Copyright 2024 termchat contributors
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
from datetime import datetime, timedelta, timezone

from termchat.core.formatting import format_table, human_bytes, human_time, parse_timestamp


class HumanBytesTests(unittest.TestCase):
    def test_units(self):
        self.assertEqual(human_bytes(512), "512 B")
        self.assertEqual(human_bytes(1500), "1.5 KB")
        self.assertEqual(human_bytes(3825819519), "3.8 GB")
        self.assertEqual(human_bytes(734_000_000), "734 MB")


class HumanTimeTests(unittest.TestCase):
    NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_missing(self):
        self.assertEqual(human_time(None), "Never")
        self.assertEqual(human_time(None, "Unknown"), "Unknown")

    def test_past(self):
        self.assertEqual(human_time(self.NOW - timedelta(seconds=30), now=self.NOW), "30 seconds ago")
        self.assertEqual(human_time(self.NOW - timedelta(minutes=1), now=self.NOW), "About a minute ago")
        self.assertEqual(human_time(self.NOW - timedelta(hours=5), now=self.NOW), "5 hours ago")
        self.assertEqual(human_time(self.NOW - timedelta(days=3), now=self.NOW), "3 days ago")
        self.assertEqual(human_time(self.NOW - timedelta(days=14), now=self.NOW), "2 weeks ago")
        self.assertEqual(human_time(self.NOW - timedelta(days=400), now=self.NOW), "1 year ago")

    def test_future(self):
        self.assertEqual(human_time(self.NOW + timedelta(hours=1), now=self.NOW), "About an hour from now")


class ParseTimestampTests(unittest.TestCase):
    def test_nanoseconds_and_offset(self):
        parsed = parse_timestamp("2024-04-20T10:15:30.123456789-07:00")
        self.assertEqual(parsed, datetime(2024, 4, 20, 17, 15, 30, 123456, tzinfo=timezone.utc))

    def test_zulu(self):
        self.assertEqual(parse_timestamp("2024-04-20T10:15:30Z"), datetime(2024, 4, 20, 10, 15, 30, tzinfo=timezone.utc))

    def test_short_fraction(self):
        self.assertEqual(parse_timestamp("2024-04-20T10:15:30.5Z").microsecond, 500000)

    def test_invalid(self):
        self.assertIsNone(parse_timestamp(""))
        self.assertIsNone(parse_timestamp("yesterday"))


class FormatTableTests(unittest.TestCase):
    def test_columns_are_aligned(self):
        table = format_table(["NAME", "SIZE"], [["llama3:latest", "4.7 GB"], ["phi", "1.6 GB"]])
        self.assertEqual(table.splitlines(), [
            "NAME             SIZE",
            "llama3:latest    4.7 GB",
            "phi              1.6 GB",
        ])


if __name__ == "__main__":
    unittest.main()
