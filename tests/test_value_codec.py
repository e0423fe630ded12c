import datetime as dt
import ipaddress
import json
import math
import unittest
import uuid
from decimal import Decimal

from rowcrypt.kernel.codec import decode_value, encode_value
from rowcrypt.kernel.errors import SerializationError


class ValueCodecTests(unittest.TestCase):
    def test_supported_values_round_trip(self):
        values = [
            None,
            True,
            False,
            0,
            -7,
            2**100,
            1.5,
            -0.0,
            "héllo",
            b"\x00\xff",
            Decimal("12.3400"),
            dt.date(2024, 2, 29),
            dt.time(23, 59, 1, 500),
            dt.datetime(2024, 1, 2, 3, 4, 5, tzinfo=dt.timezone.utc),
            dt.timedelta(days=-1, seconds=30, microseconds=7),
            uuid.UUID("12345678-1234-5678-1234-567812345678"),
            ipaddress.ip_address("10.0.0.1"),
            ipaddress.ip_address("::1"),
            [1, "a", None],
            {"k": [1, {"n": 2.25}]},
        ]
        for value in values:
            with self.subTest(value=value):
                decoded = decode_value(encode_value(value))
                self.assertEqual(decoded, value)
                self.assertIs(type(decoded), type(value))

    def test_float_specials_round_trip(self):
        self.assertTrue(math.isnan(decode_value(encode_value(float("nan")))))
        self.assertEqual(decode_value(encode_value(float("inf"))), float("inf"))
        self.assertEqual(math.copysign(1.0, decode_value(encode_value(-0.0))), -1.0)

    def test_bool_is_not_int(self):
        self.assertIs(decode_value(encode_value(True)), True)
        self.assertEqual(json.loads(encode_value(1))["t"], "int")

    def test_encoding_is_canonical(self):
        self.assertEqual(encode_value({"b": 1, "a": 2}), encode_value({"a": 2, "b": 1}))
        self.assertNotIn(b" ", encode_value({"a": [1, 2]}))

    def test_tuple_and_list_keep_their_type(self):
        self.assertEqual(decode_value(encode_value((1, [2, (3,)]))), (1, [2, (3,)]))
        self.assertIsInstance(decode_value(encode_value((1, 2))), tuple)
        self.assertIsInstance(decode_value(encode_value([1, 2])), list)

    def test_unencodable_str_and_int(self):
        for value in ("\ud800", 10**5000, {"k": ["ok", "\udfff"]}):
            with self.subTest(kind=type(value).__name__):
                with self.assertRaises(SerializationError):
                    encode_value(value)

    def test_unsupported_type(self):
        with self.assertRaises(SerializationError):
            encode_value(object())

    def test_non_string_map_key(self):
        with self.assertRaises(SerializationError):
            encode_value({1: "a"})

    def test_malformed_envelopes(self):
        bad = [
            b"\xff\xfe",
            b"not json",
            b"[]",
            b'{"t":"int"}',
            b'{"t":"int","v":"1"}',
            b'{"t":"bool","v":1}',
            b'{"t":"interval","v":[1,true,0]}',
            b'{"t":"uuid","v":"nope"}',
            b'{"t":"mystery","v":"x"}',
        ]
        for data in bad:
            with self.subTest(data=data):
                with self.assertRaises(SerializationError):
                    decode_value(data)


if __name__ == "__main__":
    unittest.main()
