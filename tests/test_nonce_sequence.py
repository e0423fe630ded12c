import json
import tempfile
import threading
import unittest
from pathlib import Path

from rowcrypt.kernel.errors import ConfigError, NonceExhausted
from rowcrypt.kernel.nonce import (
    CounterNonceSequence,
    NonceSequence,
    RandomNonceSequence,
    nonce_sequence_from_config,
)


class RandomNonceSequenceTests(unittest.TestCase):
    def test_nonces_are_distinct(self):
        seq = RandomNonceSequence()
        nonces = {seq.advance() for _ in range(2000)}
        self.assertEqual(len(nonces), 2000)
        self.assertTrue(all(len(n) == 12 for n in nonces))

    def test_rejects_short_nonce(self):
        with self.assertRaises(ValueError):
            RandomNonceSequence(nonce_len=4)

    def test_satisfies_protocol(self):
        self.assertIsInstance(RandomNonceSequence(), NonceSequence)
        self.assertIsInstance(CounterNonceSequence(), NonceSequence)


class CounterNonceSequenceTests(unittest.TestCase):
    def test_layout_is_prefix_then_big_endian_counter(self):
        seq = CounterNonceSequence(start=1, prefix=b"\xaa\xbb\xcc\xdd")
        self.assertEqual(seq.advance(), b"\xaa\xbb\xcc\xdd" + (1).to_bytes(8, "big"))
        self.assertEqual(seq.advance(), b"\xaa\xbb\xcc\xdd" + (2).to_bytes(8, "big"))
        self.assertEqual(seq.position, 3)

    def test_distinct_across_threads(self):
        seq = CounterNonceSequence()
        results: list[bytes] = []
        lock = threading.Lock()

        def worker():
            local = [seq.advance() for _ in range(500)]
            with lock:
                results.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(results), 4000)
        self.assertEqual(len(set(results)), 4000)

    def test_exhaustion(self):
        # 8-byte prefix leaves a 32-bit counter.
        seq = CounterNonceSequence(start=(1 << 32) - 2, prefix=b"\x00" * 8)
        seq.advance()
        seq.advance()
        with self.assertRaises(NonceExhausted):
            seq.advance()

    def test_rejects_narrow_counter(self):
        with self.assertRaises(ValueError):
            CounterNonceSequence(prefix=b"\x00" * 9)

    def test_resumes_past_reservation_after_restart(self):
        with tempfile.TemporaryDirectory() as tmp:
            state_path = Path(tmp) / "nonce_state.json"
            first = CounterNonceSequence(state_path=state_path, reserve=10)
            issued = [first.advance() for _ in range(3)]
            stored = json.loads(state_path.read_text(encoding="utf-8"))
            self.assertEqual(stored["next_reserved"], 10)

            second = CounterNonceSequence(state_path=state_path, reserve=10)
            self.assertEqual(second.position, 10)
            nonce = second.advance()
            self.assertNotIn(nonce, issued)
            self.assertEqual(nonce[4:], (10).to_bytes(8, "big"))

    def test_reserves_next_block_when_current_is_used(self):
        with tempfile.TemporaryDirectory() as tmp:
            state_path = Path(tmp) / "nonce_state.json"
            seq = CounterNonceSequence(state_path=state_path, reserve=2)
            for _ in range(3):
                seq.advance()
            stored = json.loads(state_path.read_text(encoding="utf-8"))
            self.assertEqual(stored["next_reserved"], 4)

    def test_prefix_mismatch_in_state_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            state_path = Path(tmp) / "nonce_state.json"
            CounterNonceSequence(prefix=b"\x01\x02\x03\x04", state_path=state_path).advance()
            with self.assertRaises(ConfigError):
                CounterNonceSequence(prefix=b"\x09\x09\x09\x09", state_path=state_path)


class NonceSequenceFromConfigTests(unittest.TestCase):
    def test_random_default(self):
        seq = nonce_sequence_from_config({}, 12)
        self.assertIsInstance(seq, RandomNonceSequence)

    def test_counter_with_prefix(self):
        with tempfile.TemporaryDirectory() as tmp:
            cfg = {"nonce": {"strategy": "counter", "prefix_hex": "0a0b0c0d", "state_path": f"{tmp}/nonce.json"}}
            seq = nonce_sequence_from_config(cfg, 12)
            self.assertIsInstance(seq, CounterNonceSequence)
            self.assertTrue(seq.advance().startswith(b"\x0a\x0b\x0c\x0d"))

    def test_counter_requires_state_path(self):
        with self.assertRaises(ConfigError):
            nonce_sequence_from_config({"nonce": {"strategy": "counter"}}, 12)

    def test_bad_counter_prefix(self):
        with tempfile.TemporaryDirectory() as tmp:
            for prefix_hex in ("zz", "00" * 9):
                with self.subTest(prefix_hex=prefix_hex):
                    cfg = {"nonce": {"strategy": "counter", "prefix_hex": prefix_hex, "state_path": f"{tmp}/nonce.json"}}
                    with self.assertRaises(ConfigError):
                        nonce_sequence_from_config(cfg, 12)

    def test_unknown_strategy(self):
        with self.assertRaises(ConfigError):
            nonce_sequence_from_config({"nonce": {"strategy": "clock"}}, 12)


if __name__ == "__main__":
    unittest.main()
