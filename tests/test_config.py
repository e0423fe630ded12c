import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from rowcrypt.kernel.config import DEFAULT_CONFIG, SchemaLiteValidator, _deep_merge, load_config
from rowcrypt.kernel.errors import ConfigError


class ConfigTests(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        for name in ("ROWCRYPT_DATA_DIR", "ROWCRYPT_AEAD_ALGORITHM", "ROWCRYPT_NONCE_STRATEGY"):
            os.environ.pop(name, None)

    def test_defaults(self):
        config = load_config()
        self.assertEqual(config["crypto"]["algorithm"], "aes-256-gcm")
        self.assertEqual(config["crypto"]["nonce"]["strategy"], "random")
        self.assertEqual(config["crypto"]["keyring_path"], str(Path("data") / "vault" / "keyring.json"))
        self.assertEqual(DEFAULT_CONFIG["crypto"]["keyring_path"], "")

    def test_deep_merge(self):
        merged = _deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4})
        self.assertEqual(merged, {"a": {"b": 1, "c": 3}, "d": 4})

    def test_user_file_and_overrides(self):
        with tempfile.TemporaryDirectory() as tmp:
            user_path = Path(tmp) / "user.json"
            user_path.write_text(json.dumps({"storage": {"data_dir": tmp}, "logging": {"level": "debug"}}), encoding="utf-8")
            config = load_config(user_path, overrides={"crypto": {"nonce": {"strategy": "counter"}}})
            self.assertEqual(config["storage"]["data_dir"], tmp)
            self.assertEqual(config["logging"]["level"], "debug")
            self.assertEqual(config["logging"]["rotate_max_bytes"], DEFAULT_CONFIG["logging"]["rotate_max_bytes"])
            self.assertEqual(config["crypto"]["nonce"]["state_path"], str(Path(tmp) / "vault" / "nonce_state.json"))

    def test_env_overrides(self):
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch.dict(
                os.environ,
                {
                    "ROWCRYPT_DATA_DIR": tmp,
                    "ROWCRYPT_AEAD_ALGORITHM": "ChaCha20-Poly1305",
                    "ROWCRYPT_NONCE_STRATEGY": "counter",
                },
            ):
                config = load_config()
            self.assertEqual(config["storage"]["data_dir"], tmp)
            self.assertEqual(config["crypto"]["algorithm"], "chacha20-poly1305")
            self.assertEqual(config["crypto"]["nonce"]["strategy"], "counter")
            self.assertEqual(config["crypto"]["keyring_path"], str(Path(tmp) / "vault" / "keyring.json"))

    def test_validation_failures(self):
        bad_overrides = [
            {"crypto": {"algorithm": "rot13"}},
            {"crypto": {"nonce": {"strategy": "clock"}}},
            {"crypto": {"nonce": {"reserve": 0}}},
            {"crypto": {"nonce": {"surprise": True}}},
            {"crypto": {"validate_key": "yes"}},
            {"logging": {"rotate_max_bytes": True}},
            {"storage": "nowhere"},
        ]
        for overrides in bad_overrides:
            with self.subTest(overrides=overrides):
                with self.assertRaises(ConfigError):
                    load_config(overrides=overrides)

    def test_invalid_json_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            user_path = Path(tmp) / "user.json"
            user_path.write_text("{", encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_config(user_path)
            user_path.write_text("[]", encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_config(user_path)

    def test_schema_lite_validator(self):
        validator = SchemaLiteValidator()
        schema = {"type": "array", "items": {"type": "integer", "minimum": 0}}
        validator.validate(schema, [0, 1])
        with self.assertRaises(ConfigError):
            validator.validate(schema, [1, -1])
        with self.assertRaises(ConfigError):
            validator.validate({"type": "widget"}, 1)


if __name__ == "__main__":
    unittest.main()
