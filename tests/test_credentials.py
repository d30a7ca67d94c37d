import json
import os
from pathlib import Path
import tempfile
import unittest
from unittest.mock import patch

from coda_ai.credentials import CredentialStore, default_config_path
from coda_ai.errors import ConfigError


class CredentialStoreTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "nested" / "config.json"
        self.store = CredentialStore(self.path)

    def test_missing_file_means_no_token(self):
        self.assertFalse(self.store.exists())
        self.assertEqual(self.store.load(), {})
        self.assertIsNone(self.store.get())

    def test_save_creates_private_file(self):
        self.store.save("secret")

        self.assertEqual(self.store.get(), "secret")
        self.assertEqual(json.loads(self.path.read_text(encoding="utf-8")), {"api_token": "secret"})
        if os.name != "nt":
            self.assertEqual(self.path.stat().st_mode & 0o777, 0o600)

    def test_save_keeps_other_settings(self):
        self.store.write({"output": "human"})

        self.store.save("secret")

        self.assertEqual(self.store.load(), {"output": "human", "api_token": "secret"})

    def test_empty_token_reads_as_none(self):
        self.store.write({"api_token": ""})

        self.assertIsNone(self.store.get())

    def test_insecure_permissions_rejected(self):
        if os.name == "nt":
            self.skipTest("Permission mode semantics differ on Windows")
        self.store.save("secret")
        self.path.chmod(0o644)

        with self.assertRaises(ConfigError) as cm:
            self.store.load()

        self.assertIn("permissions", cm.exception.message)

    def test_invalid_json_rejected(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")

        with self.assertRaises(ConfigError):
            self.store.load()

    def test_non_object_rejected(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("[1, 2]", encoding="utf-8")

        with self.assertRaises(ConfigError):
            self.store.load()

    def test_new_file_is_created_private(self):
        if os.name == "nt":
            self.skipTest("Permission mode semantics differ on Windows")
        old_umask = os.umask(0)
        try:
            with patch.object(Path, "chmod") as chmod:
                self.store.write({"api_token": "secret"})
        finally:
            os.umask(old_umask)

        chmod.assert_called_once_with(0o600)
        self.assertEqual(self.path.stat().st_mode & 0o777, 0o600)

    def test_save_tightens_loose_permissions(self):
        if os.name == "nt":
            self.skipTest("Permission mode semantics differ on Windows")
        self.store.write({"api_token": "old", "timeout": 10})
        self.path.chmod(0o644)

        self.store.save("new")

        self.assertEqual(self.path.stat().st_mode & 0o777, 0o600)
        self.assertEqual(self.store.load(), {"api_token": "new", "timeout": 10})

    def test_delete_ignores_loose_permissions(self):
        if os.name == "nt":
            self.skipTest("Permission mode semantics differ on Windows")
        self.store.save("secret")
        self.path.chmod(0o644)

        self.assertTrue(self.store.delete())
        self.assertFalse(self.path.exists())

    def test_write_without_force_leaves_existing_file(self):
        self.store.write({"output": "human"})

        created = self.store.write({"output": "json"}, force=False)

        self.assertFalse(created)
        self.assertEqual(self.store.load(), {"output": "human"})

    def test_delete_removes_file_holding_only_token(self):
        self.store.save("secret")

        self.assertTrue(self.store.delete())
        self.assertFalse(self.path.exists())

    def test_delete_keeps_other_settings(self):
        self.store.write({"api_token": "secret", "timeout": 10})

        self.assertTrue(self.store.delete())
        self.assertEqual(self.store.load(), {"timeout": 10})

    def test_delete_without_file(self):
        self.assertFalse(self.store.delete())


class DefaultConfigPathTests(unittest.TestCase):
    def test_env_override(self):
        with patch.dict(os.environ, {"CODA_AI_CONFIG": "/tmp/elsewhere.json"}):
            self.assertEqual(default_config_path(), Path("/tmp/elsewhere.json"))

    def test_home_default(self):
        with patch.dict(os.environ, {"CODA_AI_CONFIG": ""}):
            self.assertEqual(default_config_path(), Path.home() / ".coda-ai" / "config.json")


if __name__ == "__main__":
    unittest.main()
