import os
from pathlib import Path
import tempfile
import unittest
from unittest.mock import patch

from coda_ai.errors import ConfigError
from coda_ai.settings import Settings, load_settings, resolve_settings


class SettingsTests(unittest.TestCase):
    def test_defaults_allow_everything(self):
        settings = Settings()

        self.assertTrue(settings.is_command_allowed("read"))
        self.assertTrue(settings.is_doc_allowed("anything"))
        self.assertTrue(settings.is_operation_allowed("pages", "export"))

    def test_explicit_lists(self):
        settings = Settings(docs=["d1"], commands=["docs", "find"])

        self.assertTrue(settings.is_command_allowed("find"))
        self.assertFalse(settings.is_command_allowed("read"))
        self.assertTrue(settings.is_doc_allowed("d1"))
        self.assertFalse(settings.is_doc_allowed("d2"))

    def test_operations_only_restrict_listed_resources(self):
        settings = Settings(operations={"pages": ["inspect"]})

        self.assertTrue(settings.is_operation_allowed("pages", "inspect"))
        self.assertFalse(settings.is_operation_allowed("pages", "export"))
        self.assertTrue(settings.is_operation_allowed("tables", "export"))


class LoadSettingsTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)

    def _write(self, text: str, name: str = "settings.yaml") -> Path:
        path = self.dir / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_load_lists_and_operations(self):
        path = self._write(
            "docs:\n  - d1\n  - d2\n"
            "commands: [docs, pages]\n"
            "operations:\n  pages: [export]\n"
        )

        settings = load_settings(path)

        self.assertEqual(settings.docs, ["d1", "d2"])
        self.assertEqual(settings.commands, ["docs", "pages"])
        self.assertEqual(settings.operations, {"pages": ["export"]})
        self.assertEqual(settings.path, path)

    def test_missing_keys_default_to_wildcard(self):
        settings = load_settings(self._write("commands: docs\n"))

        self.assertEqual(settings.docs, ["all"])
        self.assertEqual(settings.commands, ["docs"])
        self.assertIsNone(settings.operations)

    def test_empty_file(self):
        settings = load_settings(self._write(""))

        self.assertTrue(settings.is_command_allowed("read"))

    def test_invalid_yaml(self):
        with self.assertRaises(ConfigError) as cm:
            load_settings(self._write("docs: [unclosed\n"))

        self.assertIn("Invalid YAML", cm.exception.message)

    def test_non_mapping(self):
        with self.assertRaises(ConfigError):
            load_settings(self._write("- docs\n- pages\n"))

    def test_list_key_with_wrong_type(self):
        with self.assertRaises(ConfigError):
            load_settings(self._write("docs: {a: b}\n"))

    def test_missing_file(self):
        with self.assertRaises(ConfigError) as cm:
            load_settings(self.dir / "absent.yaml")

        self.assertEqual(cm.exception.code, "CONFIG")


class ResolveSettingsTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name)

    def test_no_file_anywhere_is_permissive(self):
        candidates = [self.dir / "settings.yaml", self.dir / "home" / "settings.yaml"]
        with patch.dict(os.environ, {"CODA_AI_SETTINGS": ""}), patch(
            "coda_ai.settings.candidate_settings_paths", return_value=candidates
        ):
            settings = resolve_settings()

        self.assertIsNone(settings.path)
        self.assertTrue(settings.is_command_allowed("read"))

    def test_first_existing_candidate_wins(self):
        second = self.dir / "second.yaml"
        second.write_text("commands: [docs]\n", encoding="utf-8")
        candidates = [self.dir / "first.yaml", second]
        with patch.dict(os.environ, {"CODA_AI_SETTINGS": ""}), patch(
            "coda_ai.settings.candidate_settings_paths", return_value=candidates
        ):
            settings = resolve_settings()

        self.assertEqual(settings.path, second)
        self.assertFalse(settings.is_command_allowed("read"))

    def test_env_path_must_exist(self):
        with patch.dict(os.environ, {"CODA_AI_SETTINGS": str(self.dir / "absent.yaml")}):
            with self.assertRaises(ConfigError):
                resolve_settings()

    def test_explicit_path_beats_env(self):
        explicit = self.dir / "explicit.yaml"
        explicit.write_text("docs: [d9]\n", encoding="utf-8")
        with patch.dict(os.environ, {"CODA_AI_SETTINGS": str(self.dir / "absent.yaml")}):
            settings = resolve_settings(explicit)

        self.assertEqual(settings.docs, ["d9"])


if __name__ == "__main__":
    unittest.main()
