"""Unit tests for settings persistence."""

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path

from eqedit.settings_persistence import DEFAULT_SETTINGS, SettingsPersistence, get_persistence


class TestSettingsPersistence(unittest.TestCase):
    """Test settings persistence functionality."""

    def setUp(self):
        """Set up test fixtures."""
        # Create a temporary directory for test settings
        self.temp_dir = tempfile.mkdtemp()

        # Create a new SettingsPersistence instance with custom path
        self.persistence = SettingsPersistence()
        self.persistence._config_dir = Path(self.temp_dir)
        self.persistence._settings_file = self.persistence._config_dir / "test_settings.json"
        self.persistence._settings_cache = None

    def tearDown(self):
        """Clean up test fixtures."""
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_defaults_without_file(self):
        """Test that a missing settings file yields the defaults."""
        self.assertEqual(self.persistence.load_settings(), DEFAULT_SETTINGS)

    def test_save_and_load_settings(self):
        """Test saving and loading preferences."""
        settings = {
            "differential_style": "roman",
            "fraction_display_mode": "display",
            "undo_limit": 50,
        }
        self.assertTrue(self.persistence.save_settings(settings))

        # Fresh read from disk
        self.persistence.clear_cache()
        loaded = self.persistence.load_settings()
        self.assertEqual(loaded["differential_style"], "roman")
        self.assertEqual(loaded["fraction_display_mode"], "display")
        self.assertEqual(loaded["large_operator_display_mode"], "inline")
        self.assertEqual(loaded["undo_limit"], 50)

    def test_save_rejects_invalid_values(self):
        """Test that invalid values are never written."""
        self.assertFalse(self.persistence.save_settings({"differential_style": "bold"}))
        self.assertFalse(self.persistence._settings_file.exists())

    def test_set_setting_keeps_others(self):
        """Test updating a single preference."""
        self.persistence.set_setting("differential_style", "roman")
        self.persistence.set_setting("undo_limit", 20)
        self.persistence.clear_cache()
        self.assertEqual(self.persistence.get_setting("differential_style"), "roman")
        self.assertEqual(self.persistence.get_setting("undo_limit"), 20)
        self.assertIsNone(self.persistence.get_setting("missing"))

    def test_invalid_stored_values_are_skipped(self):
        """Test that hand edited invalid values fall back to defaults."""
        with open(self.persistence._settings_file, 'w', encoding='utf-8') as f:
            json.dump({"undo_limit": True, "fraction_display_mode": "display"}, f)

        with self.assertLogs("eqedit.settings_persistence", level="WARNING"):
            loaded = self.persistence.load_settings()
        self.assertEqual(loaded["undo_limit"], DEFAULT_SETTINGS["undo_limit"])
        self.assertEqual(loaded["fraction_display_mode"], "display")

    def test_corrupted_file(self):
        """Test handling of corrupted settings file."""
        with open(self.persistence._settings_file, 'w', encoding='utf-8') as f:
            f.write("invalid json {")

        loaded = self.persistence.load_settings()
        self.assertEqual(loaded, DEFAULT_SETTINGS)

    def test_non_dict_file(self):
        """Test handling of a settings file holding a list."""
        with open(self.persistence._settings_file, 'w', encoding='utf-8') as f:
            json.dump(["roman"], f)

        self.assertEqual(self.persistence.load_settings(), DEFAULT_SETTINGS)

    def test_atomic_save_leaves_no_temp_file(self):
        """Test that the temp file is renamed into place."""
        self.persistence.save_settings({"differential_style": "italic"})
        self.assertTrue(self.persistence._settings_file.exists())
        self.assertFalse(self.persistence._settings_file.with_suffix('.tmp').exists())

    def test_validate_setting(self):
        """Test setting validation."""
        validate = self.persistence.validate_setting
        self.assertTrue(validate("differential_style", "italic"))
        self.assertTrue(validate("differential_style", "roman"))
        self.assertFalse(validate("differential_style", "upright"))
        self.assertTrue(validate("large_operator_display_mode", "display"))
        self.assertFalse(validate("large_operator_display_mode", "block"))
        self.assertTrue(validate("undo_limit", 10))
        self.assertTrue(validate("undo_limit", 10000))
        self.assertFalse(validate("undo_limit", 9))
        self.assertFalse(validate("undo_limit", 10001))
        self.assertFalse(validate("undo_limit", "100"))
        self.assertFalse(validate("undo_limit", False))
        self.assertTrue(validate("undo_limit", None))
        self.assertTrue(validate("unknown_setting", "anything"))

    def test_global_instance(self):
        """Test that get_persistence returns the same instance."""
        self.assertIs(get_persistence(), get_persistence())


if __name__ == '__main__':
    unittest.main()
