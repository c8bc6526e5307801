"""Settings persistence for editor preferences.

Preferences (differential notation, display modes, undo depth) are stored
as JSON in an OS-appropriate location and survive application restarts.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs

from .constants import EditorConstants

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, Any] = {
    "differential_style": "italic",
    "fraction_display_mode": "inline",
    "large_operator_display_mode": "inline",
    "undo_limit": EditorConstants.DEFAULT_UNDO_LIMIT,
}

_CHOICES = {
    "differential_style": ("italic", "roman"),
    "fraction_display_mode": ("inline", "display"),
    "large_operator_display_mode": ("inline", "display"),
}


class SettingsPersistence:
    """Manages persistent storage of editor preferences.

    Settings live in a single JSON object in the user's config directory.
    Values that fail validation are ignored on load, so a hand edited file
    can never put the editor into an invalid state.
    """

    def __init__(self):
        """Initialize settings persistence."""
        self._config_dir = Path(platformdirs.user_config_dir("eqedit", "eqedit"))
        self._settings_file = self._config_dir / "settings.json"
        self._settings_cache: Optional[Dict[str, Any]] = None

    def _ensure_config_dir(self) -> None:
        """Ensure the config directory exists."""
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
        except (OSError, PermissionError) as e:
            logger.warning(f"Could not create config directory {self._config_dir}: {e}")

    def _load_all_settings(self) -> Dict[str, Any]:
        """Load the raw settings object from disk.

        Returns:
            The stored dictionary, or an empty dict if the file doesn't
            exist or can't be read.
        """
        if self._settings_cache is not None:
            return self._settings_cache

        if not self._settings_file.exists():
            self._settings_cache = {}
            return self._settings_cache

        try:
            with open(self._settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if not isinstance(data, dict):
                logger.warning("Settings file has invalid format (not a dict), ignoring")
                self._settings_cache = {}
                return self._settings_cache

            self._settings_cache = data
            return self._settings_cache

        except (json.JSONDecodeError, OSError, PermissionError) as e:
            logger.warning(f"Could not load settings from {self._settings_file}: {e}")
            self._settings_cache = {}
            return self._settings_cache

    def _save_all_settings(self, settings: Dict[str, Any]) -> bool:
        """Save the settings object to disk atomically.

        Returns:
            True if save was successful, False otherwise.
        """
        self._ensure_config_dir()

        # Atomic write: temp file then rename
        temp_file = self._settings_file.with_suffix('.tmp')

        try:
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(settings, f, indent=2)

            temp_file.replace(self._settings_file)

            self._settings_cache = settings
            return True

        except (OSError, PermissionError) as e:
            logger.warning(f"Could not save settings to {self._settings_file}: {e}")
            try:
                if temp_file.exists():
                    temp_file.unlink()
            except OSError:
                pass
            return False

    def load_settings(self) -> Dict[str, Any]:
        """Load preferences merged over the defaults.

        Invalid stored values are skipped with a warning.
        """
        settings = dict(DEFAULT_SETTINGS)
        for key, value in self._load_all_settings().items():
            if self.validate_setting(key, value):
                if value is not None:
                    settings[key] = value
            else:
                logger.warning(f"Ignoring invalid value {value!r} for setting {key}")
        return settings

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        """Replace the stored preferences.

        Returns:
            True if save was successful, False if a value is invalid or the
            write failed.
        """
        for key, value in settings.items():
            if not self.validate_setting(key, value):
                logger.warning(f"Refusing to save invalid value {value!r} for setting {key}")
                return False
        return self._save_all_settings(dict(settings))

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self.load_settings().get(key, default)

    def set_setting(self, key: str, value: Any) -> bool:
        """Update a single preference, keeping the others."""
        settings = dict(self._load_all_settings())
        settings[key] = value
        return self.save_settings(settings)

    def validate_setting(self, key: str, value: Any) -> bool:
        """Validate a setting value.

        Args:
            key: Setting key name.
            value: Setting value to validate.

        Returns:
            True if setting is valid, False otherwise.
        """
        if value is None:
            return True  # None is valid (means "not set")

        if key in _CHOICES:
            return value in _CHOICES[key]

        if key == 'undo_limit':
            # bool is an int subclass; reject it explicitly
            if not isinstance(value, int) or isinstance(value, bool):
                return False
            return 10 <= value <= 10000

        # Unknown settings are considered valid (forward compatibility)
        return True

    def clear_cache(self) -> None:
        """Clear the in-memory cache of settings."""
        self._settings_cache = None


# Global instance
_persistence: Optional[SettingsPersistence] = None


def get_persistence() -> SettingsPersistence:
    """Get the global settings persistence instance.

    Returns:
        The shared SettingsPersistence instance.
    """
    global _persistence
    if _persistence is None:
        _persistence = SettingsPersistence()
    return _persistence
