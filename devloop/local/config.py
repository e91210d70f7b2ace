import json
import shlex
import logging
from pathlib import Path
from types import ModuleType
from typing import Any, Optional

import devloop.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    Merges the default settings with JSON overrides.

    This class provides a unified, attribute-based access point for all
    devloop configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from the environment and `.env` (resolved in settings.py).
    3. Overrides from `overrides.json` for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, overrides_path: Optional[Path] = None, defaults: ModuleType = default_settings) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param overrides_path: Overrides file to read; defaults to OVERRIDES_JSON_PATH.
        :param defaults: Module holding the uppercase default values.
        """
        self._defaults = defaults
        self._load_defaults()
        if overrides_path is not None:
            self.OVERRIDES_JSON_PATH = Path(overrides_path)
        self._load_overrides()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings module as defaults."""
        for key in dir(self._defaults):
            if key.isupper():
                setattr(self, key, getattr(self._defaults, key))

    def _coerce(self, key: str, value: Any) -> Any:
        """Converts a JSON value back to the type of the default it replaces."""
        original_value = getattr(self, key)
        if isinstance(original_value, Path):
            return Path(value)
        if isinstance(original_value, list) and isinstance(value, str):
            return shlex.split(value)
        if isinstance(original_value, bool):
            return str(value).lower() in ('true', '1', 't', 'yes', 'y')
        if isinstance(original_value, (int, float)) and not isinstance(value, bool):
            return type(original_value)(value)
        return value

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the `overrides.json` file.

        It will only apply overrides for keys that are explicitly listed in
        the `MODIFIABLE_SETTINGS` set in `settings.py`.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return

        log.info(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            try:
                setattr(self, key, self._coerce(key, value))
            except (ValueError, TypeError) as e:
                log.error(f"Could not convert value '{value}' for setting '{key}': {e}")
                continue
            log.debug(f"Overridden setting: {key} = {getattr(self, key)}")


# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
