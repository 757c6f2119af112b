"""JSON persistence of effect settings."""

import json
from pathlib import Path
from typing import Optional

from .config import CONFIG_DIR, SETTINGS_FILE
from .logging_utils import get_logger
from .models import EffectSettings

logger = get_logger(__name__)


class JsonSettingsStore:
    """Stores the effect chain settings between sessions."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """
        Initialize the store.

        Args:
            config_dir: Directory for the settings file (default: ~/.config/voice_denoise)
        """
        self.config_dir = Path(config_dir) if config_dir is not None else CONFIG_DIR
        self.settings_file = self.config_dir / SETTINGS_FILE

    def load(self) -> EffectSettings:
        """Saved settings, or defaults when none are stored or the file is unreadable."""
        if not self.settings_file.exists():
            return EffectSettings()

        try:
            with open(self.settings_file) as f:
                return EffectSettings.from_dict(json.load(f))
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"⚠️ Ignoring unreadable settings file {self.settings_file}: {e}")
            return EffectSettings()

    def save(self, settings: EffectSettings) -> None:
        """Write settings as JSON; failures are logged, not raised."""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.settings_file, "w") as f:
                json.dump(settings.to_dict(), f, indent=2)
            logger.debug(f"Saved settings to {self.settings_file}")
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
