"""Alert rule configuration loader."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .config import get_settings

logger = logging.getLogger(__name__)

# All valid alert kind names
VALID_KINDS = {"critical_immediate", "scheduled"}

DEFAULT_KINDS = {
    "critical_immediate": True,
    "scheduled": True,
}


@dataclass
class AlertConfig:
    """Alert configuration."""

    mode: str = "on"  # on | off
    sound: bool = True
    kinds: dict = field(default_factory=lambda: DEFAULT_KINDS.copy())

    def is_kind_enabled(self, kind: str) -> bool:
        """Check if an alert kind is enabled."""
        if self.mode == "off":
            return False
        return self.kinds.get(kind, False)


def load_alert_config(config_path: Optional[Path] = None) -> AlertConfig:
    """Load alert config from YAML file.

    Args:
        config_path: Path to config file. If None, uses the configured location.

    Returns:
        AlertConfig with values from file or defaults.
    """
    if config_path is None:
        config_path = Path(get_settings().alerts_config_path)
        if not config_path.is_absolute():
            # Relative to project root (parent of backend/)
            config_path = Path(__file__).parent.parent.parent / config_path

    config = AlertConfig()

    if not config_path.exists():
        logger.info(f"Config file not found at {config_path}, using defaults")
        return config

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        if "mode" in data:
            mode = data["mode"]
            # YAML reads bare on/off as booleans
            if isinstance(mode, bool):
                mode = "on" if mode else "off"
            config.mode = str(mode)
        if "sound" in data:
            config.sound = bool(data["sound"])
        if "kinds" in data:
            for kind, enabled in data["kinds"].items():
                if kind in VALID_KINDS:
                    config.kinds[kind] = bool(enabled)
                else:
                    logger.warning(f"Unknown alert kind in config: {kind}")

        logger.info(f"Loaded alert config from {config_path}")
        return config

    except (OSError, yaml.YAMLError, AttributeError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return AlertConfig()


_config: Optional[AlertConfig] = None


def get_alert_config() -> AlertConfig:
    """Get the global alert config (lazy loaded)."""
    global _config
    if _config is None:
        _config = load_alert_config()
    return _config
