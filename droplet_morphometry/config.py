"""Unified configuration module for droplet morphometry."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config_schema import DropletAnalysisConfig

logger = logging.getLogger(__name__)


class Config:
    """Single source of truth for all configuration."""

    def __init__(self, config_path: Optional[str] = 'config.json'):
        """Initialize configuration from JSON file.

        Args:
            config_path: Path to configuration JSON file; None uses defaults
        """
        self.config_path = Path(config_path) if config_path else None
        self.raw = self._load_config()
        self._validate()

    def _load_config(self) -> Dict[str, Any]:
        if self.config_path is None:
            return {}
        if not self.config_path.exists():
            logger.warning(f"Config file {self.config_path} not found. Using defaults.")
            return {}

        with open(self.config_path, 'r') as f:
            return json.load(f)

    def _validate(self) -> None:
        """Validate ``raw`` and refresh the typed section attributes."""
        self.validated = DropletAnalysisConfig(**self.raw)
        self.merge = self.validated.merge
        self.consolidation = self.validated.consolidation
        self.summary = self.validated.summary
        self.modeling = self.validated.modeling
        self.comparison = self.validated.comparison
        self.logging = self.validated.logging

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'Config':
        config = cls(config_path=None)
        config.raw = json.loads(json.dumps(config_dict))
        config._validate()
        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key.

        Args:
            key: Configuration key (supports nested keys with dots)
            default: Default value if key not found

        Returns:
            Configuration value (validated defaults included) or default
        """
        value = self.validated.model_dump()
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def update(self, key: str, value: Any) -> None:
        """Update a configuration value and re-validate.

        Args:
            key: Configuration key (dotted)
            value: New value
        """
        keys = key.split('.')
        config = self.raw

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        self._validate()

    def save(self, path: Optional[str] = None) -> None:
        """Save configuration to file.

        Args:
            path: Output path (uses original path if None)
        """
        output_path = path or self.config_path
        if output_path is None:
            raise ValueError("No output path given and config was not loaded from a file")
        with open(output_path, 'w') as f:
            json.dump(self.raw, f, indent=2)

    def to_dict(self) -> Dict[str, Any]:
        """Return the full validated configuration as a dictionary."""
        return self.validated.model_dump()
