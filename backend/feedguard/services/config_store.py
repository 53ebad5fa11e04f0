"""
JSON-file persistence for the runtime configuration.

Only configuration is persisted; queue and analysis state are rebuilt
from fresh ingestion after a restart.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from feedguard.errors import ConfigurationError
from feedguard.schemas import RuntimeConfig

logger = logging.getLogger(__name__)


class ConfigStore:
    """Loads and saves RuntimeConfig at a fixed path."""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> RuntimeConfig:
        """
        Read the persisted configuration.

        Returns:
            The stored RuntimeConfig, or defaults when the file is missing
            or unreadable
        """
        if not self.path.exists():
            return RuntimeConfig()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("top-level value is not an object")
            return RuntimeConfig.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Could not read config from %s (%s); using defaults", self.path, e)
            return RuntimeConfig()

    def save(self, config: RuntimeConfig) -> None:
        """
        Persist the configuration atomically.

        Raises:
            ConfigurationError: If the file cannot be written
        """
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(config.to_wire(), ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise ConfigurationError(f"Could not write config to {self.path}: {e}") from e
