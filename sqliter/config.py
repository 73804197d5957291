"""
Configuration for SQLiter connections.
Handles connection options, tracing switches, and JSON persistence.
"""
from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """
    Get the default config directory.

    Returns:
        Path to the config directory (~/.sqliter/)
    """
    return Path.home() / ".sqliter"


class Config:
    """
    Connection configuration with optional JSON persistence.

    Key ideas:
    - "connection" holds the pragmas applied after every open and whether
      compiled statements may be cached by the engine.
    - "logging" holds SQL tracing switches.
    - Without a config file the defaults are used and nothing touches disk.
    """

    # NOTE: This structure is treated as immutable. Always use
    # _default_config_deepcopy() when you need a fresh copy of defaults.
    DEFAULT_CONFIG: Dict[str, Any] = {
        "connection": {
            # PRAGMA name -> value, applied after each open
            # e.g. {"foreign_keys": True, "journal_mode": "wal"}
            "pragmas": {},
            "statement_cache": True,
        },
        "logging": {
            # Log every statement execution and its bindings at DEBUG level
            "trace_sql": False,
        },
    }

    def __init__(self, config_file: Optional[Path] = None) -> None:
        """
        Initialize configuration.

        Args:
            config_file: Optional path to a config JSON file. When omitted,
                         defaults are used and save() has nowhere to write.
        """
        self.config_file: Optional[Path] = Path(config_file) if config_file is not None else None
        self.data: Dict[str, Any] = self._load()

    @classmethod
    def default_path(cls) -> Path:
        return get_config_dir() / "config.json"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _load(self) -> Dict[str, Any]:
        """Load configuration from the JSON file, merging with defaults."""
        if self.config_file is None:
            return self._default_config_deepcopy()

        if not self.config_file.exists():
            logger.info(f"No config file at {self.config_file}, using defaults")
            return self._default_config_deepcopy()

        try:
            with self.config_file.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error(f"Failed to load config: {exc}. Using defaults.")
            return self._default_config_deepcopy()

        if not isinstance(raw, dict):
            logger.error(f"Config file {self.config_file} is not a JSON object. Using defaults.")
            return self._default_config_deepcopy()

        logger.info(f"Config loaded from {self.config_file}")
        return self._merge_with_defaults(raw)

    @classmethod
    def _default_config_deepcopy(cls) -> Dict[str, Any]:
        """
        Return a deep copy of DEFAULT_CONFIG to avoid state leakage
        between instances or tests.
        """
        return copy.deepcopy(cls.DEFAULT_CONFIG)

    def _merge_with_defaults(self, user_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge user config with defaults.

        Sections are merged key by key so new default keys appear without
        discarding user-provided values.
        """
        merged = self._default_config_deepcopy()

        for key, value in user_config.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key].update(value)
            else:
                merged[key] = value

        return merged

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the current configuration to the config file."""
        if self.config_file is None:
            logger.warning("No config file set; configuration not saved")
            return
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with self.config_file.open("w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2, ensure_ascii=False)
        logger.info(f"Configuration saved to {self.config_file}")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self.data.get(section, {}).get(key, default)

    # ------------------------------------------------------------------
    # Connection options
    # ------------------------------------------------------------------

    @property
    def pragmas(self) -> Dict[str, Any]:
        """Pragmas applied after each open (copy)."""
        return dict(self.get("connection", "pragmas", {}) or {})

    @pragmas.setter
    def pragmas(self, value: Dict[str, Any]) -> None:
        self.data.setdefault("connection", {})["pragmas"] = dict(value)

    @property
    def statement_cache(self) -> bool:
        return bool(self.get("connection", "statement_cache", True))

    @statement_cache.setter
    def statement_cache(self, value: bool) -> None:
        self.data.setdefault("connection", {})["statement_cache"] = bool(value)

    # ------------------------------------------------------------------
    # Logging options
    # ------------------------------------------------------------------

    @property
    def trace_sql(self) -> bool:
        return bool(self.get("logging", "trace_sql", False))

    @trace_sql.setter
    def trace_sql(self, value: bool) -> None:
        self.data.setdefault("logging", {})["trace_sql"] = bool(value)
