"""
Configuration loader for the multi-pair decision engine.

One JSON file per concern under config/, read once and cached, with a
small set of .env overrides (SESSION_USD_BALANCE, KRAKEN_API_URL,
DECISION_ENGINE_LOG_DIR).

Usage:
    from config.loader import get_config

    config = get_config()
    engine_config = config.get_engine_config()
    pairs = config.get_pairs_config()["pairs"]
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

_CONFIG_DIR = Path(__file__).parent
_DEFAULT_KRAKEN_URL = "https://api.kraken.com/0/public"


def _load_json(filepath: Path) -> Dict[str, Any]:
    """Parse a JSON config file; a missing or malformed file yields {}."""
    try:
        with open(filepath, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        print(f"[CONFIG_WARN] Config file not found: {filepath}")
    except json.JSONDecodeError as e:
        print(f"[CONFIG_ERROR] Invalid JSON in {filepath}: {e}")
    return {}


def get_env_var(var_name: str, default_value: Any, var_type: type) -> Any:
    """
    Read an environment variable coerced to ``var_type``.

    Booleans accept true/1/yes. An unset or unparseable value returns
    ``default_value``.
    """
    raw = os.getenv(var_name)
    if raw is None:
        return default_value
    if var_type is bool:
        return raw.strip().lower() in ("true", "1", "yes")
    try:
        return var_type(raw)
    except (ValueError, TypeError, ArithmeticError):
        return default_value


class ConfigLoader:
    """
    Singleton access to the engine's JSON configuration.

    Accessors are ``lru_cache``d; call ``clear_cache()`` to re-read files.
    """

    _instance: Optional["ConfigLoader"] = None

    def __init__(self, config_dir: Path | None = None):
        self._config_dir = config_dir or _CONFIG_DIR

    @classmethod
    def get_instance(cls) -> "ConfigLoader":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    # ------------------------------------------------------------------
    # Per-file accessors (cached)
    # ------------------------------------------------------------------

    @lru_cache(maxsize=1)
    def get_app_config(self) -> Dict[str, Any]:
        """Logging folders and session queue settings."""
        return self.get_config_file("app")

    @lru_cache(maxsize=1)
    def get_engine_config(self) -> Dict[str, Any]:
        """Budget, sizing, risk and adaptive-target parameters."""
        return self.get_config_file("engine")

    @lru_cache(maxsize=1)
    def get_pairs_config(self) -> Dict[str, Any]:
        """Per-pair viable target bounds and characteristics."""
        return self.get_config_file("pairs")

    @lru_cache(maxsize=1)
    def get_pacing_config(self) -> Dict[str, Any]:
        """Budget release strategy and trade rate limits."""
        return self.get_config_file("pacing")

    @lru_cache(maxsize=1)
    def get_fusion_config(self) -> Dict[str, Any]:
        """Signal fusion weights and shaping parameters."""
        return self.get_config_file("fusion")

    @lru_cache(maxsize=1)
    def get_exchange_config(self) -> Dict[str, Any]:
        """Exchange REST settings; KRAKEN_API_URL overrides the base URL."""
        cfg = self.get_config_file("exchange")
        kraken = dict(cfg.get("kraken", {}))
        kraken["base_url"] = get_env_var(
            "KRAKEN_API_URL", kraken.get("base_url", _DEFAULT_KRAKEN_URL), str
        )
        return {**cfg, "kraken": kraken}

    @lru_cache(maxsize=16)
    def get_config_file(self, config_name: str) -> Dict[str, Any]:
        """Load ``config/<config_name>.json``."""
        return _load_json(self._config_dir / f"{config_name}.json")

    def clear_cache(self) -> None:
        for method_name in dir(self):
            method = getattr(self, method_name)
            if hasattr(method, "cache_clear"):
                method.cache_clear()


def get_config() -> ConfigLoader:
    """Get the singleton ConfigLoader instance."""
    return ConfigLoader.get_instance()
