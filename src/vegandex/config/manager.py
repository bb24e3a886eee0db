"""Configuration file management and utilities."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from ..client import DEFAULT_API_URL, DEFAULT_TIMEOUT

DEFAULT_CONFIG_PATH = Path.home() / ".vegandex" / "config.json"

ENV_API_URL = "VEGANDEX_API_URL"
ENV_TIMEOUT = "VEGANDEX_TIMEOUT"
ENV_STORE = "VEGANDEX_STORE"
ENV_LOG_LEVEL = "VEGANDEX_LOG_LEVEL"


class ConfigManager:
    """Handles configuration file operations and management."""

    @staticmethod
    def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
        """Load configuration from JSON file."""
        config_file = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        try:
            if config_file.exists():
                with open(config_file, "r") as f:
                    config = json.load(f)
                return config if isinstance(config, dict) else {}
            else:
                return {}
        except json.JSONDecodeError:
            return {}
        except OSError:
            return {}

    @staticmethod
    def load_environment(dotenv_path: Optional[str] = None) -> Dict[str, Any]:
        """Read settings from the environment, after loading a ``.env`` file if present."""
        load_dotenv(dotenv_path)
        env = {}
        if os.getenv(ENV_API_URL):
            env["api_url"] = os.getenv(ENV_API_URL)
        if os.getenv(ENV_TIMEOUT):
            env["request_timeout"] = os.getenv(ENV_TIMEOUT)
        if os.getenv(ENV_STORE):
            env["store_path"] = os.getenv(ENV_STORE)
        if os.getenv(ENV_LOG_LEVEL):
            env["log_level"] = os.getenv(ENV_LOG_LEVEL)
        return env

    @staticmethod
    def merge_config_with_args(
        config: Dict[str, Any], env: Optional[Dict[str, Any]] = None, **cli_args
    ) -> Dict[str, Any]:
        """Merge configuration with environment and CLI arguments, giving priority to CLI args."""
        env = env or {}
        merged = {}

        def pick(key: str, default: Any = None) -> Any:
            for source in (cli_args, env, config):
                value = source.get(key)
                if value is not None:
                    return value
            return default

        merged["api_url"] = pick("api_url", DEFAULT_API_URL)
        merged["store_path"] = pick("store_path")
        merged["log_level"] = pick("log_level", "WARNING")

        timeout = pick("request_timeout", DEFAULT_TIMEOUT)
        try:
            merged["request_timeout"] = float(timeout)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid request timeout: {timeout!r}")

        return merged

    @staticmethod
    def save_config(config: Dict[str, Any], config_path: Optional[str] = None) -> Path:
        """Write a configuration file, creating its directory."""
        config_file = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w") as f:
            json.dump(config, f, indent=2)
        return config_file
