"""
Configuration management for the EHR export agent.

Settings come from three layers, later layers winning:
- DEFAULT_CONFIG below
- ~/.ehr-system/config.yaml (or $EHR_SYSTEM_HOME/config.yaml)
- environment variables (EHR_MODEL, EHR_DOWNLOAD_DIR)

API keys live in .env files (project root first, then the home directory)
and are loaded with python-dotenv before anything reads the environment.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from agent.redact import RedactingFormatter

logger = logging.getLogger(__name__)


# =============================================================================
# Paths
# =============================================================================

def get_ehr_home() -> Path:
    """Get the EHR agent home directory (~/.ehr-system)."""
    return Path(os.getenv("EHR_SYSTEM_HOME", Path.home() / ".ehr-system"))

def get_config_path() -> Path:
    """Get the main config file path."""
    return get_ehr_home() / "config.yaml"

def get_project_root() -> Path:
    """Get the project installation directory."""
    return Path(__file__).parent.resolve()


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_CONFIG = {
    "app_name": "ehr-system",
    "model": "computer-use-preview",

    "download": {
        # Listener upper bound; the agent may take minutes to reach the button
        "listen_timeout_ms": 300000,
        # Fallback arm of the race after the agent turn returns
        "fallback_timeout_s": 5.0,
        "save_dir": None,
    },

    "display": {
        "width": 1024,
        "height": 768,
    },

    "agent": {
        "print_steps": True,
        "debug": True,
        "show_images": False,
        "screenshot_dir": "screenshots",
    },
}

# Environment variable -> (section, key). section None means top level.
_ENV_OVERRIDES = {
    "EHR_MODEL": (None, "model"),
    "EHR_DOWNLOAD_DIR": ("download", "save_dir"),
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# =============================================================================
# Loading
# =============================================================================

def load_env() -> None:
    """Load .env files without clobbering variables already set."""
    for env_path in (get_project_root() / ".env", get_ehr_home() / ".env"):
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=False)
            logger.debug("Loaded environment variables from %s", env_path)


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration, merging the YAML file and env overrides over defaults.

    Args:
        path: Explicit config file. Defaults to get_config_path().

    Returns:
        Dict with the same shape as DEFAULT_CONFIG.
    """
    config_path = Path(path) if path else get_config_path()
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.warning("Ignoring malformed config %s: %s", config_path, e)
            user_config = {}
        if not isinstance(user_config, dict):
            logger.warning("Ignoring config %s: top level must be a mapping", config_path)
            user_config = {}
        config = _deep_merge(config, user_config)

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if not value:
            continue
        if section is None:
            config[key] = value
        else:
            config.setdefault(section, {})[key] = value

    return config


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging with secret redaction."""
    handler = logging.StreamHandler()
    handler.setFormatter(RedactingFormatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s' if verbose
        else '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S',
    ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    noisy_level = logging.DEBUG if verbose else logging.WARNING
    for name in ("openai", "httpx", "httpcore", "asyncio"):
        logging.getLogger(name).setLevel(noisy_level)
