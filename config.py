"""
Configuration module for the Powermeal Menu Assistant
=====================================================

This module centralizes all configuration for the daily menu assistant that
integrates:
- Powermeal panel API (diets, calendar, day menus, menu changes)
- OpenAI-compatible chat completions API (dish recommendations)

CONFIGURATION:
- config.yaml: User-specific settings (API URLs, LLM model, selection window)
- secrets.yaml: Credentials (chat API key)
- preferences.json: Refresh token, last processed day, accepted adjustments
  (owned by preferences.py, never edited by hand)

All three files live in ~/.config/powermeal-ai/ unless POWERMEAL_CONFIG_DIR
points somewhere else. config.yaml and secrets.yaml are optional; missing
values fall back to the defaults below.

Usage:
    from config import API_URL, CHAT_MODEL, PREFERENCES_PATH

    print_config_summary()
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


# =============================================================================
# USER CONFIGURATION LOADING
# =============================================================================

# Per-user configuration directory - THE canonical location for runtime data
CONFIG_DIR = Path(
    os.getenv("POWERMEAL_CONFIG_DIR", str(Path.home() / ".config" / "powermeal-ai"))
).expanduser()

CONFIG_PATH = CONFIG_DIR / "config.yaml"
SECRETS_PATH = CONFIG_DIR / "secrets.yaml"
PREFERENCES_PATH = CONFIG_DIR / "preferences.json"
LOG_DIR = CONFIG_DIR / "logs"

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "connection": {
        "api_url": "https://api.powermeal.pl",
        "panel_origin": "https://panel.powermeal.pl",
    },
    "llm": {
        "chat_api_url": "https://api.openai.com/v1",
        "chat_model": "gpt-4o-2024-08-06",
        "temperature": 0.0,
        "max_tokens": 2048,
    },
    "selection": {
        "window_days": 14,
        "history_days": 7,
        "max_adjustments": 100,
        "typing_delay_ms": 1,
    },
    "logging": {
        "console_level": "WARNING",
    },
}


def _config_error(title: str, *lines: str) -> ValueError:
    body = "\n".join(lines)
    return ValueError(
        f"\n{'='*60}\n"
        f"ERROR: {title}\n"
        f"{'='*60}\n"
        f"{body}\n"
        f"{'='*60}"
    )


def _load_user_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load user configuration from config.yaml merged over DEFAULT_CONFIG.

    A missing file is not an error: the assistant works out of the box
    against the public Powermeal API. A file that exists but cannot be
    parsed FAILS IMMEDIATELY.

    Returns:
        Dict containing the merged configuration

    Raises:
        ValueError: If YAML is invalid or a section is not a mapping
    """
    config_path = config_path or CONFIG_PATH
    config = copy.deepcopy(DEFAULT_CONFIG)

    if not config_path.exists():
        return config

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise _config_error(
            "config.yaml has invalid YAML syntax",
            f"File: {config_path}",
            f"Error: {e}",
        ) from e

    if loaded is None:
        return config

    if not isinstance(loaded, dict):
        raise _config_error(
            "config.yaml must contain a mapping at the top level",
            f"File: {config_path}",
        )

    bad_sections = [
        name for name, value in loaded.items()
        if name in config and not isinstance(value, dict)
    ]
    if bad_sections:
        raise _config_error(
            "config.yaml sections must be mappings",
            f"Invalid: {bad_sections}",
        )

    for section, values in loaded.items():
        if section in config:
            config[section].update(values)
        else:
            config[section] = values

    return config


# Load user config at module initialization (FAIL FAST on a broken file)
USER_CONFIG = _load_user_config()


# =============================================================================
# SECRETS MANAGEMENT
# =============================================================================
"""
Credential storage in secrets.yaml.
Environment variables take priority over file-based secrets.
"""


def load_secrets() -> Dict[str, Any]:
    """
    Load secrets from secrets.yaml.

    Returns:
        dict with key 'chat_api_key' (may be None).
        Returns empty dict if the file doesn't exist.

    Raises:
        ValueError: If the file exists but is not valid YAML
    """
    if not SECRETS_PATH.exists():
        return {}

    try:
        with open(SECRETS_PATH, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise _config_error(
            "secrets.yaml has invalid YAML syntax",
            f"File: {SECRETS_PATH}",
            f"Error: {e}",
        ) from e

    return {
        'chat_api_key': (data.get('openai') or {}).get('api_key'),
    }


def load_chat_api_key() -> Optional[str]:
    """
    Load the chat API key from environment variable or secrets file.

    Priority order (ENV VAR IS SOURCE OF TRUTH):
    1. Environment variable OPENAI_API_KEY
    2. File: secrets.yaml (openai.api_key)

    Returns:
        str: The API key if found, None otherwise
    """
    env_key = os.getenv("OPENAI_API_KEY", "").strip()
    if env_key:
        return env_key
    return load_secrets().get('chat_api_key')


# =============================================================================
# POWERMEAL API CONFIGURATION
# =============================================================================

API_URL = os.getenv("POWERMEAL_API_URL", USER_CONFIG["connection"]["api_url"]).rstrip('/')
PANEL_ORIGIN = USER_CONFIG["connection"]["panel_origin"]

# Seconds to wait on HTTP 429 when the server sends no Retry-After header
RATE_LIMIT_DEFAULT_DELAY = 10


# =============================================================================
# CHAT LLM CONFIGURATION
# =============================================================================

CHAT_API_URL = os.getenv("CHAT_API_URL", USER_CONFIG["llm"]["chat_api_url"]).rstrip('/')
CHAT_MODEL = os.getenv("CHAT_MODEL", USER_CONFIG["llm"]["chat_model"])
CHAT_TEMPERATURE = float(USER_CONFIG["llm"]["temperature"])
CHAT_MAX_TOKENS = int(USER_CONFIG["llm"]["max_tokens"])
CHAT_API_KEY = load_chat_api_key()


# =============================================================================
# MENU SELECTION CONFIGURATION
# =============================================================================

SELECTION_WINDOW_DAYS = int(USER_CONFIG["selection"]["window_days"])
HISTORY_DAYS = int(USER_CONFIG["selection"]["history_days"])
MAX_ADJUSTMENTS = int(USER_CONFIG["selection"]["max_adjustments"])
TYPING_DELAY_MS = int(USER_CONFIG["selection"]["typing_delay_ms"])
STATS_DAYS = 30


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
"""Centralized logging configuration for all modules.

The console handler writes to stderr and stays quiet by default so that the
interactive prompts are not interleaved with log lines; everything goes to
the rotating log file.
"""
LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": os.getenv("LOG_LEVEL", USER_CONFIG["logging"]["console_level"]).upper(),
            "formatter": "standard",
            "stream": "ext://sys.stderr"
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": str(LOG_DIR / "powermeal.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "encoding": "utf-8"
        }
    },
    "root": {
        "level": "DEBUG",
        "handlers": ["console", "file"]
    }
}


def print_config_summary() -> None:
    """
    Print a summary of the current configuration.
    Useful for debugging and verification.
    """
    print("\n" + "=" * 60)
    print("📋 CONFIGURATION SUMMARY")
    print("=" * 60)
    print(f"Config dir:         {CONFIG_DIR}")
    print(f"Config file:        {'✓ ' if CONFIG_PATH.exists() else '✗ '}{CONFIG_PATH}")
    print(f"Powermeal API:      {API_URL}")
    print(f"Panel origin:       {PANEL_ORIGIN}")
    print(f"Chat API:           {CHAT_API_URL}")
    print(f"Chat Model:         {CHAT_MODEL}")
    print(f"Chat Key:           {'✓ Set' if CHAT_API_KEY else '✗ Not set'}")
    print(f"Selection window:   {SELECTION_WINDOW_DAYS} days")
    print(f"History lookback:   {HISTORY_DAYS} days")
    print(f"Adjustment cap:     {MAX_ADJUSTMENTS} entries")
    print(f"Preferences:        {PREFERENCES_PATH}")
    print("=" * 60 + "\n")
