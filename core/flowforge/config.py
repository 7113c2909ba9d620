"""Shared FlowForge configuration utilities.

Centralises reading of ~/.flowforge/configuration.json so the executor and
the CLI share one implementation. Example file::

    {
      "execution": {"continue_on_error": false, "max_retries": 2,
                    "backoff_ms": 500, "timeout_ms": 30000},
      "logging": {"level": "INFO", "format": "auto"}
    }
"""

import json
import os
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

FLOWFORGE_CONFIG_FILE = Path.home() / ".flowforge" / "configuration.json"

DEFAULT_MAX_RETRIES = 0
DEFAULT_BACKOFF_MS = 1000
DEFAULT_TIMEOUT_MS = 30_000


def get_flowforge_config() -> dict[str, Any]:
    """Load configuration from ~/.flowforge/configuration.json."""
    if not FLOWFORGE_CONFIG_FILE.exists():
        return {}
    try:
        with open(FLOWFORGE_CONFIG_FILE, encoding="utf-8-sig") as f:
            config = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return config if isinstance(config, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_execution_defaults() -> dict[str, Any]:
    """Execution policy defaults, with the file's ``execution`` section applied."""
    section = get_flowforge_config().get("execution", {})
    timeout_ms = section.get("timeout_ms", DEFAULT_TIMEOUT_MS)
    return {
        "continue_on_error": bool(section.get("continue_on_error", False)),
        "max_retries": int(section.get("max_retries", DEFAULT_MAX_RETRIES)),
        "backoff_ms": int(section.get("backoff_ms", DEFAULT_BACKOFF_MS)),
        "timeout_ms": int(timeout_ms) if timeout_ms is not None else None,
    }


def get_log_level() -> str:
    """LOG_LEVEL env var, else the file's logging.level, else INFO."""
    env_level = os.environ.get("LOG_LEVEL")
    if env_level:
        return env_level.upper()
    return str(get_flowforge_config().get("logging", {}).get("level", "INFO")).upper()


def get_log_format() -> str:
    """LOG_FORMAT env var, else the file's logging.format, else auto."""
    env_format = os.environ.get("LOG_FORMAT")
    if env_format:
        return env_format.lower()
    return str(get_flowforge_config().get("logging", {}).get("format", "auto")).lower()
