"""Configuration loading for the Kumiho access core.

Configuration is loaded from src/config/config.yaml (optional) with
${VAR} / ${VAR:-default} expansion, then KUMIHO_* environment variables.

Main Functions
--------------

    - load_config(): Load configuration from YAML and environment
    - get_config(): Get or load the singleton config instance
    - set_config(): Replace the singleton (tests)
    - reset_config(): Reset the singleton config instance

Usage Examples
--------------

    >>> from config import get_config
    >>> config = get_config()
    >>> config.request_timeout_ms
    60000

Configuration Priority
---------------------

1. Explicit overrides passed to load_config()
2. Environment variables (KUMIHO_BASE_URL, KUMIHO_SERVICE_TOKEN, ...)
3. YAML configuration file
4. Dataclass defaults
"""

from config.config import (
    DEFAULT_BASE_URL,
    KumihoConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "KumihoConfig",
    "DEFAULT_BASE_URL",
]
