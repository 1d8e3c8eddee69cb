"""Kumiho access-core configuration from YAML file and environment.

Loads from src/config/config.yaml when present:
- API connection settings (base URL, tokens, tenant)
- Retry defaults (timeouts, budget, attempts, backoff)
- Stream settings (reconnect delay, cursor store)
- Logging settings

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files,
and the KUMIHO_* variables listed in ENV_OVERRIDES win over YAML values.
"""

import json
import logging
import os
import re
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.resilience.retry import RetryConfig
from core.security.sanitization import redact_mapping

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.kumiho.cloud"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        # Support both ${VAR} and ${VAR:-default} syntax
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

# Environment variable -> (section, key) in the kumiho: YAML block
ENV_OVERRIDES = {
    "KUMIHO_BASE_URL": ("api", "base_url"),
    "KUMIHO_SERVICE_TOKEN": ("api", "service_token"),
    "KUMIHO_TENANT_ID": ("api", "tenant_id"),
    "KUMIHO_USER_TOKEN": ("api", "user_token"),
    "KUMIHO_REQUEST_TIMEOUT_MS": ("retry", "request_timeout_ms"),
    "KUMIHO_RETRY_BUDGET_MS": ("retry", "retry_budget_ms"),
    "KUMIHO_MAX_ATTEMPTS": ("retry", "max_attempts"),
    "KUMIHO_RECONNECT_DELAY_SECONDS": ("stream", "reconnect_delay_seconds"),
    "KUMIHO_CURSOR_STORE_PATH": ("stream", "cursor_store_path"),
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class KumihoConfig:
    """Kumiho access-core configuration.

    Configuration structure:
        kumiho:
          api: {base_url, service_token, tenant_id, user_token}
          retry: {request_timeout_ms, retry_budget_ms, max_attempts,
                  base_delay_seconds, max_delay_seconds}
          stream: {reconnect_delay_seconds, cursor_store_path}
          logging: {level, json}

    Timeouts and budgets in milliseconds, delays in seconds.
    Token fields are excluded from repr.
    """

    # =========================================================================
    # API CONNECTION
    # =========================================================================
    base_url: str = DEFAULT_BASE_URL
    service_token: str = field(default="", repr=False)
    tenant_id: str = ""
    user_token: str = field(default="", repr=False)

    # =========================================================================
    # RETRY DEFAULTS (overridable per call)
    # =========================================================================
    request_timeout_ms: int = 60000
    retry_budget_ms: int = 60000
    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 16.0

    # =========================================================================
    # STREAM
    # =========================================================================
    reconnect_delay_seconds: float = 30.0
    cursor_store_path: str = ""  # Empty keeps cursors in memory only

    # =========================================================================
    # LOGGING
    # =========================================================================
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.base_url = str(self.base_url or "").strip() or DEFAULT_BASE_URL
        self.service_token = str(self.service_token or "")
        self.tenant_id = str(self.tenant_id or "")
        self.user_token = str(self.user_token or "")
        self.request_timeout_ms = int(self.request_timeout_ms)
        self.retry_budget_ms = int(self.retry_budget_ms)
        self.max_attempts = int(self.max_attempts)
        self.base_delay_seconds = float(self.base_delay_seconds)
        self.max_delay_seconds = float(self.max_delay_seconds)
        self.reconnect_delay_seconds = float(self.reconnect_delay_seconds)
        self.cursor_store_path = str(self.cursor_store_path or "")
        self.log_level = str(self.log_level or "INFO").upper()
        self.log_json = _as_bool(self.log_json)

    def validate(self) -> None:
        """Validate numeric ranges. Raises ValueError on the first violation."""
        self._validate_min("request_timeout_ms", 0, inclusive=False)
        self._validate_min("retry_budget_ms", 0, inclusive=False)
        self._validate_min("max_attempts", 1, inclusive=True)
        self._validate_min("base_delay_seconds", 0, inclusive=True)
        self._validate_min("max_delay_seconds", 0, inclusive=True)
        self._validate_min("reconnect_delay_seconds", 0, inclusive=True)

        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError(
                f"max_delay_seconds ({self.max_delay_seconds}) must be >= "
                f"base_delay_seconds ({self.base_delay_seconds})"
            )
        if self.log_level not in logging.getLevelNamesMapping():
            raise ValueError(f"log_level must be a logging level name, got '{self.log_level}'")

    def _validate_min(self, key: str, min_value: float, inclusive: bool) -> None:
        """Validate that a setting's value meets a minimum threshold."""
        value = getattr(self, key)
        if inclusive and value < min_value:
            raise ValueError(f"{key} must be >= {min_value}, got {value}")
        elif not inclusive and value <= min_value:
            raise ValueError(f"{key} must be > {min_value}, got {value}")

    def retry_config(self) -> RetryConfig:
        """Process-level backoff defaults for the request executor."""
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_seconds,
            max_delay=self.max_delay_seconds,
            budget_seconds=self.retry_budget_ms / 1000,
        )

    def get_credentials(self) -> Dict[str, Optional[str]]:
        """Raw credential fields for the credential resolver."""
        return {
            "base_url": self.base_url,
            "service_token": self.service_token or None,
            "tenant_id": self.tenant_id or None,
            "user_token": self.user_token or None,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Config as a dict with token values redacted."""
        return redact_mapping(asdict(self))


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is not None and value != "":
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> KumihoConfig:
    """Load configuration from config.yaml, environment and overrides.

    Priority (highest to lowest): overrides, KUMIHO_* environment variables,
    YAML file (with ${VAR} expansion), dataclass defaults.

    An explicitly passed config_path must exist; the default file is optional.
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    config_path = config_path or DEFAULT_CONFIG_FILE
    if config_path.exists():
        logger.info(f"Loading configuration from file: {config_path}")
    else:
        logger.debug("No configuration file found, using defaults and environment")

    yaml_data = _expand_env_vars(load_yaml(config_path))
    kumiho_config = yaml_data.get("kumiho", {}) or {}
    if not isinstance(kumiho_config, dict):
        raise ValueError("Invalid config file: 'kumiho:' section must be a mapping")

    kumiho_config = _deep_merge(kumiho_config, _env_overrides())
    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        kumiho_config = _deep_merge(kumiho_config, overrides)

    api = kumiho_config.get("api", {}) or {}
    retry = kumiho_config.get("retry", {}) or {}
    stream = kumiho_config.get("stream", {}) or {}
    log_settings = kumiho_config.get("logging", {}) or {}

    config = KumihoConfig(
        base_url=api.get("base_url", DEFAULT_BASE_URL),
        service_token=api.get("service_token", ""),
        tenant_id=api.get("tenant_id", ""),
        user_token=api.get("user_token", ""),
        request_timeout_ms=retry.get("request_timeout_ms", 60000),
        retry_budget_ms=retry.get("retry_budget_ms", 60000),
        max_attempts=retry.get("max_attempts", 5),
        base_delay_seconds=retry.get("base_delay_seconds", 1.0),
        max_delay_seconds=retry.get("max_delay_seconds", 16.0),
        reconnect_delay_seconds=stream.get("reconnect_delay_seconds", 30.0),
        cursor_store_path=stream.get("cursor_store_path", ""),
        log_level=log_settings.get("level", "INFO"),
        log_json=log_settings.get("json", False),
    )

    if not config.service_token:
        logger.warning("Kumiho service token not configured")
    else:
        logger.info("Kumiho API authentication configured")

    logger.debug("Validating configuration...")
    config.validate()
    logger.debug("Configuration validation passed")

    return config


_kumiho_config: Optional[KumihoConfig] = None


def get_config() -> KumihoConfig:
    """Get or load the singleton config instance."""
    global _kumiho_config
    if _kumiho_config is None:
        _kumiho_config = load_config()
    return _kumiho_config


def set_config(config: KumihoConfig) -> None:
    """Set the singleton config instance (useful for testing)."""
    global _kumiho_config
    _kumiho_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _kumiho_config
    _kumiho_config = None


def _cli_main() -> int:
    """CLI entry point for config validation and debugging."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Kumiho Configuration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate configuration
  python -m config.config --validate

  # Show effective configuration (tokens redacted)
  python -m config.config --show

  # JSON output for automation
  python -m config.config --validate --show --json
        """,
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration",
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Display effective configuration with tokens redacted",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml file (default: src/config/config.yaml)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format instead of human-readable",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
    )

    if not args.validate and not args.show:
        parser.print_help()
        return 0

    try:
        config = load_config(config_path=args.config)
    except FileNotFoundError as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        if args.json:
            print(json.dumps({"error": str(e)}))
        else:
            print(f"Validation error: {e}", file=sys.stderr)
        return 1

    output: Dict[str, Any] = {}
    if args.validate:
        if args.json:
            output["validation"] = {"passed": True, "errors": []}
        else:
            print("Configuration validation passed")
            print(f"  - Base URL: {config.base_url}")
            print(f"  - Service token: {'set' if config.service_token else 'unset'}")

    if args.show:
        if args.json:
            output["config"] = config.to_dict()
        else:
            print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))

    if args.json:
        print(json.dumps(output, indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(_cli_main())
