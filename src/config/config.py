"""Seller API client configuration from YAML file and environment.

Loads from config/config.yaml (optional) with settings under an ``ebay:``
section, then applies EBAY_* environment variables, then explicit overrides.

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files.
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.oauth2.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

VALID_ENVIRONMENTS = ("sandbox", "production")
DEFAULT_ENVIRONMENT = "sandbox"
DEFAULT_MARKETPLACE_ID = "EBAY_US"

# Default config file: config/config.yaml in src/ directory
DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"

# Environment variable -> SellerConfig field
ENV_OVERRIDES = {
    "EBAY_CLIENT_ID": "client_id",
    "EBAY_CLIENT_SECRET": "client_secret",
    "EBAY_REDIRECT_URI": "redirect_uri",
    "EBAY_ENVIRONMENT": "environment",
    "EBAY_MARKETPLACE_ID": "marketplace_id",
    "EBAY_USER_ACCESS_TOKEN": "user_access_token",
    "EBAY_USER_REFRESH_TOKEN": "user_refresh_token",
    "EBAY_SAFETY_MARGIN_SECONDS": "safety_margin_seconds",
    "EBAY_EXCHANGE_TIMEOUT_SECONDS": "exchange_timeout_seconds",
    "EBAY_GRANT_MAX_ATTEMPTS": "grant_max_attempts",
    "EBAY_REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
    "EBAY_MAX_CONCURRENT": "max_concurrent",
    "LOG_LEVEL": "log_level",
}


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
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _as_scope_list(value: Any) -> Optional[List[str]]:
    """Scopes may be written as a YAML list or one space-separated string."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value.split()
    return [str(scope) for scope in value]


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass
class SellerConfig:
    """Seller API client configuration.

    Configuration structure:
        ebay:
          client_id: ${EBAY_CLIENT_ID:-}
          client_secret: ${EBAY_CLIENT_SECRET:-}
          redirect_uri: ${EBAY_REDIRECT_URI:-}     # RuName registered with the app
          environment: sandbox                     # or production
          marketplace_id: EBAY_US
          application_scopes: [...]                # default: environment defaults
          user_scopes: [...]
          tokens:
            safety_margin_seconds: 60
            exchange_timeout_seconds: 30
            grant_max_attempts: 3
          requests:
            timeout_seconds: 30
            max_concurrent: 20
          logging:
            level: INFO
            json: false
            file: null

    All timing values in seconds.
    """

    # =========================================================================
    # APPLICATION CREDENTIALS
    # =========================================================================
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    redirect_uri: Optional[str] = None
    environment: str = DEFAULT_ENVIRONMENT
    marketplace_id: str = DEFAULT_MARKETPLACE_ID
    application_scopes: Optional[List[str]] = None
    user_scopes: Optional[List[str]] = None

    # =========================================================================
    # EXTERNALLY SUPPLIED USER TOKENS (seeded at client start)
    # =========================================================================
    user_access_token: Optional[str] = field(default=None, repr=False)
    user_refresh_token: Optional[str] = field(default=None, repr=False)

    # =========================================================================
    # TOKEN LIFECYCLE
    # =========================================================================
    safety_margin_seconds: float = 60
    exchange_timeout_seconds: float = 30
    grant_max_attempts: int = 3

    # =========================================================================
    # RESOURCE REQUESTS
    # =========================================================================
    request_timeout_seconds: float = 30
    max_concurrent: int = 20

    # =========================================================================
    # LOGGING
    # =========================================================================
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.environment = (self.environment or DEFAULT_ENVIRONMENT).strip().lower()
        self.safety_margin_seconds = float(self.safety_margin_seconds)
        self.exchange_timeout_seconds = float(self.exchange_timeout_seconds)
        self.grant_max_attempts = int(self.grant_max_attempts)
        self.request_timeout_seconds = float(self.request_timeout_seconds)
        self.max_concurrent = int(self.max_concurrent)
        self.log_json = _as_bool(self.log_json)
        self.application_scopes = _as_scope_list(self.application_scopes)
        self.user_scopes = _as_scope_list(self.user_scopes)

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def validate(self, require_credentials: bool = False) -> None:
        """
        Validate configuration values.

        Args:
            require_credentials: Also require client_id and client_secret.

        Raises:
            InvalidConfigurationError: naming every offending key
        """
        problems: List[str] = []

        if require_credentials:
            missing = [name for name in ("client_id", "client_secret") if not getattr(self, name)]
            if missing:
                problems.append(f"missing required keys: {', '.join(missing)}")

        if self.environment not in VALID_ENVIRONMENTS:
            problems.append(
                f"environment must be one of {list(VALID_ENVIRONMENTS)}, got '{self.environment}'"
            )

        self._validate_min(problems, "safety_margin_seconds", 0, inclusive=True)
        self._validate_min(problems, "exchange_timeout_seconds", 0, inclusive=False)
        self._validate_min(problems, "grant_max_attempts", 1, inclusive=True)
        self._validate_min(problems, "request_timeout_seconds", 0, inclusive=False)
        self._validate_min(problems, "max_concurrent", 1, inclusive=True)

        if problems:
            raise InvalidConfigurationError(
                "Invalid seller configuration: " + "; ".join(problems),
                context={"problems": problems},
            )

    def _validate_min(
        self,
        problems: List[str],
        key: str,
        min_value: float,
        inclusive: bool,
    ) -> None:
        """Record a problem if a setting is below its minimum."""
        value = getattr(self, key)
        if inclusive and value < min_value:
            problems.append(f"{key} must be >= {min_value}, got {value}")
        elif not inclusive and value <= min_value:
            problems.append(f"{key} must be > {min_value}, got {value}")


def _flatten_section(section: Dict[str, Any]) -> Dict[str, Any]:
    """Map the nested ``ebay:`` section onto SellerConfig field names."""
    flat = {
        key: value
        for key, value in section.items()
        if key not in ("tokens", "requests", "logging")
    }

    tokens = section.get("tokens", {}) or {}
    for key in ("safety_margin_seconds", "exchange_timeout_seconds", "grant_max_attempts"):
        if key in tokens:
            flat[key] = tokens[key]

    requests_section = section.get("requests", {}) or {}
    if "timeout_seconds" in requests_section:
        flat["request_timeout_seconds"] = requests_section["timeout_seconds"]
    if "max_concurrent" in requests_section:
        flat["max_concurrent"] = requests_section["max_concurrent"]

    logging_section = section.get("logging", {}) or {}
    if "level" in logging_section:
        flat["log_level"] = logging_section["level"]
    if "json" in logging_section:
        flat["log_json"] = logging_section["json"]
    if "file" in logging_section:
        flat["log_file"] = logging_section["file"]

    return flat


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> SellerConfig:
    """Load seller configuration.

    Precedence (highest first): overrides, EBAY_* environment variables,
    the YAML ``ebay:`` section, dataclass defaults.

    The default config file is optional; an explicitly passed path must exist.
    Empty strings (e.g. from an unset ``${VAR:-}``) count as unset.

    Raises:
        FileNotFoundError: config_path given but missing
        InvalidConfigurationError: invalid values or unknown keys
    """
    if config_path is not None and not Path(config_path).exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_FILE
    yaml_data = _expand_env_vars(load_yaml(path))
    if yaml_data:
        logger.info("Loading configuration from file", extra={"config_path": str(path)})

    section = yaml_data.get("ebay", {}) if yaml_data else {}
    if yaml_data and "ebay" not in yaml_data:
        raise InvalidConfigurationError(
            f"Invalid config file {path}: missing 'ebay:' section"
        )

    values = _flatten_section(section or {})

    for env_var, key in ENV_OVERRIDES.items():
        env_value = os.getenv(env_var)
        if env_value:
            values[key] = env_value

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        values = _deep_merge(values, overrides)

    values = {key: value for key, value in values.items() if value != ""}

    known = {f.name for f in fields(SellerConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise InvalidConfigurationError(
            f"Unknown configuration keys: {', '.join(unknown)}",
            context={"unknown": unknown},
        )

    try:
        config = SellerConfig(**values)
    except (TypeError, ValueError) as e:
        raise InvalidConfigurationError(f"Invalid configuration value: {e}", cause=e) from e

    config.validate()

    if not config.has_client_credentials:
        logger.warning("eBay client credentials not configured (EBAY_CLIENT_ID / EBAY_CLIENT_SECRET)")

    logger.debug(
        "Configuration loaded",
        extra={"environment": config.environment, "marketplace_id": config.marketplace_id},
    )
    return config


_seller_config: Optional[SellerConfig] = None


def get_config() -> SellerConfig:
    """Get or load the singleton seller config instance."""
    global _seller_config
    if _seller_config is None:
        _seller_config = load_config()
    return _seller_config


def set_config(config: SellerConfig) -> None:
    """Set the singleton seller config instance (useful for testing)."""
    global _seller_config
    _seller_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _seller_config
    _seller_config = None
