"""Configuration loading for the seller API client.

Main Functions
--------------
    - load_config(): Load SellerConfig from config.yaml, EBAY_* env vars and overrides
    - get_config(): Get or load singleton SellerConfig instance
    - set_config() / reset_config(): Replace or drop the singleton

Usage Examples
--------------
    >>> from config import load_config
    >>> config = load_config()
    >>> config.environment
    'sandbox'

    >>> config = load_config(overrides={"client_id": "my-app", "client_secret": "..."})
"""

from config.config import (
    DEFAULT_CONFIG_FILE,
    SellerConfig,
    get_config,
    load_config,
    reset_config,
    set_config,
)

__all__ = [
    "SellerConfig",
    "load_config",
    "get_config",
    "set_config",
    "reset_config",
    "DEFAULT_CONFIG_FILE",
]
