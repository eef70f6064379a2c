"""
bootstrap/ - Configuration, application wiring and entry points.
"""

from .config import (
    BigBagConfig,
    BusinessRulesConfig,
    StorageConfig,
    APIConfig,
    LoggingConfig,
    load_config,
    get_config,
)
from .app import AppContext, AppState, create_app_context, create_store, run_api
from .entrypoints import setup_logging, cli_main, api_main

__all__ = [
    "BigBagConfig",
    "BusinessRulesConfig",
    "StorageConfig",
    "APIConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    "AppContext",
    "AppState",
    "create_app_context",
    "create_store",
    "run_api",
    "setup_logging",
    "cli_main",
    "api_main",
]
