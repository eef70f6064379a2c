"""
bootstrap/config.py - Application configuration

Provides configuration loading from files, environment variables, and defaults.
Environment variables use the BIGBAG_ prefix; a JSON file overrides them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from pathlib import Path
import os
import json
import logging

from ..core import constants as C
from ..errors import ValidationError

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class BusinessRulesConfig:
    """Calculator and variance thresholds."""

    waste_margin: float = C.DEFAULT_WASTE_MARGIN
    variance_ok_pct: float = C.DEFAULT_VARIANCE_OK_PCT
    variance_warning_pct: float = C.DEFAULT_VARIANCE_WARNING_PCT

    @classmethod
    def from_env(cls) -> "BusinessRulesConfig":
        return cls(
            waste_margin=float(os.getenv("BIGBAG_WASTE_MARGIN", str(C.DEFAULT_WASTE_MARGIN))),
            variance_ok_pct=float(os.getenv("BIGBAG_VARIANCE_OK_PCT", str(C.DEFAULT_VARIANCE_OK_PCT))),
            variance_warning_pct=float(
                os.getenv("BIGBAG_VARIANCE_WARNING_PCT", str(C.DEFAULT_VARIANCE_WARNING_PCT))
            ),
        )

    def validate(self) -> None:
        if not 0 <= self.waste_margin < 1:
            raise ValidationError("waste_margin must be in [0, 1)", field="business.waste_margin")
        if self.variance_ok_pct < 0 or self.variance_warning_pct < self.variance_ok_pct:
            raise ValidationError(
                "variance thresholds must satisfy 0 <= ok <= warning",
                field="business.variance_warning_pct",
            )


@dataclass
class StorageConfig:
    """Store backend configuration."""

    backend: str = "memory"  # memory | sql
    database_url: str = "sqlite:///:memory:"
    seed_file: Optional[str] = None
    echo_sql: bool = False

    @classmethod
    def from_env(cls) -> "StorageConfig":
        return cls(
            backend=os.getenv("BIGBAG_STORE_BACKEND", "memory"),
            database_url=os.getenv("BIGBAG_DATABASE_URL", "sqlite:///:memory:"),
            seed_file=os.getenv("BIGBAG_SEED_FILE"),
            echo_sql=_env_bool("BIGBAG_ECHO_SQL", "false"),
        )


@dataclass
class APIConfig:
    """API server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1
    enable_docs: bool = True
    docs_url: str = "/docs"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "APIConfig":
        cors = os.getenv("BIGBAG_API_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("BIGBAG_API_HOST", "0.0.0.0"),
            port=int(os.getenv("BIGBAG_API_PORT", "8000")),
            workers=int(os.getenv("BIGBAG_API_WORKERS", "1")),
            enable_docs=_env_bool("BIGBAG_API_ENABLE_DOCS", "true"),
            docs_url=os.getenv("BIGBAG_API_DOCS_URL", "/docs"),
            cors_origins=cors.split(",") if cors else ["*"],
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None
    json_logs: bool = False

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        return cls(
            level=os.getenv("BIGBAG_LOG_LEVEL", "INFO"),
            format=os.getenv("BIGBAG_LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=os.getenv("BIGBAG_LOG_FILE"),
            json_logs=_env_bool("BIGBAG_JSON_LOGS", "false"),
        )


@dataclass
class BigBagConfig:
    """Root configuration."""

    environment: str = "development"
    debug: bool = False
    version: str = "1.0.0"

    business: BusinessRulesConfig = field(default_factory=BusinessRulesConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    api: APIConfig = field(default_factory=APIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "BigBagConfig":
        """Create configuration from environment variables."""
        return cls(
            environment=os.getenv("BIGBAG_ENVIRONMENT", "development"),
            debug=_env_bool("BIGBAG_DEBUG", "false"),
            business=BusinessRulesConfig.from_env(),
            storage=StorageConfig.from_env(),
            api=APIConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

    @classmethod
    def from_file(cls, filepath: str) -> "BigBagConfig":
        """Load configuration from JSON file."""
        path = Path(filepath)
        if not path.exists():
            logger.warning(f"Config file not found: {filepath}, using defaults")
            return cls.from_env()

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "BigBagConfig":
        """Create config from dictionary: environment first, file values on top."""
        config = cls.from_env()

        if "environment" in data:
            config.environment = data["environment"]
        if "debug" in data:
            config.debug = data["debug"]

        for section in ("business", "storage", "api", "logging"):
            target = getattr(config, section)
            for key, value in data.get(section, {}).items():
                if hasattr(target, key):
                    setattr(target, key, value)
                else:
                    logger.warning(f"Unknown config key ignored: {section}.{key}")

        config.business.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Serialize config to dictionary."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "version": self.version,
            "business": {
                "waste_margin": self.business.waste_margin,
                "variance_ok_pct": self.business.variance_ok_pct,
                "variance_warning_pct": self.business.variance_warning_pct,
            },
            "storage": {
                "backend": self.storage.backend,
                "seed_file": self.storage.seed_file,
            },
            "api": {
                "host": self.api.host,
                "port": self.api.port,
                "workers": self.api.workers,
            },
            "logging": {
                "level": self.logging.level,
                "json_logs": self.logging.json_logs,
            },
        }


# Global config instance
_config: Optional[BigBagConfig] = None


def load_config(filepath: str = None) -> BigBagConfig:
    """
    Load configuration from file or environment.

    Args:
        filepath: Optional path to JSON config file

    Returns:
        BigBagConfig instance
    """
    global _config

    if filepath:
        _config = BigBagConfig.from_file(filepath)
    else:
        default_paths = [
            "./bigbag.json",
            "./config/bigbag.json",
            os.path.expanduser("~/.bigbag/config.json"),
        ]

        for path in default_paths:
            if Path(path).exists():
                logger.info(f"Loading config from: {path}")
                _config = BigBagConfig.from_file(path)
                return _config

        _config = BigBagConfig.from_env()

    logger.info(f"Configuration loaded: environment={_config.environment}")
    return _config


def get_config() -> BigBagConfig:
    """Get current configuration, loading if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached configuration."""
    global _config
    _config = None
