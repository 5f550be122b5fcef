"""Configuration management for SQLTerm."""

from sqlterm.config.models import (
    DatabaseType,
    DatabaseConfig,
    SessionSettings,
    SQLTermConfig,
    EnvironmentSettings,
)
from sqlterm.config.parser import (
    ConfigParser,
    get_config,
    create_sample_config,
)

__all__ = [
    # Models
    "DatabaseType",
    "DatabaseConfig",
    "SessionSettings",
    "SQLTermConfig",
    "EnvironmentSettings",
    # Parser
    "ConfigParser",
    "get_config",
    "create_sample_config",
]
