"""Configuration parser for SQLTerm."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from sqlterm.config.models import DatabaseType, EnvironmentSettings, SQLTermConfig
from sqlterm.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ConfigParser:
    """Configuration parser with environment variable interpolation."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')

    DEFAULT_LOCATIONS = (
        "sqlterm.yaml",
        "sqlterm.yml",
        "config/sqlterm.yaml",
    )

    def __init__(self) -> None:
        """Initialize the configuration parser."""
        self.env_settings = EnvironmentSettings()

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> SQLTermConfig:
        """Load and validate configuration.

        The YAML file is looked up in this order: ``config_path``, the
        ``SQLTERM_CONFIG_FILE`` environment variable, the default locations
        relative to the working directory. When none exists the connection is
        described by the ``DB_HOST``/``DB_PORT``/``DB_USER``/``DB_PASSWORD``/
        ``DB_DATABASE`` environment variables.

        Args:
            config_path: Path to configuration file.

        Returns:
            Validated SQLTermConfig instance.

        Raises:
            ConfigurationError: If configuration is invalid or file not found.
        """
        config_file = self._find_config_file(config_path)
        if config_file is None:
            logger.debug("No configuration file found, using DB_* environment variables")
            return self.config_from_environment()

        try:
            with open(config_file, 'r', encoding='utf-8') as file:
                raw_config = yaml.safe_load(file)

            if not raw_config:
                raise ConfigurationError(f"Configuration file '{config_file}' is empty")

            processed_config = self._process_env_vars(raw_config)
            logger.debug(f"Loaded configuration from {config_file}")
            return SQLTermConfig(**processed_config)

        except ConfigurationError:
            raise
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file '{config_file}' not found")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in '{config_file}': {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")
        except Exception as e:
            raise ConfigurationError(f"Error loading configuration: {e}")

    def config_from_environment(self, environ: Optional[Mapping[str, str]] = None) -> SQLTermConfig:
        """Build a single-database configuration from ``DB_*`` variables.

        Defaults target a local SQL Server: ``localhost:1433``, user ``sa``,
        database ``master``.
        """
        environ = os.environ if environ is None else environ
        raw_port = environ.get("DB_PORT", "1433")
        try:
            port = int(raw_port)
        except ValueError:
            raise ConfigurationError(f"DB_PORT must be an integer, got '{raw_port}'")

        try:
            return SQLTermConfig(
                databases={
                    "default": {
                        "type": environ.get("DB_TYPE", DatabaseType.SQLSERVER.value),
                        "host": environ.get("DB_HOST", "localhost"),
                        "port": port,
                        "username": environ.get("DB_USER", "sa"),
                        "password": environ.get("DB_PASSWORD", ""),
                        "database": environ.get("DB_DATABASE", "master"),
                    }
                }
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")

    def _find_config_file(self, config_path: Optional[Union[str, Path]]) -> Optional[Path]:
        """Find configuration file, or None when no file exists.

        Raises:
            ConfigurationError: If an explicitly requested file is missing.
        """
        if config_path:
            path = Path(config_path)
            if path.exists():
                return path
            raise ConfigurationError(f"Configuration file '{config_path}' not found")

        if self.env_settings.config_file:
            path = Path(self.env_settings.config_file)
            if path.exists():
                return path
            raise ConfigurationError(
                f"Configuration file '{self.env_settings.config_file}' (SQLTERM_CONFIG_FILE) not found"
            )

        for location in self.DEFAULT_LOCATIONS:
            path = Path.cwd() / location
            if path.exists():
                return path

        return None

    def _process_env_vars(self, config: Any) -> Any:
        """Recursively process environment variables in configuration."""
        if isinstance(config, dict):
            return {key: self._process_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._process_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_vars(config)
        else:
            return config

    def _substitute_env_vars(self, value: str) -> str:
        """Substitute environment variables in a string.

        Raises:
            ConfigurationError: If required environment variable is not set.
        """
        def replace_var(match):
            var_expr = match.group(1)

            # ${VAR:-default}
            if ':-' in var_expr:
                var_name, default = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default.strip())

            var_name = var_expr.strip()
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(f"Required environment variable '{var_name}' is not set")
            return env_value

        return self.ENV_VAR_PATTERN.sub(replace_var, value)

    def create_sample_config(self, output_path: Union[str, Path]) -> None:
        """Create a sample configuration file."""
        sample_config: Dict[str, Any] = {
            'databases': {
                'dev': {
                    'type': 'sqlserver',
                    'host': 'localhost',
                    'port': 1433,
                    'database': 'master',
                    'username': 'sa',
                    'password': '${DB_PASSWORD:-}',
                    'options': {
                        'driver': 'ODBC Driver 18 for SQL Server',
                        'TrustServerCertificate': 'yes',
                    },
                },
                'local': {
                    'type': 'sqlite',
                    'path': './local.db',
                },
            },
            'default_database': 'dev',
            'session': {
                'query_timeout': 300,
                'fetch_size': 500,
                'history_size': 1000,
                'export_dir': '.',
            },
        }

        with open(output_path, 'w', encoding='utf-8') as file:
            yaml.safe_dump(sample_config, file, default_flow_style=False, sort_keys=False)


_config_parser = ConfigParser()
_loaded_config: Optional[SQLTermConfig] = None


def get_config(config_path: Optional[Union[str, Path]] = None, reload: bool = False) -> SQLTermConfig:
    """Get the global configuration instance.

    Args:
        config_path: Path to configuration file.
        reload: Force reload of configuration.
    """
    global _loaded_config

    if _loaded_config is None or reload or config_path:
        _loaded_config = _config_parser.load_config(config_path)

    return _loaded_config


def create_sample_config(output_path: Union[str, Path]) -> None:
    """Create a sample configuration file."""
    _config_parser.create_sample_config(output_path)
