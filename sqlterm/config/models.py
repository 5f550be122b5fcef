"""Pydantic models for SQLTerm configuration."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    BaseModel,
    Field,
    field_validator,
    model_validator,
    AliasChoices,
    ConfigDict,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseType(str, Enum):
    """Supported database types."""
    SQLSERVER = "sqlserver"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    model_config = ConfigDict(populate_by_name=True)

    type: DatabaseType = Field(
        default=DatabaseType.SQLSERVER,
        validation_alias=AliasChoices("type", "driver"),
    )
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = Field(default=None, validation_alias=AliasChoices("username", "user"))
    password: Optional[str] = None
    path: Optional[str] = None  # For SQLite
    connect_timeout: int = Field(default=10, ge=1, le=300, description="Login timeout in seconds")
    options: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('port')
    def validate_port(cls, v):
        """Validate port number range."""
        if v is not None and (v < 1 or v > 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @model_validator(mode='after')
    def validate_database_config(self):
        """Validate database-specific required fields."""
        if self.type == DatabaseType.SQLITE:
            if not (self.path or self.database):
                raise ValueError("SQLite databases require a 'path' or 'database' field")
            if not self.path:
                object.__setattr__(self, "path", self.database)
            return self

        for field in ('host', 'database', 'username'):
            if not getattr(self, field):
                raise ValueError(f"{self.type.value} databases require '{field}' field")
        if self.password is None:
            object.__setattr__(self, "password", "")
        return self

    @property
    def is_networked(self) -> bool:
        """Whether the database is reached over the network."""
        return self.type != DatabaseType.SQLITE

    def describe(self) -> str:
        """Short human readable endpoint, never including the password."""
        if not self.is_networked:
            return f"sqlite:{self.path}"
        port = f":{self.port}" if self.port else ""
        return f"{self.type.value}://{self.username}@{self.host}{port}/{self.database}"


class SessionSettings(BaseModel):
    """Query session behaviour."""
    query_timeout: Optional[float] = Field(
        default=None, gt=0, description="Cancel statements running longer than this many seconds"
    )
    fetch_size: int = Field(default=500, ge=1, le=100000, description="Rows fetched per round trip")
    history_size: int = Field(default=1000, ge=1, le=100000, description="Maximum history entries kept")
    export_dir: str = Field(default=".", description="Directory for exported result files")
    probe_timeout: float = Field(default=3.0, gt=0, le=60, description="Timeout for reachability probes")


class SQLTermConfig(BaseModel):
    """Main configuration model for SQLTerm."""
    databases: Dict[str, DatabaseConfig]
    default_database: Optional[str] = None
    session: SessionSettings = Field(default_factory=SessionSettings)

    @model_validator(mode='after')
    def validate_default_database(self):
        """Ensure default_database exists in databases."""
        if self.default_database and self.default_database not in self.databases:
            raise ValueError(f"default_database '{self.default_database}' not found in databases")
        return self

    @model_validator(mode='after')
    def set_default_database(self):
        """Set default database if not specified."""
        if not self.default_database and self.databases:
            self.default_database = next(iter(self.databases))
        return self

    def get_database(self, name: Optional[str] = None) -> DatabaseConfig:
        """Return the named database configuration (default when omitted)."""
        name = name or self.default_database
        if not name or name not in self.databases:
            raise KeyError(name)
        return self.databases[name]


class EnvironmentSettings(BaseSettings):
    """Environment-specific settings."""
    model_config = SettingsConfigDict(env_prefix="SQLTERM_", case_sensitive=False)

    log_level: str = Field(default="WARNING")
    debug: bool = Field(default=False)
    config_file: Optional[str] = Field(default=None)
