"""
Configuration for DB Session Monitor.

This module provides the configuration models for the monitored databases,
the connection pool, alert thresholds, notification channels and the
application intervals. Configuration is read from a YAML file and validated
with pydantic.

Author: DB Session Monitor
Version: 0.1.0
"""

import os
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, validator, model_validator

from .exceptions import ConfigurationError


# Certificate files expected inside DatabaseConfig.cert_path
CLIENT_CERT_FILE = "client-cert.pem"
CLIENT_KEY_FILE = "client-key.pem"
CA_CERT_FILE = "ca-cert.pem"
CERT_FILES = (CLIENT_CERT_FILE, CLIENT_KEY_FILE, CA_CERT_FILE)


class DatabaseEngine(str, Enum):
    """Supported database engines."""
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"


DEFAULT_PORTS = {
    DatabaseEngine.MYSQL.value: 3306,
    DatabaseEngine.POSTGRESQL.value: 5432,
}

ENGINE_ALIASES = {
    "postgres": DatabaseEngine.POSTGRESQL.value,
    "pg": DatabaseEngine.POSTGRESQL.value,
    "mariadb": DatabaseEngine.MYSQL.value,
}


class LogFormat(str, Enum):
    """Log output formats."""
    TEXT = "text"
    JSON = "json"


class ThresholdConfig(BaseModel):
    """Session count ceilings. A value above the ceiling raises an alert."""

    model_config = ConfigDict(frozen=True)

    active_connections: int = Field(default=50, ge=0)
    inactive_connections: int = Field(default=100, ge=0)
    total_connections: int = Field(default=200, ge=0)


class DatabaseConfig(BaseModel):
    """Static descriptor of one monitored database."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    type: str
    host: str = ""
    port: Optional[int] = Field(default=None, gt=0, le=65535)
    database: str = ""
    username: str = ""
    password: str = ""
    ssl_mode: str = "prefer"
    cert_path: Optional[Path] = None

    # Timeouts in seconds
    connect_timeout: float = Field(default=30.0, gt=0)
    query_timeout: float = Field(default=30.0, gt=0)

    # Overrides the global thresholds for this database
    thresholds: Optional[ThresholdConfig] = None

    @validator('type', pre=True)
    def normalize_type(cls, v):
        """Lower-case the engine name and resolve aliases."""
        if isinstance(v, Enum):
            v = v.value
        v = str(v).strip().lower()
        return ENGINE_ALIASES.get(v, v)

    @model_validator(mode='before')
    @classmethod
    def default_port(cls, data: Any) -> Any:
        """Set the default port based on the database engine."""
        if isinstance(data, dict) and not data.get('port'):
            engine = str(data.get('type', '')).strip().lower()
            engine = ENGINE_ALIASES.get(engine, engine)
            if engine in DEFAULT_PORTS:
                data = {**data, 'port': DEFAULT_PORTS[engine]}
        return data

    def display_name(self) -> str:
        """Name used in logs, e.g. ``orders (postgresql@db1:5432)``."""
        return f"{self.name} ({self.type}@{self.host}:{self.port})"


class PoolConfig(BaseModel):
    """Process-wide connection pool tuning. Durations are in seconds."""

    model_config = ConfigDict(frozen=True)

    max_open_conns: int = Field(default=10, ge=1)
    max_idle_conns: int = Field(default=5, ge=0)
    conn_max_lifetime: float = Field(default=3600.0, gt=0)
    conn_max_idle_time: float = Field(default=300.0, gt=0)
    health_check_interval: float = Field(default=60.0, gt=0)
    backoff_initial: float = Field(default=1.0, gt=0)
    backoff_max: float = Field(default=60.0, gt=0)

    @model_validator(mode='after')
    def validate_limits(self) -> 'PoolConfig':
        """Validate cross-field limits."""
        if self.backoff_max < self.backoff_initial:
            raise ValueError("backoff_max must be greater than or equal to backoff_initial")
        if self.max_idle_conns > self.max_open_conns:
            raise ValueError("max_idle_conns cannot exceed max_open_conns")
        return self


class EmailConfig(BaseModel):
    """SMTP notification channel."""

    smtp_host: str = ""
    smtp_port: int = Field(default=587, gt=0, le=65535)
    username: str = ""
    password: str = ""
    from_email: str = ""
    to_emails: List[str] = Field(default_factory=list)
    use_tls: bool = False
    start_tls: bool = True
    timeout: float = Field(default=30.0, gt=0)

    @property
    def is_configured(self) -> bool:
        """Check if enough settings are present to send mail."""
        return bool(self.smtp_host and self.from_email and self.to_emails)


class SlackConfig(BaseModel):
    """Slack incoming-webhook notification channel."""

    webhook_url: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.webhook_url)


class WebhookConfig(BaseModel):
    """Generic JSON webhook notification channel."""

    url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=30.0, gt=0)

    @property
    def is_configured(self) -> bool:
        return bool(self.url)


class ApplicationConfig(BaseModel):
    """Application-level intervals. Durations are in seconds."""

    monitoring_interval: float = Field(default=60.0, gt=0)
    health_check_interval: float = Field(default=300.0, gt=0)
    alert_reset_interval: float = Field(default=3600.0, gt=0)
    # Repeat an alert every N-th detection; 0 or less alerts only once per reset
    alert_frequency: int = 5
    check_timeout: float = Field(default=45.0, gt=0)
    http_server_address: str = ":8080"

    @validator('http_server_address')
    def validate_address(cls, v):
        """Validate ``host:port`` format."""
        _, _, port = v.rpartition(':')
        if not port.isdigit():
            raise ValueError("http_server_address must have the form 'host:port'")
        return v

    def http_bind(self) -> Tuple[str, int]:
        """Split the HTTP server address into host and port."""
        host, _, port = self.http_server_address.rpartition(':')
        return host or "0.0.0.0", int(port)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: LogFormat = LogFormat.TEXT

    @validator('level')
    def validate_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return v


class MonitorConfig(BaseModel):
    """Root configuration."""

    databases: List[DatabaseConfig] = Field(default_factory=list)
    email: EmailConfig = Field(default_factory=EmailConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    application: ApplicationConfig = Field(default_factory=ApplicationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode='after')
    def validate_config(self) -> 'MonitorConfig':
        """Validate the configuration as a whole."""
        if not self.databases:
            raise ValueError("no databases configured")

        supported = {engine.value for engine in DatabaseEngine}
        seen = set()
        for index, db in enumerate(self.databases):
            if db.name in seen:
                raise ValueError(f"duplicate database name: {db.name}")
            seen.add(db.name)
            if db.type not in supported:
                raise ValueError(f"invalid database type for {db.name}: {db.type}")
            if not db.host:
                raise ValueError(f"host cannot be empty for {db.name}")
            if db.cert_path is not None:
                missing = [f for f in CERT_FILES if not (db.cert_path / f).is_file()]
                if missing:
                    raise ValueError(
                        f"certificate files missing for {db.name} in {db.cert_path}: {', '.join(missing)}"
                    )

        if not (self.email.is_configured or self.slack.is_configured or self.webhook.is_configured):
            raise ValueError("no notification channel configured (email, slack or webhook)")

        return self

    def get_database(self, name: str) -> Optional[DatabaseConfig]:
        """Get a database descriptor by name."""
        for db in self.databases:
            if db.name == name:
                return db
        return None

    def thresholds_for(self, name: str) -> ThresholdConfig:
        """Get the thresholds that apply to a database."""
        db = self.get_database(name)
        if db is not None and db.thresholds is not None:
            return db.thresholds
        return self.thresholds


def parse_config(data: Dict[str, Any], config_path: Optional[str] = None) -> MonitorConfig:
    """Validate a configuration dictionary."""
    try:
        return MonitorConfig.model_validate(data or {})
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            config_path=config_path,
            original_error=e
        )


def load_config(config_path: Union[str, Path]) -> MonitorConfig:
    """
    Load and validate a YAML configuration file.

    ``${VAR}`` references are expanded from the environment before parsing.

    Raises:
        ConfigurationError: when the file cannot be read, parsed or validated
    """
    path = Path(config_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file {path}",
            config_path=str(path),
            original_error=e
        )

    try:
        data = yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse configuration file {path}",
            config_path=str(path),
            original_error=e
        )

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file {path} must contain a mapping",
            config_path=str(path)
        )

    return parse_config(data, config_path=str(path))
