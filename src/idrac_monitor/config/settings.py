"""Pydantic settings models for iDRAC Monitor configuration."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from idrac_monitor.utils.timestamps import get_zone


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads values from a YAML file.

    The YAML file path is determined by the CONFIG_PATH environment variable.
    """

    def get_field_value(
        self, field: Any, field_name: str
    ) -> Tuple[Any, str, bool]:
        """Get field value from YAML config."""
        yaml_config = self._load_yaml_config()
        field_value = yaml_config.get(field_name)
        return field_value, field_name, False

    def _load_yaml_config(self) -> Dict[str, Any]:
        """Load YAML configuration file."""
        config_path = os.environ.get("CONFIG_PATH")
        if not config_path:
            return {}

        try:
            with open(config_path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except (FileNotFoundError, yaml.YAMLError, PermissionError):
            # Errors will be handled by loader.py
            return {}

    def __call__(self) -> Dict[str, Any]:
        """Return the YAML config values."""
        return self._load_yaml_config()


class MonitorSettings(BaseSettings):
    """iDRAC Monitor configuration settings.

    Configuration is loaded in the following precedence (highest to lowest):
    1. Environment variables (IDRAC_ prefix)
    2. Docker secrets (_FILE pattern, applied via env)
    3. YAML configuration file (via CONFIG_PATH)
    4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="IDRAC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # iDRAC connection
    host: str = Field(
        ...,
        description="iDRAC hostname or IP address",
    )
    username: str = Field(
        default="root",
        description="iDRAC user with read access to the Redfish Thermal resource",
    )
    password: str = Field(
        default="",
        description="iDRAC password",
    )
    port: int = Field(
        default=443,
        description="iDRAC HTTPS port",
        ge=1,
        le=65535,
    )
    verify_ssl: bool = Field(
        default=True,
        description="Verify SSL certificates (set to false for self-signed certs)",
    )
    connect_timeout: float = Field(
        default=10.0,
        description="Sensor request timeout in seconds",
        gt=0,
    )
    max_retries: int = Field(
        default=3,
        description="Attempts per fetch on connection failure or timeout",
        ge=1,
    )

    # Sensor interpretation
    sensor_name: Optional[str] = Field(
        default=None,
        description="Redfish temperature sensor name (first plausible sensor if not set)",
    )
    reading_offset: float = Field(
        default=0.0,
        description="Correction added to the raw ReadingCelsius value",
    )
    min_valid_reading: float = Field(
        default=0.0,
        description="Lowest plausible corrected temperature",
    )
    max_valid_reading: float = Field(
        default=100.0,
        description="Highest plausible corrected temperature",
    )

    # Thresholds and alert policy
    warning_threshold: float = Field(
        default=25.0,
        description="Temperature (Celsius) at or above which status is WARNING",
    )
    critical_threshold: float = Field(
        default=30.0,
        description="Temperature (Celsius) at or above which status is CRITICAL",
    )
    persistent_alert_after: int = Field(
        default=300,
        description="Seconds a WARNING/CRITICAL status must persist before the follow-up alert",
        gt=0,
    )
    digest_enabled: bool = Field(
        default=True,
        description="Send an hourly status digest",
    )

    # Scheduling
    poll_interval: int = Field(
        default=60,
        description="Polling interval in seconds",
        gt=0,
    )
    schedule_cron: Optional[str] = Field(
        default=None,
        description="Cron expression (5-field) used instead of poll_interval",
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone for log timestamps, hourly buckets and digests",
    )

    # Storage
    data_dir: str = Field(
        default="./data",
        description="Directory for alert state, temperature log and trend cache",
    )
    trend_retention_hours: int = Field(
        default=72,
        description="Number of hourly trend buckets to keep",
        ge=1,
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format: json (production) or text (development)",
    )

    # Email delivery settings
    email_enabled: bool = Field(
        default=False,
        description="Enable email delivery of alerts and digests",
    )
    smtp_host: Optional[str] = Field(
        default=None,
        description="SMTP server hostname",
    )
    smtp_port: int = Field(
        default=25,
        description="SMTP server port (25 relay, 587 STARTTLS, 465 implicit TLS)",
        ge=1,
        le=65535,
    )
    smtp_user: Optional[str] = Field(
        default=None,
        description="SMTP authentication username",
    )
    smtp_password: Optional[str] = Field(
        default=None,
        description="SMTP authentication password",
    )
    smtp_use_tls: bool = Field(
        default=False,
        description="Use TLS for SMTP connection",
    )
    smtp_timeout: float = Field(
        default=20.0,
        description="SMTP socket timeout in seconds",
        gt=0,
    )
    email_from: str = Field(
        default="idrac-monitor@localhost",
        description="From address for sent emails",
    )
    email_from_name: str = Field(
        default="iDRAC Monitor",
        description="Display name for sent emails",
    )
    email_recipients: str = Field(
        default="",
        description="Comma-separated list of recipient email addresses (all via BCC)",
    )

    # File output settings
    file_enabled: bool = Field(
        default=False,
        description="Also write every notification to a file",
    )
    file_output_dir: Optional[str] = Field(
        default=None,
        description="Directory path for notification files",
    )
    file_retention_days: int = Field(
        default=30,
        description="Number of days to retain notification files (0 = keep forever)",
        ge=0,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to set precedence.

        Order (first = highest priority):
        1. init_settings (constructor arguments)
        2. env_settings (environment variables with IDRAC_ prefix)
        3. dotenv_settings (.env file)
        4. yaml_settings (CONFIG_PATH YAML file)
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL"}
        normalized = v.upper()
        if normalized == "WARN":
            normalized = "WARNING"
        if normalized not in valid_levels:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: DEBUG, INFO, WARNING, ERROR"
            )
        return normalized

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Validate host is not empty and strip any scheme."""
        v = v.strip()
        for scheme in ("https://", "http://"):
            if v.lower().startswith(scheme):
                v = v[len(scheme):]
        v = v.rstrip("/")
        if not v:
            raise ValueError("Host cannot be empty")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate the timezone is a known IANA zone."""
        get_zone(v)
        return v

    @model_validator(mode="after")
    def validate_thresholds(self) -> "MonitorSettings":
        """Warning threshold must not exceed the critical threshold."""
        if self.warning_threshold > self.critical_threshold:
            raise ValueError(
                "warning_threshold must be less than or equal to critical_threshold"
            )
        if self.min_valid_reading >= self.max_valid_reading:
            raise ValueError("min_valid_reading must be below max_valid_reading")
        return self

    @model_validator(mode="after")
    def validate_email_config(self) -> "MonitorSettings":
        """If email_enabled is True, smtp_host must be set."""
        if self.email_enabled and not self.smtp_host:
            raise ValueError("smtp_host is required when email_enabled is True")
        return self

    @model_validator(mode="after")
    def validate_file_config(self) -> "MonitorSettings":
        """If file_enabled is True, file_output_dir must be set."""
        if self.file_enabled and not self.file_output_dir:
            raise ValueError("file_output_dir is required when file_enabled is True")
        return self

    @property
    def base_url(self) -> str:
        if self.port == 443:
            return f"https://{self.host}"
        return f"https://{self.host}:{self.port}"

    def get_email_recipients(self) -> List[str]:
        """Parse email_recipients string into a list of addresses.

        Returns:
            List of email addresses, filtered for empty strings.
        """
        if not self.email_recipients:
            return []
        return [addr.strip() for addr in self.email_recipients.split(",") if addr.strip()]
