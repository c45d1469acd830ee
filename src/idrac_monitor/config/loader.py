"""Configuration loading with YAML, environment override, and Docker secrets support."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import ValidationError

from idrac_monitor.config.settings import MonitorSettings
from idrac_monitor.exceptions import MonitorError

log = structlog.get_logger()

ENV_PREFIX = "IDRAC_"
SECRET_SUFFIX = "_FILE"


class ConfigurationError(MonitorError):
    """Raised when configuration is invalid or cannot be loaded."""

    exit_code: int = 1


_config: Optional[MonitorSettings] = None
_config_lock = threading.Lock()


def resolve_file_secrets(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Resolve Docker secrets (``IDRAC_*_FILE``) from the environment.

    Example:
        IDRAC_PASSWORD_FILE=/run/secrets/idrac_password
        -> {"IDRAC_PASSWORD": "<file contents>"}

    Args:
        environ: Environment mapping to scan (default: os.environ)

    Returns:
        Mapping of target environment variable names to secret values.
        Missing files are skipped with a warning so validation can report
        the missing value.

    Raises:
        ConfigurationError: If a secret file exists but cannot be read
    """
    environ = os.environ if environ is None else environ
    secrets: Dict[str, str] = {}

    for key, filepath in environ.items():
        if not (key.startswith(ENV_PREFIX) and key.endswith(SECRET_SUFFIX)):
            continue
        target = key[: -len(SECRET_SUFFIX)]
        path = Path(filepath)
        if not path.exists():
            log.warning("secret_file_not_found", env_var=key, path=filepath)
            continue
        try:
            secrets[target] = path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read secret file '{filepath}' specified by {key}: {e}"
            ) from e

    return secrets


def check_yaml_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Read the YAML file named by CONFIG_PATH to surface errors early.

    The settings source silently ignores an unreadable file; this check
    turns those cases into a ConfigurationError with a readable message.

    Returns:
        Parsed YAML mapping, or an empty dict if no file is configured
    """
    path = config_path or os.environ.get("CONFIG_PATH")
    if not path:
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(
            f"Configuration file not found: {path}",
            hint="Point CONFIG_PATH at a valid YAML file, or unset it to use environment variables only.",
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file {path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}")

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return data or {}


def format_validation_errors(errors: List[Dict[str, Any]]) -> List[str]:
    """Format Pydantic validation errors into operator-friendly messages."""
    messages: List[str] = []
    for error in errors:
        loc = ".".join(str(part) for part in error.get("loc", []))
        msg = error.get("msg", "Invalid value")
        input_val = error.get("input")

        if error.get("type") == "missing":
            messages.append(
                f"'{loc}' is required. Set {ENV_PREFIX}{loc.upper()} or add '{loc}:' to the config file."
            )
        elif not loc:
            messages.append(msg)
        elif input_val is not None and not isinstance(input_val, dict):
            messages.append(f"'{loc}' {msg}, got: {input_val}")
        else:
            messages.append(f"'{loc}' {msg}")

    return messages


def load_config(config_path: Optional[str] = None) -> MonitorSettings:
    """Load, validate and install the process-wide configuration.

    Precedence: environment variables, then Docker secrets, then .env, then
    the YAML file, then defaults.

    Args:
        config_path: Optional YAML path (exported as CONFIG_PATH)

    Returns:
        Validated MonitorSettings instance

    Raises:
        ConfigurationError: If the file cannot be read or validation fails
    """
    global _config

    if config_path:
        os.environ["CONFIG_PATH"] = config_path

    check_yaml_config()

    for env_key, value in resolve_file_secrets().items():
        os.environ.setdefault(env_key, value)

    try:
        settings = MonitorSettings()
    except ValidationError as e:
        details = format_validation_errors(e.errors())
        raise ConfigurationError(
            "Invalid configuration:\n  " + "\n  ".join(details)
        ) from e

    with _config_lock:
        _config = settings
    return settings


def get_config() -> MonitorSettings:
    """Get the current configuration.

    Raises:
        ConfigurationError: If configuration has not been loaded.
    """
    with _config_lock:
        if _config is None:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return _config


def reload_config() -> MonitorSettings:
    """Reload configuration from disk (SIGHUP handler).

    The previous configuration stays active if the new one is invalid.
    """
    return load_config()
