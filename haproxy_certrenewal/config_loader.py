"""
Configuration loading, validation, and parsing.

Settings are resolved once at startup, in increasing order of precedence:
built-in defaults, an optional YAML file, environment variables (the names
used by the original cron script), and finally command-line overrides applied
by the caller. The resulting Config object is passed explicitly to every
component.
"""

import os
import re
import shlex
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Dict, Any, Mapping, Optional

import yaml

from .errors import ConfigurationError
from .logger import get_logger


DEFAULT_LE_CERT_ROOT = "/etc/letsencrypt/live"
DEFAULT_HAPROXY_CFG = "/etc/haproxy/haproxy.cfg"
DEFAULT_CRT_LIST = "/etc/haproxy/crtlist.txt"
DEFAULT_LOG_FILE = "/var/log/certrenewal.log"

# Environment variable -> (settings field, kind)
ENV_OVERRIDES = {
    "EMAIL": ("email", "str"),
    "FORCE_RENEW": ("force_renew", "bool"),
    "DAYS": ("threshold_days", "int"),
    "LE_CLIENT": ("ca_client", "str"),
    "HAPROXY_RELOAD_CMD": ("reload_cmd", "str"),
    "WEBROOT": ("webroot", "str"),
    "LOGTOFILE": ("log_to_file", "bool"),
    "LOGFILE": ("log_file", "str"),
    "LE_CERT_ROOT": ("le_cert_root", "str"),
    "HAPROXY_CFG": ("haproxy_cfg", "str"),
    "HAPROXY_CRT_LIST": ("crt_list", "str"),
}

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


@dataclass
class EmailNotificationConfig:
    """Email notification configuration."""
    enabled: bool = False
    from_email: str = ""
    to_emails: List[str] = field(default_factory=list)
    template_path: Optional[str] = None


@dataclass
class TeamsNotificationConfig:
    """Teams notification configuration."""
    enabled: bool = False
    template_path: Optional[str] = None


@dataclass
class NotificationsConfig:
    """Notification channels configuration."""
    email: EmailNotificationConfig = field(default_factory=EmailNotificationConfig)
    teams: TeamsNotificationConfig = field(default_factory=TeamsNotificationConfig)


@dataclass
class Settings:
    """Global settings."""
    email: str = ""
    force_renew: bool = False
    threshold_days: int = 30
    ca_client: str = "certbot"
    reload_cmd: str = "service haproxy reload"
    webroot: str = "/var/lib/haproxy"
    log_to_file: bool = False
    log_file: str = DEFAULT_LOG_FILE
    le_cert_root: str = DEFAULT_LE_CERT_ROOT
    haproxy_cfg: str = DEFAULT_HAPROXY_CFG
    crt_list: str = DEFAULT_CRT_LIST
    use_staging: bool = False
    dry_run: bool = False
    ca_client_timeout: Optional[int] = None
    reload_timeout: Optional[int] = 60


@dataclass
class Config:
    """Root configuration object."""
    settings: Settings = field(default_factory=Settings)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


def _expand_env_vars(value: Any, environ: Mapping[str, str]) -> Any:
    """
    Expand environment variables in string values.

    Supports ${VAR_NAME} syntax. Unknown variables are left untouched.

    Args:
        value: Value to expand (string, dict, or list)
        environ: Environment mapping to read from

    Returns:
        Value with environment variables expanded
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"

        def replace(match):
            return environ.get(match.group(1), match.group(0))

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v, environ) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item, environ) for item in value]

    return value


def parse_bool(value: Any, name: str) -> bool:
    """
    Parse a boolean from YAML or an environment string.

    Raises:
        ConfigurationError: If the value is not a recognised boolean
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for {name}: {value!r}")


def parse_int(value: Any, name: str) -> int:
    """
    Parse an integer from YAML or an environment string.

    Raises:
        ConfigurationError: If the value is not an integer
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid integer for {name}: {value!r}")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"Invalid integer for {name}: {value!r}")


def _coerce(value: Any, kind: str, name: str) -> Any:
    if kind == "bool":
        return parse_bool(value, name)
    if kind == "int":
        return parse_int(value, name)
    if kind == "optional_int":
        return None if value is None else parse_int(value, name)
    return "" if value is None else str(value)


_SETTINGS_FIELDS = {
    "email": "str",
    "force_renew": "bool",
    "threshold_days": "int",
    "ca_client": "str",
    "reload_cmd": "str",
    "webroot": "str",
    "log_to_file": "bool",
    "log_file": "str",
    "le_cert_root": "str",
    "haproxy_cfg": "str",
    "crt_list": "str",
    "use_staging": "bool",
    "dry_run": "bool",
    "ca_client_timeout": "optional_int",
    "reload_timeout": "optional_int",
}


def _parse_settings(data: Dict[str, Any]) -> Settings:
    """
    Parse the settings section.

    Args:
        data: Raw settings data from YAML

    Returns:
        Settings instance
    """
    if not isinstance(data, dict):
        raise ConfigurationError("'settings' section must be a mapping")

    unknown = sorted(set(data) - set(_SETTINGS_FIELDS))
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")

    values = {
        key: _coerce(value, _SETTINGS_FIELDS[key], key)
        for key, value in data.items()
    }
    return Settings(**values)


def _parse_notifications(data: Dict[str, Any]) -> NotificationsConfig:
    """
    Parse notifications configuration.

    Args:
        data: Raw notifications data from YAML

    Returns:
        NotificationsConfig instance
    """
    if not isinstance(data, dict):
        raise ConfigurationError("'notifications' section must be a mapping")

    email_data = data.get("email") or {}
    to_emails = email_data.get("to_emails", [])
    if isinstance(to_emails, str):
        to_emails = [to_emails]

    email_config = EmailNotificationConfig(
        enabled=parse_bool(email_data.get("enabled", False), "notifications.email.enabled"),
        from_email=email_data.get("from_email", ""),
        to_emails=to_emails,
        template_path=email_data.get("template_path"),
    )

    teams_data = data.get("teams") or {}
    teams_config = TeamsNotificationConfig(
        enabled=parse_bool(teams_data.get("enabled", False), "notifications.teams.enabled"),
        template_path=teams_data.get("template_path"),
    )

    return NotificationsConfig(email=email_config, teams=teams_config)


def _read_yaml(config_path: str, environ: Mapping[str, str]) -> Dict[str, Any]:
    path = Path(config_path)

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if path.suffix not in (".yaml", ".yml"):
        raise ConfigurationError(
            f"Configuration file must be YAML (.yaml or .yml): {config_path}"
        )

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}")

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    unknown = sorted(set(raw_data) - {"settings", "notifications"})
    if unknown:
        raise ConfigurationError(f"Unknown configuration sections: {', '.join(unknown)}")

    return _expand_env_vars(raw_data, environ)


def apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    """
    Apply the cron-script environment variables on top of settings.

    Args:
        settings: Settings to update in place
        environ: Environment mapping

    Returns:
        The same Settings instance
    """
    for env_name, (attr, kind) in ENV_OVERRIDES.items():
        if env_name in environ:
            setattr(settings, attr, _coerce(environ[env_name], kind, env_name))
    return settings


def validate_settings(settings: Settings) -> None:
    """
    Validate settings values.

    Raises:
        ConfigurationError: If a value is out of range or empty
    """
    if settings.threshold_days < 0:
        raise ConfigurationError("threshold_days must not be negative")
    try:
        client_words = shlex.split(settings.ca_client)
    except ValueError as e:
        raise ConfigurationError(f"ca_client cannot be parsed: {e}")
    if not client_words:
        raise ConfigurationError("ca_client must not be empty")
    if not settings.reload_cmd.strip():
        raise ConfigurationError("reload_cmd must not be empty")
    if not settings.webroot.strip():
        raise ConfigurationError("webroot must not be empty")
    if not settings.crt_list.strip():
        raise ConfigurationError("crt_list must not be empty")
    for name in ("ca_client_timeout", "reload_timeout"):
        value = getattr(settings, name)
        if value is not None and value < 1:
            raise ConfigurationError(f"{name} must be a positive number of seconds")
    # Note: email is optional. If empty, certbot registers without email.


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """
    Load and validate configuration.

    Args:
        config_path: Optional path to a YAML configuration file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated Config instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    logger = get_logger()
    environ = os.environ if environ is None else environ

    data: Dict[str, Any] = {}
    if config_path:
        data = _read_yaml(config_path, environ)
        logger.info(f"Loaded configuration from {config_path}")

    settings = _parse_settings(data.get("settings") or {})
    notifications = _parse_notifications(data.get("notifications") or {})

    apply_env_overrides(settings, environ)
    validate_settings(settings)

    logger.debug(f"  Certificate store: {settings.le_cert_root}")
    logger.debug(f"  HAProxy config: {settings.haproxy_cfg}")
    logger.debug(f"  Certificate list: {settings.crt_list}")
    logger.debug(f"  Threshold: {settings.threshold_days} days")

    return Config(settings=settings, notifications=notifications)
