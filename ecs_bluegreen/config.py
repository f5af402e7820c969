import logging
import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "AC_"

REQUIRED_KEYS = (
    "service_name",
    "listener_port",
    "region",
    "cluster",
    "production_url",
    "staging_url",
    "production_health_check_url",
)

INT_KEYS = (
    "listener_port",
    "max_poll_attempts",
    "deploy_search_depth",
    "version_search_depth",
    "swap_retry_attempts",
)

FLOAT_KEYS = (
    "poll_interval_seconds",
    "swap_retry_interval_seconds",
    "health_check_timeout_seconds",
)

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(ValueError):
    """Raised when the deployment configuration is missing or malformed."""

    condition = "ConfigurationError"


@dataclass(frozen=True)
class DeploymentConfig:
    """
    Immutable settings shared by every deployment component.

    Built once per process by :func:`load_config` and passed by reference;
    nothing in the package reads configuration from globals.
    """
    service_name: str
    listener_port: int
    region: str
    cluster: str
    production_url: str
    staging_url: str
    production_health_check_url: str
    task_family: Optional[str] = None
    poll_interval_seconds: float = 5
    max_poll_attempts: int = 60
    deploy_search_depth: int = 5
    version_search_depth: int = 3
    version_env_var: str = "AC_SERVICE_VERSION"
    swap_retry_attempts: int = 3
    swap_retry_interval_seconds: float = 2
    health_check_timeout_seconds: float = 10
    log_level: str = "INFO"

    def __post_init__(self):
        if self.task_family is None:
            # frozen dataclass: bypass __setattr__ for the derived default
            object.__setattr__(self, "task_family", self.service_name)
        self._validate()

    def _validate(self):
        for key in REQUIRED_KEYS:
            value = getattr(self, key)
            if value is None or value == "":
                raise ConfigurationError(f"'{key}' is required")
        if not 0 < self.listener_port < 65536:
            raise ConfigurationError(f"listener_port must be a TCP port, got {self.listener_port}")
        if self.production_url == self.staging_url:
            raise ConfigurationError("production_url and staging_url must differ")
        if self.poll_interval_seconds < 0 or self.swap_retry_interval_seconds < 0:
            raise ConfigurationError("intervals must not be negative")
        if self.max_poll_attempts < 1 or self.swap_retry_attempts < 1:
            raise ConfigurationError("attempt counts must be at least 1")
        for key in ("deploy_search_depth", "version_search_depth"):
            if not 1 <= getattr(self, key) <= 100:
                raise ConfigurationError(f"{key} must be between 1 and 100")
        if self.health_check_timeout_seconds <= 0:
            raise ConfigurationError("health_check_timeout_seconds must be positive")
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )

    @property
    def slot_service_names(self):
        """ECS service names of the two slots, green first."""
        return [f"{self.service_name}-green", f"{self.service_name}-blue"]


def _load_config_from_yaml(file_path: str) -> dict:
    if not os.path.exists(file_path):
        raise ConfigurationError(f"configuration file not found: {file_path}")
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"cannot parse YAML configuration '{file_path}': {e}") from e
    if data is None:
        logger.debug(f"Configuration file '{file_path}' is empty")
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration file '{file_path}' must contain a mapping")
    logger.debug(f"Loaded {len(data)} settings from {file_path}")
    return {str(key).lower(): value for key, value in data.items()}


def _load_config_from_environment(environ: Mapping[str, str]) -> dict:
    """
    Collects ``AC_<KEY>`` variables for every known setting.

    ``AC_SERVICE_VERSION`` is the name of the variable injected into
    containers, so it is never read as a setting.
    """
    known = {f.name for f in fields(DeploymentConfig)}
    env_config = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        config_key = key[len(ENV_PREFIX):].lower()
        if config_key in known:
            env_config[config_key] = value
    if env_config:
        logger.debug(f"Loaded {len(env_config)} settings from {ENV_PREFIX}* environment variables")
    return env_config


def _coerce(settings: dict) -> dict:
    coerced = dict(settings)
    for key in INT_KEYS:
        if key in coerced and coerced[key] is not None:
            try:
                coerced[key] = int(coerced[key])
            except (TypeError, ValueError):
                raise ConfigurationError(f"'{key}' must be an integer, got {coerced[key]!r}")
    for key in FLOAT_KEYS:
        if key in coerced and coerced[key] is not None:
            try:
                coerced[key] = float(coerced[key])
            except (TypeError, ValueError):
                raise ConfigurationError(f"'{key}' must be a number, got {coerced[key]!r}")
    return coerced


def load_config(config_file: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None,
                overrides: Optional[dict] = None) -> DeploymentConfig:
    """
    Builds a :class:`DeploymentConfig`.

    Precedence, lowest to highest: YAML file, ``AC_*`` environment
    variables, explicit overrides (command-line options). ``None`` values in
    overrides are ignored.

    Raises:
        ConfigurationError: if required settings are missing or invalid.
    """
    if environ is None:
        environ = os.environ

    settings = {}
    if config_file:
        settings.update(_load_config_from_yaml(config_file))
    settings.update(_load_config_from_environment(environ))
    if overrides:
        settings.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(DeploymentConfig)}
    unknown = sorted(set(settings) - known)
    if unknown:
        logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")
        for key in unknown:
            settings.pop(key)

    missing = [key for key in REQUIRED_KEYS if settings.get(key) in (None, "")]
    if missing:
        names = ", ".join(f"{ENV_PREFIX}{key.upper()}" for key in missing)
        raise ConfigurationError(f"missing required configuration: {names}")

    return DeploymentConfig(**_coerce(settings))
