"""
Configuration loader: defaults, optional JSON file, environment overrides
"""
import json
import os
from typing import Optional, Dict, Any, Mapping

from ..exceptions import ConfigurationError


# Default configuration. Every key may be overridden from a JSON file or
# from the environment as SITEPUBLISH_<KEY> (upper-cased).
DEFAULT_CONFIG: Dict[str, Any] = {
    "region": "",
    "profile": "",
    "workers": 16,
    "operation_retries": 3,
    "list_retries": 5,
    "report_retries": 3,
    "retry_base_delay": 0.2,
    "retry_max_delay": 5.0,
    "report_reserve_seconds": 10.0,
    "request_timeout_seconds": 60.0,
    "default_deadline_seconds": 300.0,
    "lock_poll_seconds": 2.0,
    "max_artifact_bytes": 256 * 1024 * 1024,
    "short_cache_seconds": 30,
    "long_cache_seconds": 86400,
    "exclude_patterns": [],
    "state_bucket": "",
    "state_prefix": "sitepublish/",
    "repository_name": "",
    "log_level": "INFO",
    "notification_enabled": False,
    "notification_topic_arn": "",
    "notification_type": "slack",
    "notification_webhook_url": "",
}

ENV_PREFIX = "SITEPUBLISH_"
CONFIG_PATH_ENV = "SITEPUBLISH_CONFIG"

_TRUE_VALUES = {"1", "true", "yes", "on", "y"}
_FALSE_VALUES = {"0", "false", "no", "off", "n", ""}

# Lower bounds for numeric settings
_MINIMUMS = {
    "workers": 1,
    "operation_retries": 0,
    "list_retries": 0,
    "report_retries": 0,
    "retry_base_delay": 0.0,
    "retry_max_delay": 0.0,
    "report_reserve_seconds": 0.0,
    "request_timeout_seconds": 1.0,
    "default_deadline_seconds": 1.0,
    "lock_poll_seconds": 0.0,
    "max_artifact_bytes": 1,
    "short_cache_seconds": 0,
    "long_cache_seconds": 0,
}


class ConfigLoader:
    """Handles loading and validating configuration."""

    @staticmethod
    def coerce(key, value):
        """
        Convert a raw value to the type of the key's default.

        Args:
            key: Configuration key (must exist in DEFAULT_CONFIG)
            value: Raw value (string from the environment, or JSON value)

        Returns:
            Value of the same type as ``DEFAULT_CONFIG[key]``
        """
        if key not in DEFAULT_CONFIG:
            raise ConfigurationError(f"Unknown configuration key: {key}")

        default = DEFAULT_CONFIG[key]
        try:
            if isinstance(default, bool):
                if isinstance(value, bool):
                    return value
                text = str(value).strip().lower()
                if text in _TRUE_VALUES:
                    return True
                if text in _FALSE_VALUES:
                    return False
                raise ValueError(f"not a boolean: {value!r}")
            if isinstance(default, int):
                if isinstance(value, bool):
                    raise ValueError(f"not an integer: {value!r}")
                coerced = int(value)
            elif isinstance(default, float):
                coerced = float(value)
            elif isinstance(default, list):
                if isinstance(value, str):
                    text = value.strip()
                    if text.startswith('['):
                        value = json.loads(text)
                    else:
                        value = [part.strip() for part in text.split(',') if part.strip()]
                if not isinstance(value, (list, tuple)):
                    raise ValueError(f"not a list: {value!r}")
                return [str(item) for item in value]
            else:
                return str(value).strip()
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value for '{key}': {e}") from e

        minimum = _MINIMUMS.get(key)
        if minimum is not None and coerced < minimum:
            raise ConfigurationError(f"'{key}' must be >= {minimum}, got {coerced}")
        return coerced

    @staticmethod
    def load_config_json(path):
        """
        Load a JSON configuration file.

        Args:
            path: Path to a JSON object file

        Returns:
            Dictionary of raw values (empty if path is falsy)
        """
        if not path:
            return {}

        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Config file not found: {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Error loading config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a JSON object")
        return data

    @staticmethod
    def load_env_overrides(environ: Optional[Mapping[str, str]] = None):
        """
        Collect ``SITEPUBLISH_*`` environment overrides.

        Args:
            environ: Environment mapping (defaults to ``os.environ``)

        Returns:
            Dictionary of raw values keyed by configuration key
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for key in DEFAULT_CONFIG:
            env_name = f"{ENV_PREFIX}{key.upper()}"
            if env_name in environ:
                overrides[key] = environ[env_name]
        return overrides

    @staticmethod
    def load_config(path: Optional[str] = None,
                    environ: Optional[Mapping[str, str]] = None,
                    overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Build the effective configuration.

        Precedence, lowest first: defaults, JSON file (``path`` or the
        ``SITEPUBLISH_CONFIG`` variable), environment, explicit overrides.

        Returns:
            Validated configuration dictionary
        """
        environ = os.environ if environ is None else environ
        config = dict(DEFAULT_CONFIG)
        config["exclude_patterns"] = list(DEFAULT_CONFIG["exclude_patterns"])

        layers = [
            ConfigLoader.load_config_json(path or environ.get(CONFIG_PATH_ENV)),
            ConfigLoader.load_env_overrides(environ),
            overrides or {},
        ]
        for layer in layers:
            for key, value in layer.items():
                if value is None:
                    continue
                config[key] = ConfigLoader.coerce(key, value)

        if config["retry_max_delay"] < config["retry_base_delay"]:
            raise ConfigurationError("'retry_max_delay' must be >= 'retry_base_delay'")
        if not config["state_prefix"].endswith('/') and config["state_prefix"]:
            config["state_prefix"] += '/'
        return config
