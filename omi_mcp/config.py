"""
Configuration management for the Omi MCP integration.

Configuration comes from an optional YAML file with ${VAR} interpolation,
a .env file in the working directory and the process environment. The
OMI_API_TOKEN and OMI_API_URL environment variables take precedence over
the file.
"""

import os
import re
import copy
import logging
from typing import Dict, Any, Optional, List

import yaml
from dotenv import load_dotenv

from omi_mcp.client import DEFAULT_API_URL

logger = logging.getLogger(__name__)

class ConfigError(Exception):
    """Custom exception for configuration-related errors."""
    pass

class YAMLSyntaxError(ConfigError):
    """Specific exception for YAML syntax errors."""
    pass

class ConfigValidationError(ConfigError):
    """Specific exception for configuration validation errors."""
    pass

DEFAULT_CONFIG = {
    'omi': {
        'api_url': DEFAULT_API_URL,
        'api_token': None,
        'rate_limit_requests': None,
        'rate_limit_window': None,
    },
    'logging': {
        'level': 'INFO',
        'error_log_dir': None,
    },
    'server': {
        'name': 'omi-me-integration',
    },
}

ENV_OVERRIDES = {
    'OMI_API_TOKEN': ('omi', 'api_token'),
    'OMI_API_URL': ('omi', 'api_url'),
}

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

class ConfigManager:
    """Loads, merges and validates configuration."""

    DEFAULT_CONFIG_FILENAME = "config.yaml"
    USER_CONFIG_DIR = os.path.expanduser("~/.omi-mcp")

    def __init__(self, config_path: Optional[str] = None, load_env_file: bool = True):
        """
        Initialize ConfigManager.

        Args:
            config_path: Optional path to a YAML config file. If None, the user
                config file is used when it exists.
            load_env_file: Whether to read a .env file from the working directory.
        """
        self.config_path = config_path
        self.load_env_file = load_env_file
        self._config_data = None

    def load_config(self) -> Dict[str, Any]:
        """
        Load configuration from defaults, file and environment.

        Returns:
            Dictionary containing the merged configuration.

        Raises:
            YAMLSyntaxError: If the YAML file cannot be parsed.
            ConfigValidationError: If the merged configuration is invalid,
                including when no API token is available.
            ConfigError: If an explicitly requested file cannot be read.
        """
        if self.load_env_file:
            load_dotenv()

        config = copy.deepcopy(DEFAULT_CONFIG)

        config_file_path = self._get_config_file_path()
        if config_file_path:
            file_config = self._read_config_file(config_file_path)
            self._merge(config, self._interpolate_env_vars(file_config))
            logger.info(f"Configuration loaded from {config_file_path}")

        self._apply_env_overrides(config)
        self._validate_config(config)

        self._config_data = config
        return config

    def _get_config_file_path(self) -> Optional[str]:
        """
        Determine the configuration file path to use.

        Returns:
            Path to the configuration file, or None when no file applies.

        Raises:
            ConfigError: If an explicit config path does not exist.
        """
        if self.config_path:
            path = os.path.expanduser(self.config_path)
            if not os.path.exists(path):
                raise ConfigError(f"Configuration file not found: {path}")
            return path

        user_config_path = os.path.join(self.USER_CONFIG_DIR, self.DEFAULT_CONFIG_FILENAME)
        if os.path.exists(user_config_path):
            return user_config_path

        return None

    def _read_config_file(self, path: str) -> Dict[str, Any]:
        with open(path, 'r', encoding='utf-8') as f:
            raw_content = f.read()

        if not raw_content.strip():
            logger.warning(f"Configuration file {path} is empty, using defaults")
            return {}

        try:
            data = yaml.safe_load(raw_content)
        except yaml.YAMLError as e:
            raise YAMLSyntaxError(self._format_yaml_error(e, path))

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigValidationError(f"Configuration file {path} must contain a mapping at the top level")
        return data

    def _format_yaml_error(self, yaml_error: yaml.YAMLError, file_path: str) -> str:
        error_msg = f"YAML syntax error in configuration file: {file_path}"
        mark = getattr(yaml_error, 'problem_mark', None)
        if mark is not None:
            error_msg += f" (Line {mark.line + 1}, Column {mark.column + 1})"
        problem = getattr(yaml_error, 'problem', None)
        error_msg += f": {problem or yaml_error}"
        return error_msg

    def _interpolate_env_vars(self, config: Any) -> Any:
        """
        Recursively interpolate environment variables in configuration values.

        Supports ${VAR_NAME} and ${VAR_NAME:-default_value} syntax.
        """
        if isinstance(config, dict):
            return {key: self._interpolate_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._interpolate_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._interpolate_string(config)
        else:
            return config

    def _interpolate_string(self, value: str) -> Optional[str]:
        pattern = r'\$\{([^}]+)\}'

        def replace_env_var(match):
            var_expr = match.group(1)
            if ':-' in var_expr:
                var_name, default_value = var_expr.split(':-', 1)
                return os.getenv(var_name.strip(), default_value.strip())
            var_name = var_expr.strip()
            env_value = os.getenv(var_name)
            if env_value is None:
                logger.warning(f"Environment variable {var_name} not found")
                return ''
            return env_value

        result = re.sub(pattern, replace_env_var, value)
        # A value made only of an unset variable counts as not configured.
        return result if result or not value else None

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            elif value is not None:
                base[key] = value

    def _apply_env_overrides(self, config: Dict[str, Any]) -> None:
        for env_var, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                config[section][key] = value

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """
        Validate the merged configuration.

        Raises:
            ConfigValidationError: If validation fails.
        """
        errors: List[str] = []
        omi = config['omi']

        if not omi.get('api_token'):
            errors.append("OMI_API_TOKEN is not set in environment variables")

        api_url = omi.get('api_url')
        if not isinstance(api_url, str) or not api_url.startswith(('http://', 'https://')):
            errors.append(f"omi.api_url must be an http(s) URL, got: {api_url!r}")

        for key in ('rate_limit_requests', 'rate_limit_window'):
            value = omi.get(key)
            if value is not None and (not isinstance(value, int) or value <= 0):
                errors.append(f"omi.{key} must be a positive integer")

        level = config['logging'].get('level')
        if level not in VALID_LOG_LEVELS:
            errors.append(f"logging.level must be one of: {VALID_LOG_LEVELS}")

        if errors:
            raise ConfigValidationError("; ".join(errors))

    def _require_loaded(self) -> Dict[str, Any]:
        if self._config_data is None:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config_data

    def get_omi_config(self) -> Dict[str, Any]:
        """Get the ``omi`` section used to build the API client."""
        return self._require_loaded()['omi']

    def get_logging_settings(self) -> Dict[str, Any]:
        return self._require_loaded()['logging']

    def get_server_settings(self) -> Dict[str, Any]:
        return self._require_loaded()['server']

def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration using the default ConfigManager.

    Args:
        config_path: Optional custom path to config file.

    Returns:
        Loaded configuration dictionary.
    """
    return ConfigManager(config_path).load_config()
