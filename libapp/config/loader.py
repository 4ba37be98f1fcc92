"""Environment specific configuration files.

Looks in the config directory for ``config.local`` first and falls back to
``config.<environment>``. An optional ``config.secret`` file is deep merged on
top. Each name may be a ``.yaml``, ``.yml`` or ``.json`` file.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

import yaml

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_EXTENSIONS = ('.yaml', '.yml', '.json')
DEFAULT_ENVIRONMENT = 'dev'


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


class ConfigLoader:
    """Loads the configuration for one environment from a directory."""

    def __init__(self, directory: Optional[str] = None, environment: Optional[str] = None):
        self.directory = os.path.abspath(directory or os.getcwd())
        self.environment = environment or os.getenv('ENVIRONMENT') or DEFAULT_ENVIRONMENT

    def _find(self, name: str) -> Optional[str]:
        for extension in CONFIG_EXTENSIONS:
            path = os.path.join(self.directory, name + extension)
            if os.path.isfile(path):
                return path
        return None

    def _try_load(self, name: str) -> Optional[Dict[str, Any]]:
        path = self._find(name)
        if path is None:
            return None

        with open(path, 'r', encoding='utf-8') as f:
            if path.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    def load(self, skip_secret_loading: bool = False) -> Dict[str, Any]:
        config = self._try_load('config.local')

        if config is None:
            config = self._try_load(f'config.{self.environment}')
            if config is None:
                raise ConfigurationError(
                    f"Unable to load config file for environment {{{self.environment}}} from {self.directory}"
                )
            logger.info(f"Loading config file for environment {{{self.environment}}}")
        else:
            logger.info("Loading config file for environment {local}")

        result = deep_merge({}, config)

        if not skip_secret_loading:
            secrets = self._try_load('config.secret')
            if secrets:
                logger.info("Loaded secrets config file.")
                result = deep_merge(result, secrets)

        return result


def get(config: Optional[Dict[str, Any]], key: str, default: Any = None) -> Any:
    """Dotted path lookup into a config mapping."""
    value: Any = config or {}

    for k in key.split('.'):
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default

    return value
