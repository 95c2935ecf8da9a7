#!/usr/bin/env python3
"""
Unified Configuration Loader
Loads settings from auto_classifier.yaml and .env files
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .errors import ConfigError
from .models import AutoClassifierSettings, CommandOption

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "auto_classifier.yaml"
CONFIG_ENV_VAR = "AUTO_CLASSIFIER_CONFIG"


class ConfigLoader:
    """Loads configuration from the settings YAML and .env files"""

    def __init__(self, config_path: Union[str, Path, None] = None, env_path: Union[str, Path, None] = None):
        if config_path is None:
            config_path = os.getenv(CONFIG_ENV_VAR) or Path.cwd() / DEFAULT_CONFIG_FILE
        if env_path is None:
            env_path = Path.cwd() / ".env"
        self.config_path = Path(config_path)
        self.env_path = Path(env_path)
        self.config_data: Dict[str, Any] = {}
        self.env_data: Dict[str, str] = {}
        self._load_config()

    def _load_config(self):
        """Load configuration from both files"""
        if self.env_path.exists():
            load_dotenv(self.env_path)
        else:
            logger.debug(f"{self.env_path} not found, using environment variables only")
        self.env_data = dict(os.environ)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    self.config_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e
            if not isinstance(self.config_data, dict):
                raise ConfigError(f"{self.config_path} must contain a mapping")
        else:
            logger.debug(f"{self.config_path} not found, using defaults")
            self.config_data = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value with environment variable override support"""
        env_key = key.upper().replace('.', '_')
        if env_key in self.env_data:
            return self.env_data[env_key]

        value = self.config_data
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def get_vault_path(self) -> Optional[str]:
        """Get vault path with environment variable override"""
        return self.get('vault.path')

    def get_api_key(self) -> Optional[str]:
        """API key from settings, falling back to OPENAI_API_KEY"""
        return self.get('api_key') or os.getenv('OPENAI_API_KEY')

    def get_command_option(self) -> CommandOption:
        """Command options with defaults for every missing field"""
        data = {}
        for field_name in CommandOption.model_fields:
            value = self.get(f'command_option.{field_name}')
            if value is not None:
                data[field_name] = value
        try:
            return CommandOption.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid command_option settings: {e}") from e

    def load_settings(self) -> AutoClassifierSettings:
        """Settings file merged over defaults, with environment overrides"""
        data: Dict[str, Any] = {'command_option': self.get_command_option()}
        for field_name in ('base_url', 'timeout', 'max_retries', 'reliability_threshold'):
            value = self.get(field_name)
            if value is not None:
                data[field_name] = value
        data['api_key'] = self.get_api_key()
        data['vault_path'] = self.get_vault_path()
        try:
            return AutoClassifierSettings.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {e}") from e

    def set(self, key: str, value: Any):
        """Set a dotted key in the in-memory settings (call save() to persist)"""
        keys = key.split('.')
        node = self.config_data
        for k in keys[:-1]:
            if not isinstance(node.get(k), dict):
                node[k] = {}
            node = node[k]
        node[keys[-1]] = value

    def save(self):
        """Write the settings back to the YAML file"""
        data = copy.deepcopy(self.config_data)
        # Validate before writing so a bad `config set` never reaches disk
        try:
            option = data.get('command_option') or {}
            CommandOption.model_validate(option)
        except ValidationError as e:
            raise ConfigError(f"Invalid command_option settings: {e}") from e

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        logger.info(f"Saved settings to {self.config_path}")

    def validate_config(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not self.get_api_key():
            errors.append("API key not configured (set api_key in settings or OPENAI_API_KEY in .env)")

        if not self.get_vault_path():
            errors.append("Vault path not configured (set vault.path in settings or VAULT_PATH env var)")

        try:
            option = self.get_command_option()
        except ConfigError as e:
            errors.append(str(e))
        else:
            if option.use_ref and not option.refs:
                errors.append("No reference tags (set command_option.refs or disable command_option.use_ref)")

        return errors


def default_settings_data() -> Dict[str, Any]:
    """Settings file content for `config init`"""
    option = CommandOption().model_dump(mode='json')
    settings = AutoClassifierSettings()
    return {
        'api_key': '',
        'base_url': settings.base_url,
        'timeout': settings.timeout,
        'max_retries': settings.max_retries,
        'reliability_threshold': settings.reliability_threshold,
        'vault': {'path': ''},
        'command_option': option,
    }


# Global config loader instance
_config_loader: Optional[ConfigLoader] = None


def get_config_loader(config_path: Union[str, Path, None] = None) -> ConfigLoader:
    """Get the global config loader instance"""
    global _config_loader
    if _config_loader is None or config_path is not None:
        _config_loader = ConfigLoader(config_path)
    return _config_loader
