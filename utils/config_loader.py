"""Configuration loader for the ledger harness (INI, YAML and JSON sources)."""
import os
import configparser
from typing import Dict, Any, Optional, List, Tuple
from pathlib import Path
import json
import yaml
from dataclasses import dataclass, asdict
import re
from datetime import datetime, timedelta
import threading

from utils.custom_exceptions import ConfigurationError
from utils.logger import get_logger


PROJECT_ROOT = Path(__file__).resolve().parent.parent

NETWORK_SCOPES = ('scenario', 'run')


@dataclass
class LedgerConfig:
    """Settings for the ledger network and the scenario harness."""
    operator: str = 'first'
    accounts_file: str = 'accounts.yaml'
    network_scope: str = 'scenario'
    transaction_fee_tinybars: int = 100_000
    genesis_balance_hbar: int = 1_000
    transaction_valid_duration: int = 120
    max_message_bytes: int = 1024
    message_wait_timeout: float = 10.0
    message_delivery_delay: float = 0.0
    first_entity_num: int = 5000

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.network_scope not in NETWORK_SCOPES:
            raise ConfigurationError(
                f"network_scope must be one of {NETWORK_SCOPES}, got '{self.network_scope}'",
                config_key='network_scope'
            )
        if self.transaction_fee_tinybars < 0:
            raise ConfigurationError("transaction_fee_tinybars cannot be negative",
                                     config_key='transaction_fee_tinybars')
        if self.genesis_balance_hbar < 0:
            raise ConfigurationError("genesis_balance_hbar cannot be negative",
                                     config_key='genesis_balance_hbar')
        if self.transaction_valid_duration <= 0:
            raise ConfigurationError("transaction_valid_duration must be positive",
                                     config_key='transaction_valid_duration')
        if self.max_message_bytes <= 0:
            raise ConfigurationError("max_message_bytes must be positive",
                                     config_key='max_message_bytes')
        if self.message_wait_timeout <= 0:
            raise ConfigurationError("message_wait_timeout must be positive",
                                     config_key='message_wait_timeout')
        if self.message_delivery_delay < 0:
            raise ConfigurationError("message_delivery_delay cannot be negative",
                                     config_key='message_delivery_delay')

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigLoader:
    """Configuration loader with environment resolution and caching."""

    # Fields whose values may name an environment variable instead of holding the secret
    SENSITIVE_FIELDS = {'private_key', 'key', 'secret', 'token', 'password'}

    VALIDATION_RULES = {
        'timeout': lambda x: float(x) > 0,
        'duration': lambda x: int(x) > 0,
        'tinybars': lambda x: int(x) >= 0,
        'hbar': lambda x: float(x) >= 0,
    }

    def __init__(self, config_dir: Optional[str] = None, cache_timeout: int = 300):
        """
        Initialize the ConfigLoader.

        Args:
            config_dir: Directory holding config.ini and the accounts file.
                Defaults to $LEDGER_CONFIG_DIR, then <project>/config.
            cache_timeout: Cache timeout in seconds
        """
        self.config_dir = Path(config_dir or os.getenv('LEDGER_CONFIG_DIR') or PROJECT_ROOT / 'config')
        self.cache_timeout = cache_timeout

        self._config_cache: Dict[str, Tuple[Any, datetime]] = {}
        self._cache_lock = threading.RLock()
        self._file_timestamps: Dict[str, float] = {}

        self.logger = get_logger("config_loader")

    def _is_cache_valid(self, cache_time: datetime) -> bool:
        return datetime.now() - cache_time < timedelta(seconds=self.cache_timeout)

    def _should_resolve_from_env(self, key: str, value: str) -> bool:
        """Sensitive values written as ENV_VAR_NAME are read from the environment.

        An all-hex value such as an upper-case private key is never a variable name.
        """
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in self.SENSITIVE_FIELDS):
            if re.match(r'^[A-Z][A-Z0-9_]*$', value) and re.search(r'[G-Z_]', value):
                return True
        return False

    def _resolve_value(self, key: str, value: str, context: str = "") -> str:
        if self._should_resolve_from_env(key, value):
            env_value = os.getenv(value)
            if env_value:
                return env_value
            raise ConfigurationError(
                f"Environment variable '{value}' not found. "
                f"Please set it as a system environment variable. "
                f"Context: {context}",
                config_key=value
            )
        return value

    def _validate_value(self, key: str, value: Any, context: str = "") -> Any:
        key_lower = key.lower()
        for rule_key, rule_func in self.VALIDATION_RULES.items():
            if key_lower == rule_key or key_lower.endswith('_' + rule_key):
                try:
                    if not rule_func(value):
                        raise ConfigurationError(f"Validation failed for {context}: {key}={value}",
                                                 config_key=key)
                except (ValueError, TypeError) as e:
                    raise ConfigurationError(f"Invalid value for {context}: {key}={value} ({e})",
                                             config_key=key)
        return value

    def _is_file_modified(self, file_path: Path) -> bool:
        if not file_path.exists():
            return False
        current_mtime = file_path.stat().st_mtime
        cached_mtime = self._file_timestamps.get(str(file_path), 0)
        if current_mtime > cached_mtime:
            self._file_timestamps[str(file_path)] = current_mtime
            return True
        return False

    def _resolve_path(self, filename: str) -> Path:
        path = Path(filename)
        return path if path.is_absolute() else self.config_dir / path

    def load_config_file(self, filename: str, force_reload: bool = False) -> Dict[str, Any]:
        """
        Load a configuration file, resolving environment references.

        Args:
            filename: File name relative to the config directory, or an absolute path
            force_reload: Ignore any cached copy

        Returns:
            Parsed configuration as nested dictionaries
        """
        file_path = self._resolve_path(filename)
        cache_key = str(file_path)

        with self._cache_lock:
            modified = self._is_file_modified(file_path)
            if not force_reload and not modified and cache_key in self._config_cache:
                cached_data, cache_time = self._config_cache[cache_key]
                if self._is_cache_valid(cache_time):
                    self.logger.debug(f"Using cached config for {file_path}")
                    return cached_data

            if not file_path.exists():
                raise ConfigurationError(f"Configuration file not found: {file_path}",
                                         config_file=str(file_path))

            try:
                if file_path.suffix == '.ini':
                    data = self._load_ini_config(file_path)
                elif file_path.suffix == '.json':
                    data = self._load_json_config(file_path)
                elif file_path.suffix in ('.yml', '.yaml'):
                    data = self._load_yaml_config(file_path)
                else:
                    raise ConfigurationError(f"Unsupported config format: {filename}",
                                             config_file=filename)
            except (configparser.Error, json.JSONDecodeError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Could not parse {file_path}: {e}",
                                         config_file=str(file_path))

            self._config_cache[cache_key] = (data, datetime.now())
            self.logger.debug(f"Loaded configuration from {file_path}")
            return data

    def _load_ini_config(self, file_path: Path) -> Dict[str, Any]:
        config = configparser.ConfigParser(interpolation=None)
        config.read(file_path, encoding='utf-8')

        result: Dict[str, Any] = {'DEFAULT': dict(config.defaults())}
        for section in config.sections():
            result[section] = {}
            for key, value in config[section].items():
                context = f"{section}.{key}"
                resolved_value = self._resolve_value(key, value, context)
                result[section][key] = self._validate_value(key, resolved_value, context)
        return result

    def _load_json_config(self, file_path: Path) -> Dict[str, Any]:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return self._resolve_dict_values(data)

    def _load_yaml_config(self, file_path: Path) -> Dict[str, Any]:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return self._resolve_dict_values(data or {})

    def _resolve_dict_values(self, data: Any, context: str = "") -> Any:
        """Recursively resolve and validate values in a parsed document."""
        if isinstance(data, dict):
            result = {}
            for k, v in data.items():
                new_context = f"{context}.{k}" if context else str(k)
                if isinstance(v, str):
                    resolved_value = self._resolve_value(str(k), v, new_context)
                    result[k] = self._validate_value(str(k), resolved_value, new_context)
                else:
                    result[k] = self._resolve_dict_values(v, new_context)
            return result
        elif isinstance(data, list):
            return [self._resolve_dict_values(item, f"{context}[{i}]")
                    for i, item in enumerate(data)]
        return data

    def get_ledger_config(self, section_name: str = "LEDGER") -> LedgerConfig:
        """
        Build the LedgerConfig from config.ini.

        A missing section yields the defaults, so the harness runs without any
        config file tweaks.
        """
        section = self.get_custom_config(section_name, default={})

        try:
            return LedgerConfig(
                operator=section.get('operator', 'first'),
                accounts_file=os.getenv('LEDGER_ACCOUNTS_FILE', section.get('accounts_file', 'accounts.yaml')),
                network_scope=section.get('network_scope', 'scenario').lower(),
                transaction_fee_tinybars=int(section.get('transaction_fee_tinybars', 100_000)),
                genesis_balance_hbar=int(section.get('genesis_balance_hbar', 1_000)),
                transaction_valid_duration=int(section.get('transaction_valid_duration', 120)),
                max_message_bytes=int(section.get('max_message_bytes', 1024)),
                message_wait_timeout=float(section.get('message_wait_timeout', 10.0)),
                message_delivery_delay=float(section.get('message_delivery_delay', 0.0)),
                first_entity_num=int(section.get('first_entity_num', 5000)),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid ledger configuration in section '{section_name}': {e}",
                                     config_key=section_name)

    def get_accounts_config(self, accounts_file: Optional[str] = None) -> Dict[str, Any]:
        """Load the ordered participant credentials document."""
        filename = accounts_file or self.get_ledger_config().accounts_file
        return self.load_config_file(filename)

    def get_custom_config(self, section: str, key: Optional[str] = None, default: Any = None) -> Any:
        """Read an arbitrary section (or one key of it) from config.ini."""
        config = self.load_config_file("config.ini")
        if section not in config:
            return default
        if key is None:
            return config[section]
        return config[section].get(key, default)

    def list_available_sections(self) -> List[str]:
        """Sections of config.ini, without DEFAULT."""
        return [s for s in self.load_config_file("config.ini").keys() if s != 'DEFAULT']

    def reload_config(self) -> None:
        """Drop every cached file."""
        with self._cache_lock:
            self._config_cache.clear()
            self._file_timestamps.clear()
        self.logger.info("Configuration cache cleared")


config_loader = ConfigLoader()
