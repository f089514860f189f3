"""Handles loading configuration from YAML files."""

import yaml
import os
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError
from .invoker import RetryPolicy
from .prompt_builder import DEFAULT_CORRECTION_RULES, DEFAULT_SEPARATOR
from .transport import DEFAULT_API_BASE_URL, DEFAULT_MODEL

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")

INT_FIELDS = ("batch_size", "max_attempts", "max_output_tokens", "reference_excerpt_chars")
NUMBER_FIELDS = ("batch_cooldown", "rate_limit_base_delay", "rate_limit_step_delay", "overload_delay",
                 "error_delay", "temperature", "request_timeout")
STR_FIELDS = ("model", "api_base_url", "separator", "correction_rules", "output_prefix", "log_dir", "log_file")

class ConfigLoader:
    """Loads configuration settings from a YAML file."""

    def load_config(self, config_path: str) -> dict:
        """
        Loads configuration from the specified YAML file path.

        Args:
            config_path: The path to the YAML configuration file.

        Returns:
            A dictionary containing the loaded configuration settings.
            An empty file yields an empty dictionary.

        Raises:
            FileNotFoundError: If the configuration file does not exist.
            ConfigurationError: If the file cannot be parsed as YAML or
                              if there are other reading errors.
        """
        logger.info(f"Attempting to load configuration from: {config_path}")
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found at path: {config_path}")
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not os.path.isfile(config_path):
             logger.error(f"Configuration path is not a file: {config_path}")
             raise ConfigurationError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Invalid YAML format in {config_path}: {e}") from e
        except IOError as e:
            logger.error(f"Error reading configuration file {config_path}: {e}", exc_info=True)
            raise ConfigurationError(f"Could not read configuration file {config_path}: {e}") from e

        if config is None:
            logger.warning(f"Configuration file {config_path} is empty. Using defaults.")
            return {}
        if not isinstance(config, dict):
            logger.error(f"Configuration file {config_path} did not load as a dictionary (root object).")
            raise ConfigurationError(f"Invalid YAML structure in {config_path}. Root must be a mapping (dictionary).")
        logger.info(f"Configuration loaded successfully from {config_path}")
        return config


@dataclass(frozen=True)
class CorrectionSettings:
    """Typed settings for a correction run. Delays are in seconds."""
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    api_base_url: str = DEFAULT_API_BASE_URL

    # batching
    batch_size: int = 25
    batch_cooldown: float = 4.0

    # retry policy
    max_attempts: int = 5
    rate_limit_base_delay: float = 20.0
    rate_limit_step_delay: float = 10.0
    overload_delay: float = 10.0
    error_delay: float = 5.0

    # generation
    temperature: float = 0.1
    max_output_tokens: int = 8192
    disable_safety_filters: bool = True
    request_timeout: float = 120.0

    # prompt
    reference_excerpt_chars: int = 3000  # 0 sends the whole reference
    separator: str = DEFAULT_SEPARATOR
    correction_rules: str = DEFAULT_CORRECTION_RULES

    # files / logging
    output_prefix: str = "fixed_"
    log_dir: str = "logs"
    log_file: str = "subfix.log"

    def __post_init__(self):
        self._check_types()
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {self.max_attempts}")
        for name in ("batch_cooldown", "rate_limit_base_delay", "rate_limit_step_delay",
                     "overload_delay", "error_delay", "reference_excerpt_chars"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} cannot be negative, got {getattr(self, name)}")
        if self.rate_limit_step_delay <= 0:
            raise ConfigurationError(f"rate_limit_step_delay must be positive, got {self.rate_limit_step_delay}")
        if self.request_timeout <= 0:
            raise ConfigurationError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.max_output_tokens < 1:
            raise ConfigurationError(f"max_output_tokens must be at least 1, got {self.max_output_tokens}")
        if not self.separator or not self.separator.strip():
            raise ConfigurationError("separator cannot be empty")
        if not self.correction_rules or not self.correction_rules.strip():
            raise ConfigurationError("correction_rules cannot be empty")

    def _check_types(self) -> None:
        """Rejects values of the wrong type, e.g. `batch_size: 2.5` or `separator: 5` in YAML."""
        for name in INT_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
        for name in NUMBER_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
        for name in STR_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ConfigurationError(f"{name} must be a string, got {value!r}")
        if self.api_key is not None and not isinstance(self.api_key, str):
            raise ConfigurationError("api_key must be a string")
        if not isinstance(self.disable_safety_filters, bool):
            raise ConfigurationError(f"disable_safety_filters must be true or false, got {self.disable_safety_filters!r}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CorrectionSettings":
        """Builds settings from a loaded config dictionary; unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in config.items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Ignoring unknown configuration key: '{key}'")
        try:
            return cls(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

    def with_overrides(self, **overrides: Any) -> "CorrectionSettings":
        """Returns a copy with every non-None override applied."""
        applied = {k: v for k, v in overrides.items() if v is not None}
        for key, value in applied.items():
            logger.info(f"Overriding {key} from config with CLI argument: {value if key != 'api_key' else '***'}")
        return replace(self, **applied)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            rate_limit_base_delay=self.rate_limit_base_delay,
            rate_limit_step_delay=self.rate_limit_step_delay,
            overload_delay=self.overload_delay,
            error_delay=self.error_delay,
        )


def resolve_api_key(cli_value: Optional[str], settings: CorrectionSettings) -> Optional[str]:
    """CLI value first, then the config file, then GEMINI_API_KEY / GOOGLE_API_KEY."""
    if cli_value:
        return cli_value
    if settings.api_key:
        return settings.api_key
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name)
        if value:
            logger.debug(f"Using API key from environment variable {name}")
            return value
    return None
