"""Project configuration for lokit (``.lokit.yaml`` plus environment overrides)."""
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import jsonschema
import yaml
from dotenv import load_dotenv

from lokit.errors import ConfigurationError
from lokit.formats import SUPPORTED_TYPES
from lokit.langmeta import android_locale, underscore_locale
from lokit.logging_config import setup_logger

DEFAULT_CONFIG_FILE_NAME = ".lokit.yaml"
CONFIG_FILE_ENV = "LOKIT_CONFIG_FILE"
DRY_RUN_ENV = "LOKIT_DRY_RUN"
MAX_CONCURRENT_API_CALLS_ENV = "LOKIT_MAX_CONCURRENT_API_CALLS"

DEFAULT_LOG_FILE_PATH = "logs/lokit.log"
DEFAULT_SKIPPED_REPORT_PATH = "logs/skipped_files_report.log"

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "source_lang": {"type": "string", "minLength": 1},
        "languages": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "ledger_dir": {"type": "string"},
        "dry_run": {"type": "boolean"},
        "translate_fuzzy": {"type": "boolean"},
        "max_concurrent_api_calls": {"type": "integer", "minimum": 1},
        "rate_limit": {
            "type": "object",
            "properties": {
                "max_rate": {"type": "number", "exclusiveMinimum": 0},
                "time_period": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
        "skipped_report_path": {"type": "string"},
        "logging": {
            "type": "object",
            "properties": {
                "log_level": {"type": "string"},
                "log_file_path": {"type": ["string", "null"]},
                "log_to_console": {"type": "boolean"},
            },
        },
        "targets": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "enum": SUPPORTED_TYPES},
                    "source": {"type": "string", "minLength": 1},
                    "path": {"type": "string", "minLength": 1},
                    "languages": {"type": "array", "items": {"type": "string", "minLength": 1}},
                },
                "required": ["name", "type", "source", "path"],
            },
        },
    },
}


@dataclass
class TargetConfig:
    """One set of resource files: a source file and its per-language copies."""
    name: str
    type: str
    source: str
    path: str
    languages: List[str] = field(default_factory=list)

    def target_path(self, language: str) -> str:
        """Expand the ``{lang}``, ``{lang_underscore}`` and ``{android_lang}`` placeholders."""
        return (self.path
                .replace("{lang}", language)
                .replace("{lang_underscore}", underscore_locale(language))
                .replace("{android_lang}", android_locale(language)))


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    project_root: str
    ledger_dir: str
    skipped_report_path: str

    # Languages
    source_lang: str
    languages: List[str]

    # Processing settings
    dry_run: bool
    max_concurrent_api_calls: int
    rate_limit_max_rate: float
    rate_limit_time_period: float

    targets: List[TargetConfig]

    # gettext entries marked fuzzy are sent for translation again
    translate_fuzzy: bool = True

    # Logging
    log_level: str = "INFO"
    log_file_path: Optional[str] = DEFAULT_LOG_FILE_PATH
    log_to_console: bool = True

    def languages_for(self, target: TargetConfig) -> List[str]:
        """Target languages of ``target``; the source language is never a target."""
        languages = target.languages or self.languages
        return [lang for lang in languages if lang != self.source_lang]

    def resolve_path(self, path: str) -> str:
        if os.path.isabs(path):
            return path
        return os.path.join(self.project_root, path)


def _load_dotenv_files(project_root: str) -> Optional[str]:
    """Load a .env file from the project root or its docker/ directory."""
    for dotenv_path in (os.path.join(project_root, '.env'),
                        os.path.join(project_root, 'docker', '.env')):
        if os.path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            return dotenv_path
    return None


def _config_file_path(project_root: str) -> str:
    config_file = os.environ.get(CONFIG_FILE_ENV, os.path.join(project_root, DEFAULT_CONFIG_FILE_NAME))
    if not os.path.isabs(config_file):
        config_file = os.path.join(project_root, config_file)
    return config_file


def _load_yaml_config(config_file: str) -> Dict[str, Any]:
    """
    Load and validate the YAML configuration file.

    A missing or empty file yields an empty configuration. Malformed YAML or
    content that does not match ``CONFIG_SCHEMA`` raises ConfigurationError.
    """
    if not os.path.exists(config_file):
        print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
              file=sys.stderr)
        print(f"Tip: Create a {DEFAULT_CONFIG_FILE_NAME} file or set the {CONFIG_FILE_ENV} environment variable.",
              file=sys.stderr)
        return {}

    try:
        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file '{config_file}': {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Could not read configuration file '{config_file}': {e}") from e

    if loaded_config is None:
        print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
              file=sys.stderr)
        return {}
    if not isinstance(loaded_config, dict):
        raise ConfigurationError(f"Configuration file '{config_file}' must contain a YAML mapping.")

    try:
        jsonschema.validate(instance=loaded_config, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        location = ".".join(str(part) for part in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Invalid configuration in '{config_file}' at {location}: {e.message}") from e
    return loaded_config


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got '{value}'") from e
    if parsed < 1:
        raise ConfigurationError(f"{name} must be at least 1, got {parsed}")
    return parsed


def _build_targets(entries: List[Dict[str, Any]]) -> List[TargetConfig]:
    targets = []
    seen = set()
    for entry in entries:
        if entry['name'] in seen:
            raise ConfigurationError(f"Duplicate target name '{entry['name']}'")
        seen.add(entry['name'])
        targets.append(TargetConfig(
            name=entry['name'],
            type=entry['type'],
            source=entry['source'],
            path=entry['path'],
            languages=list(entry.get('languages', [])),
        ))
    return targets


def _setup_logger_from_config(app_config: AppConfig) -> logging.Logger:
    log_file_path = app_config.log_file_path
    if log_file_path:
        log_file_path = app_config.resolve_path(log_file_path)
    return setup_logger(app_config.log_level, log_file_path, app_config.log_to_console)


def load_app_config(project_root: Optional[str] = None, configure_logging: bool = True) -> AppConfig:
    """
    Load application configuration from the YAML file and environment variables.

    Args:
        project_root: Directory holding ``.lokit.yaml``; defaults to the working directory.
        configure_logging: Whether to set up the ``lokit`` logger from the
            ``logging`` section.

    Returns:
        AppConfig: The loaded application configuration.

    Raises:
        ConfigurationError: If the configuration file or an override is invalid.
    """
    project_root = os.path.abspath(project_root or os.getcwd())
    dotenv_path = _load_dotenv_files(project_root)

    config_file = _config_file_path(project_root)
    config = _load_yaml_config(config_file)

    log_config = config.get('logging', {})
    rate_limit = config.get('rate_limit', {})

    app_config = AppConfig(
        project_root=project_root,
        ledger_dir=config.get('ledger_dir', '.'),
        skipped_report_path=config.get('skipped_report_path', DEFAULT_SKIPPED_REPORT_PATH),
        source_lang=config.get('source_lang', 'en'),
        languages=list(config.get('languages', [])),
        dry_run=_env_flag(DRY_RUN_ENV, config.get('dry_run', False)),
        max_concurrent_api_calls=_env_int(MAX_CONCURRENT_API_CALLS_ENV,
                                          config.get('max_concurrent_api_calls', 1)),
        rate_limit_max_rate=float(rate_limit.get('max_rate', 60)),
        rate_limit_time_period=float(rate_limit.get('time_period', 60)),
        targets=_build_targets(config.get('targets', [])),
        translate_fuzzy=config.get('translate_fuzzy', True),
        log_level=log_config.get('log_level', 'INFO').upper(),
        log_file_path=log_config.get('log_file_path', DEFAULT_LOG_FILE_PATH),
        log_to_console=log_config.get('log_to_console', True),
    )

    if configure_logging:
        logger = _setup_logger_from_config(app_config)
        if dotenv_path:
            logger.info("Loaded environment variables from: %s", dotenv_path)
        else:
            logger.info("No .env file found in '%s'. Relying on system environment variables if any.",
                        project_root)
        logger.info("Loaded configuration with %d target(s) from '%s'.", len(app_config.targets), config_file)
    return app_config
