"""Configuration management for typo.

Supports loading configuration from:
1. Default values
2. Config file (.typo.yaml in the working directory, or --config)
3. Environment variables

Configuration precedence: command line > env vars > config file > defaults
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .frontend.expand import parse_cfgspec
from .logging import LOG_LEVELS, get_logger

logger = get_logger("config")

CONFIG_FILE_NAME = ".typo.yaml"

# Default values
DEFAULT_PROGRAM_NAME = "typo"
DEFAULT_LOG_LEVEL = "WARNING"

# Security: limit config file size
MAX_CONFIG_SIZE = 1024 * 1024  # 1MB


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class FrontEndConfig:
    """Settings passed through to the front end."""

    cfg: list[str] = field(default_factory=list)
    search_paths: list[str] = field(default_factory=list)
    sysroot: str | None = None

    def validate(self) -> None:
        """Validate configuration.

        Raises ConfigError if validation fails.
        """
        for spec in self.cfg:
            try:
                parse_cfgspec(spec)
            except ValueError as e:
                raise ConfigError(str(e)) from e

        for path in self.search_paths:
            if not path:
                raise ConfigError("search_paths entries must not be empty")

        if self.sysroot is not None and not Path(self.sysroot).is_dir():
            logger.warning("sysroot %s is not a directory", self.sysroot)


@dataclass
class TagsConfig:
    """Tag file settings."""

    program_name: str = DEFAULT_PROGRAM_NAME
    append: bool = False

    def validate(self) -> None:
        """Validate configuration.

        Raises ConfigError if validation fails.
        """
        if not self.program_name:
            raise ConfigError("program_name must not be empty")

        if any(c in self.program_name for c in "\t\n\r"):
            raise ConfigError(f"program_name must be a single field, got {self.program_name!r}")


@dataclass
class LoggingConfig:
    """Diagnostic output settings."""

    level: str = DEFAULT_LOG_LEVEL
    json: bool = False

    @property
    def level_number(self) -> int:
        return logging.getLevelName(self.level.upper())

    def validate(self) -> None:
        if self.level.upper() not in LOG_LEVELS:
            raise ConfigError(f"level must be one of {', '.join(LOG_LEVELS)}, got {self.level}")


@dataclass
class Config:
    """Main configuration container."""

    frontend: FrontEndConfig = field(default_factory=FrontEndConfig)
    tags: TagsConfig = field(default_factory=TagsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Validate all configuration."""
        self.frontend.validate()
        self.tags.validate()
        self.logging.validate()


def load_config(config_path: Path | None = None, search_dir: Path | None = None) -> Config:
    """
    Load configuration from file and environment.

    Args:
        config_path: Explicit path to config file (optional)
        search_dir: Directory to look for .typo.yaml (default: cwd)

    Returns:
        Validated Config object
    """
    config = Config()

    # Determine config file path
    if config_path is None:
        config_path = (search_dir or Path.cwd()) / CONFIG_FILE_NAME

    # Load from file if exists
    if config_path.exists():
        try:
            config = _load_config_file(config_path)
            logger.debug("Loaded config from %s", config_path)
        except (ConfigError, OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Failed to load config from %s: %s", config_path, e)
            config = Config()

    # Override with environment variables
    config = _apply_env_overrides(config)

    # Validate
    config.validate()

    return config


def _string_list(data: dict, key: str) -> list[str]:
    value = data.get(key, [])
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list")
    return [str(v) for v in value]


def _section(data: dict, key: str) -> dict:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return section


def _load_config_file(config_path: Path) -> Config:
    """Load configuration from YAML file."""
    size = config_path.stat().st_size
    if size > MAX_CONFIG_SIZE:
        raise ConfigError(f"Config file too large: {size} > {MAX_CONFIG_SIZE}")

    with open(config_path, encoding="utf-8") as f:
        # Use safe_load to prevent code execution
        data = yaml.safe_load(f)

    if data is None:
        return Config()

    if not isinstance(data, dict):
        raise ConfigError("Config file must be a YAML mapping")

    # Validate keys
    allowed_keys = {"frontend", "tags", "logging"}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        logger.warning("Unknown config keys ignored: %s", unknown_keys)

    frontend_data = _section(data, "frontend")
    sysroot = frontend_data.get("sysroot")
    frontend = FrontEndConfig(
        cfg=_string_list(frontend_data, "cfg"),
        search_paths=_string_list(frontend_data, "search_paths"),
        sysroot=str(sysroot) if sysroot is not None else None,
    )

    tags_data = _section(data, "tags")
    tags = TagsConfig(
        program_name=str(tags_data.get("program_name", DEFAULT_PROGRAM_NAME)),
        append=bool(tags_data.get("append", False)),
    )

    logging_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=str(logging_data.get("level", DEFAULT_LOG_LEVEL)),
        json=bool(logging_data.get("json", False)),
    )

    return Config(frontend=frontend, tags=tags, logging=logging_config)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # TYPO_SYSROOT overrides config file
    env_sysroot = os.environ.get("TYPO_SYSROOT")
    if env_sysroot:
        config.frontend.sysroot = env_sysroot
        logger.debug("Using sysroot from env: %s", env_sysroot)

    # TYPO_CFG adds comma-separated cfg specs
    env_cfg = os.environ.get("TYPO_CFG")
    if env_cfg:
        config.frontend.cfg.extend(s.strip() for s in env_cfg.split(",") if s.strip())

    env_program = os.environ.get("TYPO_PROGRAM_NAME")
    if env_program:
        config.tags.program_name = env_program

    env_level = os.environ.get("TYPO_LOG_LEVEL")
    if env_level:
        if env_level.upper() in LOG_LEVELS:
            config.logging.level = env_level.upper()
        else:
            logger.warning("Invalid TYPO_LOG_LEVEL: %s", env_level)

    return config


def save_config(config: Config, config_path: Path) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Configuration to save
        config_path: Path to write config file
    """
    data = {
        "frontend": {
            "cfg": list(config.frontend.cfg),
            "search_paths": list(config.frontend.search_paths),
            "sysroot": config.frontend.sysroot,
        },
        "tags": {
            "program_name": config.tags.program_name,
            "append": config.tags.append,
        },
        "logging": {
            "level": config.logging.level,
            "json": config.logging.json,
        },
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    logger.info("Saved config to %s", config_path)
