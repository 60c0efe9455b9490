"""Configuration file location and loading helpers."""

import os
from pathlib import Path
from typing import Optional, Union

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

REPO_ROOT = Path(__file__).resolve().parent.parent.parent


def get_environment() -> str:
    """Get the current environment name.

    Returns:
        Environment name from AGRITWIN_ENV, defaults to 'agritwin'.
    """
    return os.getenv("AGRITWIN_ENV", "agritwin")


def get_config_path(
    config_name: Optional[str] = None,
    config_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """Get path to a configuration file.

    Args:
        config_name: Name of config file (without path). If None, uses
            config-{environment}.yaml based on AGRITWIN_ENV.
        config_dir: Directory containing config files. If None, uses
            AGRITWIN_CONFIG_DIR or the 'config' directory at the repo root.

    Returns:
        Path to the configuration file.
    """
    if config_dir is None:
        config_dir = os.getenv("AGRITWIN_CONFIG_DIR") or REPO_ROOT / "config"

    if config_name is None:
        config_name = f"config-{get_environment()}.yaml"

    return Path(config_dir) / config_name


def load_yaml_config(
    config_path: Optional[Union[str, Path]] = None,
    load_env: bool = True,
) -> dict:
    """Load a YAML configuration file.

    Args:
        config_path: Path to config file. If None, uses get_config_path().
        load_env: Whether to load a .env file first.

    Returns:
        Configuration dictionary.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    if load_env:
        load_dotenv()

    config_path = Path(config_path) if config_path else get_config_path()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    return data
