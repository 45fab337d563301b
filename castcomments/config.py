"""Configuration management."""

from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import ValidationError

from castcomments.api.exceptions import ConfigurationError
from castcomments.api.models import Credentials
from castcomments.models import Config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file.

    Raises:
        ConfigurationError: If the file is unreadable, not a mapping, or holds invalid values
    """
    if config_path is None:
        config_path = Path("config.yaml")

    if not config_path.exists():
        # Return default config
        return Config()

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read {config_path}: {e}")

    if data is None:
        return Config()

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    try:
        return Config(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}")


def read_secret_file(path: Union[str, Path]) -> str:
    """Read a newline-terminated value, dropping the trailing newline.

    Raises:
        ConfigurationError: If the file cannot be read
    """
    try:
        with open(path, encoding="utf-8", newline="") as f:
            value = f.read()
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}")

    if value.endswith("\r\n"):
        return value[:-2]
    if value.endswith("\n"):
        return value[:-1]
    return value


def load_credentials(config: Config) -> Credentials:
    """Load the OAuth2 client id and secret from their files."""
    return Credentials(
        client_id=read_secret_file(config.client_id_file),
        client_secret=read_secret_file(config.client_secret_file),
    )
