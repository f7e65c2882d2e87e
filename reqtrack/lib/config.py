"""
Configuration loader for reqtrack.

Loads .requirements/config.yml. Missing keys take defaults; invalid values
are logged and replaced by defaults so a typo never breaks a check.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from reqtrack.lib import validate
from reqtrack.lib.constants import (
    CONFIG_FILE,
    DEFAULT_MAX_WORKERS,
    DEFAULT_TEST_GLOB,
    DEFAULT_TEST_NAMES,
    DEFAULT_TEST_RUNNER,
    REQUIREMENTS_DIR,
)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration missing or unreadable."""
    pass


@dataclass
class Config:
    """Project configuration from .requirements/config.yml"""
    test_glob: str = DEFAULT_TEST_GLOB
    test_runner: str = DEFAULT_TEST_RUNNER  # Command that runs the test suite
    test_names: tuple[str, ...] = DEFAULT_TEST_NAMES  # Test declaration functions
    hash_scope: str = "call"  # "call" or "callback"
    max_workers: int = DEFAULT_MAX_WORKERS  # Scanner thread pool size
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "testGlob": self.test_glob,
            "testRunner": self.test_runner,
            "testNames": list(self.test_names),
            "hashScope": self.hash_scope,
            "maxWorkers": self.max_workers,
        })
        return data


_FIELDS = {
    "testGlob": "test_glob",
    "testRunner": "test_runner",
    "testNames": "test_names",
    "hashScope": "hash_scope",
    "maxWorkers": "max_workers",
}


def get_requirements_dir(cwd: Path) -> Path:
    return cwd / REQUIREMENTS_DIR


def get_config_path(cwd: Path) -> Path:
    return get_requirements_dir(cwd) / CONFIG_FILE


def config_exists(cwd: Path) -> bool:
    return get_config_path(cwd).exists()


def parse_config(data: dict | None) -> Config:
    """Build a Config from decoded YAML, falling back per key on bad values."""
    config = Config()
    if not data:
        return config
    if not isinstance(data, dict):
        logger.warning("Config is not a mapping, using defaults")
        return config

    for key, value in data.items():
        attr = _FIELDS.get(key)
        if attr is None:
            config.extra[key] = value
            continue
        if not validate.is_valid({key: value}, "config"):
            logger.warning(f"Invalid {key} {value!r} in config, using default {getattr(config, attr)!r}")
            continue
        if attr == "test_names":
            value = tuple(value)
        setattr(config, attr, value)

    return config


def load_config(cwd: Path) -> Config:
    """
    Load config.yml for the project at cwd.

    Raises:
        ConfigError: if the project is not initialized or the file is not YAML
    """
    path = get_config_path(cwd)
    if not path.exists():
        raise ConfigError(f"Not initialized: {path} not found. Run 'req init' first.")
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read {path}: {e}") from None
    return parse_config(data)


def save_config(cwd: Path, config: Config) -> None:
    path = get_config_path(cwd)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config.to_dict(), sort_keys=False))
