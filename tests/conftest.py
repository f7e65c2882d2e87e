"""Shared fixtures for reqtrack tests."""

import pytest
import yaml

from reqtrack.lib.config import Config, save_config


@pytest.fixture
def project(tmp_path):
    """An initialized project root with default config."""
    save_config(tmp_path, Config())
    return tmp_path


@pytest.fixture
def write_file():
    """Write a file under a root, creating parent dirs."""
    def _write(root, rel, content):
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path
    return _write


@pytest.fixture
def write_requirement():
    """Write a REQ_*.yml under root/.requirements."""
    def _write(root, rel, data):
        path = root / ".requirements" / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path
    return _write
