"""
Storage layer for the folder-based requirements store.

Each requirement is a YAML file named REQ_<name>.yml anywhere under
.requirements/. The ignore list lives in .requirements/ignored-tests.yml.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from reqtrack.lib import validate
from reqtrack.lib.config import get_requirements_dir
from reqtrack.lib.constants import IGNORED_TESTS_FILE, REQUIREMENT_FILE_PATTERN
from reqtrack.lib.types import IgnoredTest, Requirement

logger = logging.getLogger(__name__)


class RequirementValidationError(Exception):
    """A requirement file exists but is invalid."""

    def __init__(self, req_path: str, message: str):
        self.req_path = req_path
        super().__init__(f"{req_path}: {message}")


@dataclass
class LoadRequirementsResult:
    requirements: list[Requirement] = field(default_factory=list)
    errors: list[RequirementValidationError] = field(default_factory=list)


def is_valid_requirement_path(req_path: str) -> bool:
    """True if the filename part matches REQ_*.yml."""
    return bool(REQUIREMENT_FILE_PATTERN.match(req_path.rsplit("/", 1)[-1]))


def requirement_exists(cwd: Path, req_path: str) -> bool:
    return (get_requirements_dir(cwd) / req_path).is_file()


def load_requirement(cwd: Path, req_path: str) -> Requirement | None:
    """
    Load one requirement by path relative to the requirements dir.

    Returns None if the path is not a requirement file or doesn't exist.

    Raises:
        RequirementValidationError: if the file is not valid YAML or fails
            the requirement schema
    """
    if not is_valid_requirement_path(req_path):
        return None

    full_path = get_requirements_dir(cwd) / req_path
    if not full_path.is_file():
        return None

    try:
        data = yaml.safe_load(full_path.read_text())
    except yaml.YAMLError as e:
        raise RequirementValidationError(req_path, f"Invalid YAML: {e}") from None

    if not isinstance(data, dict):
        raise RequirementValidationError(req_path, "Expected a mapping")

    try:
        validate.validate(data, "requirement")
    except validate.ValidationError as e:
        if e.path == "status" or "'status'" in str(e):
            raise RequirementValidationError(
                req_path, 'Missing or invalid "status" field. Must be "planned" or "done".'
            ) from None
        raise RequirementValidationError(req_path, str(e)) from None

    return Requirement.from_dict(req_path, data)


def save_requirement(cwd: Path, requirement: Requirement) -> None:
    """
    Write a requirement back to its YAML file.

    Raises:
        ValueError: if the path is not a valid requirement path
        ValidationError: if the data doesn't match the schema
    """
    if not is_valid_requirement_path(requirement.path):
        raise ValueError(f"Invalid requirement path: {requirement.path}")

    full_path = get_requirements_dir(cwd) / requirement.path
    data = requirement.to_dict()
    validate.validate_before_write(data, "requirement", full_path)

    full_path.parent.mkdir(parents=True, exist_ok=True)
    full_path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True))


def load_all_requirements(cwd: Path) -> LoadRequirementsResult:
    """Load every REQ_*.yml under the requirements dir, sorted by path.

    Invalid files are collected in errors rather than raised.
    """
    req_dir = get_requirements_dir(cwd)
    result = LoadRequirementsResult()
    if not req_dir.exists():
        return result

    for file in req_dir.rglob("REQ_*.yml"):
        req_path = file.relative_to(req_dir).as_posix()
        try:
            req = load_requirement(cwd, req_path)
        except RequirementValidationError as e:
            result.errors.append(e)
            continue
        if req:
            result.requirements.append(req)

    result.requirements.sort(key=lambda r: r.path)
    result.errors.sort(key=lambda e: e.req_path)
    return result


def load_requirements_in_path(cwd: Path, path_filter: str) -> LoadRequirementsResult:
    """
    Load requirements whose path starts with path_filter.

    path_filter can be a folder ("auth/", "auth/session/") or a file
    ("auth/REQ_login.yml").
    """
    loaded = load_all_requirements(cwd)
    return LoadRequirementsResult(
        requirements=[r for r in loaded.requirements if r.path.startswith(path_filter)],
        errors=[e for e in loaded.errors if e.req_path.startswith(path_filter)],
    )


def get_ignored_tests_path(cwd: Path) -> Path:
    return get_requirements_dir(cwd) / IGNORED_TESTS_FILE


def load_ignored_tests(cwd: Path) -> list[IgnoredTest]:
    """Load the ignore list; a missing or invalid file is an empty list."""
    path = get_ignored_tests_path(cwd)
    if not path.exists():
        return []
    try:
        data = yaml.safe_load(path.read_text()) or {"tests": []}
        validate.validate(data, "ignored_tests")
    except (OSError, yaml.YAMLError, validate.ValidationError) as e:
        logger.warning(f"Ignoring unreadable ignore list {path}: {e}")
        return []
    return [IgnoredTest.from_dict(t) for t in data["tests"]]


def save_ignored_tests(cwd: Path, tests: list[IgnoredTest]) -> None:
    path = get_ignored_tests_path(cwd)
    data = {"tests": [t.to_dict() for t in tests]}
    validate.validate_before_write(data, "ignored_tests", path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True))
