"""
req link / req unlink - Attach a test to a requirement or detach it.

A link pins the hash of the test body at link time; later edits to the
test make the requirement stale until the link is confirmed again.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from reqtrack.lib.config import Config
from reqtrack.lib.extract import find_test
from reqtrack.lib.store import RequirementValidationError, load_requirement, save_requirement
from reqtrack.lib.types import Requirement, TestLink, split_test_key


def load_or_report(cwd: Path, req_path: str) -> Requirement | None:
    try:
        requirement = load_requirement(cwd, req_path)
    except RequirementValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return None
    if requirement is None:
        print(f"ERROR: Requirement not found: {req_path}", file=sys.stderr)
    return requirement


def normalize_test_file(cwd: Path, file: str) -> str | None:
    """Path of file relative to cwd in POSIX form, or None if outside cwd.

    Accepts "./src/a.test.ts", "src/../src/a.test.ts" and absolute paths so
    the stored key matches what extraction reports.
    """
    path = Path(file)
    if not path.is_absolute():
        path = cwd / path
    root = Path(os.path.normpath(cwd))
    try:
        return Path(os.path.normpath(path)).relative_to(root).as_posix()
    except ValueError:
        return None


def parse_test_spec(test_spec: str, cwd: Path) -> tuple[str, str] | None:
    try:
        file, identifier = split_test_key(test_spec)
    except ValueError:
        print("ERROR: Invalid test spec. Use format: file:identifier", file=sys.stderr)
        print("Example: src/auth.test.ts:validates login", file=sys.stderr)
        return None
    normalized = normalize_test_file(cwd, file)
    if normalized is None:
        print(f"ERROR: Test file is outside the project root: {file}", file=sys.stderr)
        return None
    return normalized, identifier


def cmd_link(args, cwd: Path, config: Config) -> int:
    """Link a test to a requirement, pinning its current hash."""
    spec = parse_test_spec(args.test, cwd)
    if spec is None:
        return 1
    file, identifier = spec

    requirement = load_or_report(cwd, args.requirement)
    if requirement is None:
        return 1

    if requirement.find_test(file, identifier):
        print("Test is already linked to this requirement.")
        return 0

    test = find_test(cwd, file, identifier, config.test_names, config.hash_scope)
    if test is None:
        print(f"ERROR: Test not found in codebase: {args.test}", file=sys.stderr)
        print("Make sure the test exists and the file path is relative to the project root.", file=sys.stderr)
        return 1

    requirement.tests.append(TestLink(
        file=test.file,
        identifier=test.identifier,
        hash=test.hash,
        linked_at=datetime.now(timezone.utc).isoformat(),
    ))
    save_requirement(cwd, requirement)

    print(f"Linked: {file}:{identifier}")
    print(f"Requirement now has {len(requirement.tests)} test(s) linked.")
    return 0


def cmd_unlink(args, cwd: Path, config: Config) -> int:
    """Remove a test link from a requirement."""
    spec = parse_test_spec(args.test, cwd)
    if spec is None:
        return 1
    file, identifier = spec

    requirement = load_or_report(cwd, args.requirement)
    if requirement is None:
        return 1

    link = requirement.find_test(file, identifier)
    if link is None:
        print(f"ERROR: Test {args.test} is not linked to {requirement.path}", file=sys.stderr)
        return 1

    requirement.tests.remove(link)
    save_requirement(cwd, requirement)

    print(f"Unlinked: {file}:{identifier}")
    print(f"Requirement now has {len(requirement.tests)} test(s) linked.")
    return 0
