"""
req ignore-test / req unignore-test - Manage tests that need no requirement.

Ignored tests are left out of orphan detection.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

from reqtrack.commands.link import parse_test_spec
from reqtrack.lib.config import Config
from reqtrack.lib.extract import find_test
from reqtrack.lib.store import load_ignored_tests, save_ignored_tests
from reqtrack.lib.types import IgnoredTest


def cmd_ignore_test(args, cwd: Path, config: Config) -> int:
    spec = parse_test_spec(args.test, cwd)
    if spec is None:
        return 1
    file, identifier = spec

    test = find_test(cwd, file, identifier, config.test_names, config.hash_scope)
    if test is None:
        print(f"ERROR: Test not found in codebase: {args.test}", file=sys.stderr)
        print("Make sure the test exists and the file path is relative to the project root.", file=sys.stderr)
        return 1

    ignored = load_ignored_tests(cwd)
    if any(t.file == file and t.identifier == identifier for t in ignored):
        print("Test is already in the ignored list.")
        return 0

    ignored.append(IgnoredTest(
        file=test.file,
        identifier=test.identifier,
        reason=args.reason,
        ignored_at=datetime.now(timezone.utc).isoformat(),
    ))
    save_ignored_tests(cwd, ignored)

    print(f"Ignored test: {test.key}")
    print(f"  Reason: {args.reason}")
    print(f"\nTotal ignored tests: {len(ignored)}")
    return 0


def cmd_unignore_test(args, cwd: Path, config: Config) -> int:
    spec = parse_test_spec(args.test, cwd)
    if spec is None:
        return 1
    file, identifier = spec

    ignored = load_ignored_tests(cwd)
    remaining = [t for t in ignored if not (t.file == file and t.identifier == identifier)]
    if len(remaining) == len(ignored):
        print(f"ERROR: Test is not in the ignored list: {args.test}", file=sys.stderr)
        return 1

    save_ignored_tests(cwd, remaining)
    print(f"Unignored test: {args.test}")
    print(f"\nTotal ignored tests: {len(remaining)}")
    return 0
