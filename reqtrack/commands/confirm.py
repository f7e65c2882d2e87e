"""
req confirm - Re-pin a linked test to its current hash.

This is how a stale requirement becomes verified again after the changed
test has been reviewed. Check never rewrites hashes on its own.
"""

import sys
from pathlib import Path

from reqtrack.commands.link import load_or_report, parse_test_spec
from reqtrack.lib.config import Config
from reqtrack.lib.extract import find_test
from reqtrack.lib.store import save_requirement


def cmd_confirm(args, cwd: Path, config: Config) -> int:
    """Update the stored hash of a linked test to match the code."""
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
        print(f"Link it first with: req link {requirement.path} {args.test}", file=sys.stderr)
        return 1

    test = find_test(cwd, file, identifier, config.test_names, config.hash_scope)
    if test is None:
        print(f'ERROR: Could not find test "{identifier}" in file {file}.', file=sys.stderr)
        return 1

    if test.hash == link.hash:
        print("Test already confirmed with current hash.")
        return 0

    link.hash = test.hash
    save_requirement(cwd, requirement)
    print(f"Re-confirmed {file}:{identifier} for {requirement.path} (test was modified)")
    return 0
