"""
req add - Create a requirement file.

The Gherkin text is parsed and stored in canonical form; text that does not
parse (or has steps out of order) is rejected and nothing is written.
"""

import sys
from pathlib import Path

from reqtrack.lib.config import Config
from reqtrack.lib.gherkin import parse_and_format
from reqtrack.lib.store import is_valid_requirement_path, requirement_exists, save_requirement
from reqtrack.lib.types import Requirement


def parse_tags(value: str | None) -> list[str]:
    if not value:
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def cmd_add(args, cwd: Path, config: Config) -> int:
    """Create args.path under .requirements/ from --gherkin."""
    req_path = Path(args.path)
    if (not is_valid_requirement_path(args.path)
            or req_path.is_absolute() or ".." in req_path.parts):
        print("ERROR: Invalid requirement path. Must be a relative path ending in REQ_*.yml", file=sys.stderr)
        print("Example: auth/REQ_login.yml", file=sys.stderr)
        return 1

    result = parse_and_format(args.gherkin)
    if not result.ok:
        print(f"ERROR: Invalid Gherkin: {result.error}", file=sys.stderr)
        print("Example: Given a user is logged in When they click logout Then they see the login page",
              file=sys.stderr)
        return 1

    if requirement_exists(cwd, args.path):
        if not args.force:
            print(f"ERROR: Requirement already exists: {args.path}", file=sys.stderr)
            print("Use --force to overwrite.", file=sys.stderr)
            return 1
        print("Overwriting existing requirement...")

    requirement = Requirement(
        path=req_path.as_posix(),
        gherkin=result.formatted,
        status=args.status,
        priority=args.priority,
        tags=parse_tags(args.tags),
    )
    save_requirement(cwd, requirement)

    print(f"Created requirement: {requirement.path}")
    if requirement.priority:
        print(f"  Priority: {requirement.priority}")
    if requirement.tags:
        print(f"  Tags: {', '.join(requirement.tags)}")
    return 0
