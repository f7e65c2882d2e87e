"""
req validate - Check and format Gherkin text.
"""

import sys

from reqtrack.lib.gherkin import parse_and_format, parse_gherkin, validate_structure


def cmd_validate(args) -> int:
    """Print the canonical form of the Gherkin text, or why it is invalid."""
    result = parse_and_format(args.text)
    if not result.ok:
        print(f"ERROR: {result.error}", file=sys.stderr)
        return 1

    # parse_and_format already succeeded, so this only carries warnings
    validation = validate_structure(parse_gherkin(args.text).steps)
    for warning in validation.warnings:
        print(f"WARNING: {warning}", file=sys.stderr)

    print(result.formatted)
    return 0
