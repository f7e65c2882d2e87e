"""
req import-results - Store results of an external test run.

JUnit XML is copied as-is; JSON results are converted to JUnit XML so
.requirements/test-results.xml always holds one format.
"""

import sys
from pathlib import Path

from reqtrack.lib.config import Config
from reqtrack.lib.result_parsers import ResultParseError, parse_results, to_junit_xml
from reqtrack.lib.results import get_test_results_path


def cmd_import_results(args, cwd: Path, config: Config) -> int:
    source = Path(args.file)
    if not source.is_absolute():
        source = cwd / source

    try:
        content = source.read_text()
    except FileNotFoundError:
        print(f"ERROR: File not found: {args.file}", file=sys.stderr)
        return 1

    try:
        parsed = parse_results(content, args.format)
    except ResultParseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print("Most test runners can output JUnit XML (e.g. 'bun test --reporter=junit')", file=sys.stderr)
        return 1

    dest = get_test_results_path(cwd)
    dest.parent.mkdir(parents=True, exist_ok=True)
    if parsed.format == "junit-xml":
        dest.write_text(content)
    else:
        dest.write_text(to_junit_xml(parsed.results))

    summary = parsed.summary
    print(f"Imported {summary.total} test results from {args.file} ({parsed.format})")
    print(f"  Passed: {summary.passed}")
    print(f"  Failed: {summary.failed}")
    print(f"  Skipped: {summary.skipped}")
    print(f"\nResults saved to {dest.relative_to(cwd)}")
    return 0
