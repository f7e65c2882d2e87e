"""
req run - Run the test suite and store its results.

Ctrl+C cancels the run; a cancelled run leaves the previous results in
place.
"""

import sys
import threading
from pathlib import Path

from reqtrack.lib.config import Config
from reqtrack.lib.test_runner import TestRun


def _echo(stream: str, line: str) -> None:
    out = sys.stderr if stream == "stderr" else sys.stdout
    out.write(line)
    out.flush()


def print_summary(result) -> None:
    summary = result.summary
    print("\n" + "-" * 50)
    print("Test Results:")
    print(f"  Total:   {summary.total}")
    print(f"  Passed:  {summary.passed}")
    print(f"  Failed:  {summary.failed}")
    if summary.skipped:
        print(f"  Skipped: {summary.skipped}")
    print("-" * 50)
    if result.exit_code == 0:
        print("All tests passed")
    else:
        print("Some tests failed")


def cmd_run(args, cwd: Path, config: Config) -> int:
    try:
        run = TestRun(cwd, config.test_runner, args.file, args.identifier, on_output=_echo)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if args.identifier:
        where = f" in {args.file}" if args.file else ""
        print(f"Running test: {args.identifier}{where}...\n")
    elif args.file:
        print(f"Running tests in {args.file}...\n")
    else:
        print("Running all tests...\n")

    outcome = {}

    def target():
        try:
            outcome["result"] = run.run()
        except OSError as e:
            outcome["error"] = e

    worker = threading.Thread(target=target, daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        run.cancel()
        worker.join()

    if "error" in outcome:
        print(f"ERROR: Could not start test runner: {outcome['error']}", file=sys.stderr)
        return 1

    result = outcome["result"]
    if result.cancelled:
        print("\nTest run cancelled; previous results kept.")
        return 130

    print_summary(result)
    return 0 if result.exit_code == 0 else 1
