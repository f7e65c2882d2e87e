"""
Test file discovery and extraction.

Finds test files by glob, reads them and runs the scanner over each. Files
are independent, so they are scanned on a bounded thread pool and merged
afterwards. A file that cannot be read or scanned is logged and skipped;
one bad file never aborts the run.
"""

import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from reqtrack.lib.constants import DEFAULT_MAX_WORKERS, DEFAULT_TEST_NAMES, SKIP_DIRS
from reqtrack.lib.scanner import extract_tests_from_content
from reqtrack.lib.types import ExtractedTest

logger = logging.getLogger(__name__)

BRACE_RE = re.compile(r'\{([^{}]*)\}')


def expand_braces(pattern: str) -> list[str]:
    """Expand shell-style alternatives: "*.{ts,js}" -> ["*.ts", "*.js"]."""
    match = BRACE_RE.search(pattern)
    if not match:
        return [pattern]
    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


def find_test_files(cwd: Path, test_glob: str) -> list[Path]:
    """
    Find files matching test_glob under cwd.

    Alternatives use brace syntax, e.g. "**/*.test.{ts,js}". Files under
    node_modules, .git and .requirements are skipped.
    """
    files: set[Path] = set()
    for pattern in expand_braces(test_glob):
        for path in cwd.glob(pattern):
            if not path.is_file():
                continue
            rel_parts = path.relative_to(cwd).parts
            if any(part in SKIP_DIRS for part in rel_parts[:-1]):
                continue
            files.add(path)
    return sorted(files)


def relative_path(cwd: Path, path: Path) -> str:
    """POSIX-style path of path relative to cwd (unchanged if outside cwd)."""
    try:
        return path.relative_to(cwd).as_posix()
    except ValueError:
        return path.as_posix()


def get_file_mtimes(cwd: Path, files: list[Path]) -> dict[str, float]:
    """Map relative path -> mtime in epoch milliseconds.

    Files that vanish between discovery and stat are left out.
    """
    mtimes = {}
    for path in files:
        try:
            mtimes[relative_path(cwd, path)] = os.stat(path).st_mtime_ns / 1_000_000
        except OSError as e:
            logger.warning(f"Could not stat {path}: {e}")
    return mtimes


def extract_tests_from_file(
    path: Path,
    cwd: Path | None = None,
    names=DEFAULT_TEST_NAMES,
    hash_scope: str = "call",
) -> list[ExtractedTest]:
    """Extract all tests from one file.

    Raises:
        OSError, UnicodeDecodeError: if the file cannot be read
    """
    content = path.read_text(encoding="utf-8")
    rel = relative_path(cwd, path) if cwd else path.as_posix()
    return extract_tests_from_content(content, rel, names, hash_scope)


def extract_all_tests(
    cwd: Path,
    test_glob: str,
    names=DEFAULT_TEST_NAMES,
    hash_scope: str = "call",
    max_workers: int | None = None,
    files: list[Path] | None = None,
) -> list[ExtractedTest]:
    """
    Find all test files and extract their tests.

    Returns tests sorted by (file, identifier) so output does not depend on
    scan order.
    """
    if files is None:
        files = find_test_files(cwd, test_glob)
    if not files:
        return []

    def scan(path: Path) -> list[ExtractedTest]:
        try:
            return extract_tests_from_file(path, cwd, names, hash_scope)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not parse {path}: {e}")
            return []

    workers = max(1, min(max_workers or DEFAULT_MAX_WORKERS, len(files)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        per_file = list(pool.map(scan, files))

    tests = [test for file_tests in per_file for test in file_tests]
    tests.sort(key=lambda t: (t.file, t.identifier))
    logger.debug(f"Extracted {len(tests)} test(s) from {len(files)} file(s)")
    return tests


def find_test(
    cwd: Path,
    file: str,
    identifier: str,
    names=DEFAULT_TEST_NAMES,
    hash_scope: str = "call",
) -> ExtractedTest | None:
    """Find one test by file (relative to cwd, or absolute) and identifier."""
    path = Path(file)
    if not path.is_absolute():
        path = cwd / path
    try:
        tests = extract_tests_from_file(path, cwd, names, hash_scope)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Could not read {path}: {e}")
        return None
    for test in tests:
        if test.identifier == identifier:
            return test
    return None
