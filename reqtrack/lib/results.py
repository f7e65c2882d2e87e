"""
Match test run results to test links.

Test runners report paths relative to their own root, so matching is done
on normalized paths first and on bare filenames second.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from reqtrack.lib.constants import REQUIREMENTS_DIR, TEST_RESULTS_FILE
from reqtrack.lib.result_parsers import ResultParseError, parse_results
from reqtrack.lib.types import TestLink, TestResult, TestRunSummary

logger = logging.getLogger(__name__)

WHITESPACE_RE = re.compile(r'\s+')


@dataclass
class TestRunResults:
    """Results of the last imported or executed test run."""
    __test__ = False

    imported_at: str
    source_file: str
    format: str
    summary: TestRunSummary
    results: list[TestResult] = field(default_factory=list)


def normalize_path(path: str) -> str:
    """Strip leading ./, use forward slashes, lowercase."""
    if path.startswith("./"):
        path = path[2:]
    return path.replace("\\", "/").lower()


def normalize_identifier(identifier: str) -> str:
    """Trim and collapse internal whitespace."""
    return WHITESPACE_RE.sub(" ", identifier.strip())


def _filename(normalized_path: str) -> str:
    return normalized_path.rsplit("/", 1)[-1]


def match_result(link: TestLink, results: list[TestResult]) -> TestResult | None:
    """
    Find the result for a test link.

    First pass: normalized path + identifier. Second pass: filename only +
    identifier. No further fallback.
    """
    file = normalize_path(link.file)
    identifier = normalize_identifier(link.identifier)

    for result in results:
        if normalize_path(result.file) == file and normalize_identifier(result.identifier) == identifier:
            return result

    filename = _filename(file)
    for result in results:
        if (_filename(normalize_path(result.file)) == filename
                and normalize_identifier(result.identifier) == identifier):
            return result

    return None


def get_link_result_status(link: TestLink, results: list[TestResult]) -> str | None:
    """Status of the matching result, or None if the link has no result."""
    result = match_result(link, results)
    return result.status if result else None


def get_test_results_path(cwd: Path) -> Path:
    return cwd / REQUIREMENTS_DIR / TEST_RESULTS_FILE


def load_test_results(cwd: Path) -> TestRunResults | None:
    """
    Load the stored results of the last test run.

    Returns None if there is no results file or it cannot be parsed; a bad
    results file means "no results available", not an error.
    """
    path = get_test_results_path(cwd)
    if not path.exists():
        return None

    try:
        content = path.read_text()
        parsed = parse_results(content)
        mtime = path.stat().st_mtime
    except (OSError, ResultParseError) as e:
        logger.warning(f"Ignoring test results file {path}: {e}")
        return None

    return TestRunResults(
        imported_at=datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat(),
        source_file=path.name,
        format=parsed.format,
        summary=parsed.summary,
        results=parsed.results,
    )
