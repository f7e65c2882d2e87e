"""
Parse test run results into TestResult records.

Supports:
- JUnit XML (bun --reporter=junit, jest-junit, vitest, pytest --junitxml)
- JSON: a list of {file, identifier, status, duration?, errorMessage?}
  objects, or an object with such a list under "results"

Format is auto-detected from content unless given explicitly.
"""

import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from reqtrack.lib import validate
from reqtrack.lib.types import TestResult, TestRunSummary

logger = logging.getLogger(__name__)

FORMATS = ("junit-xml", "json")


class ResultParseError(Exception):
    """Test results could not be parsed."""
    pass


@dataclass
class ParsedResults:
    format: str
    results: list[TestResult]
    summary: TestRunSummary


def detect_format(content: str) -> str | None:
    """Guess the results format from content, or None."""
    trimmed = content.strip()
    if trimmed.startswith(("<?xml", "<testsuites", "<testsuite")):
        return "junit-xml"
    if trimmed.startswith(("[", "{")):
        return "json"
    return None


def parse_results(content: str, format: str | None = None) -> ParsedResults:
    """
    Parse test results with an optional format hint.

    Raises:
        ResultParseError: if the format is unknown or the content is invalid
    """
    detected = format or detect_format(content)
    if detected is None:
        raise ResultParseError("Could not detect test results format. Expected JUnit XML or JSON.")

    if detected == "junit-xml":
        results = parse_junit_xml(content)
    elif detected == "json":
        results = parse_json(content)
    else:
        raise ResultParseError(f"Unknown format: {detected}")

    return ParsedResults(
        format=detected,
        results=results,
        summary=TestRunSummary.from_results(results),
    )


def classname_to_file(classname: str) -> str:
    """
    Best-effort file path from a JUnit classname.

    Runners disagree: bun writes "src/auth.test.ts", jest "src.auth.test",
    pytest "tests.test_auth".
    """
    if "/" in classname or "\\" in classname:
        return classname

    if "." in classname:
        parts = classname.split(".")
        if parts[-1].lower() in ("test", "spec"):
            return "/".join(parts) + ".ts"
        return "/".join(parts) + ".test.ts"

    return classname


def _failure_message(element: ET.Element) -> str | None:
    message = element.get("message")
    text = (element.text or "").strip()
    if message and text:
        return f"{message}\n{text}"
    return message or text or None


def _parse_testcase(case: ET.Element, suite_file: str | None) -> TestResult:
    name = case.get("name") or "unknown"
    classname = case.get("classname") or ""
    time_attr = case.get("time")
    try:
        duration = float(time_attr) * 1000 if time_attr else None  # ms
    except ValueError:
        duration = None

    status = "passed"
    error_message = None
    failure = case.find("failure")
    error = case.find("error")
    if failure is not None:
        status = "failed"
        error_message = _failure_message(failure)
    elif error is not None:
        status = "error"
        error_message = _failure_message(error)
    elif case.find("skipped") is not None:
        status = "skipped"

    return TestResult(
        file=suite_file or classname_to_file(classname),
        identifier=name,
        status=status,
        duration=duration,
        error_message=error_message,
    )


def _walk_suite(suite: ET.Element, parent_file: str | None) -> list[TestResult]:
    """Collect testcases from a suite and its nested suites.

    Bun nests testsuites for describe blocks; the file attribute is
    inherited from the nearest suite that has one.
    """
    file = suite.get("file") or parent_file
    results = [_parse_testcase(case, file) for case in suite.findall("testcase")]
    for nested in suite.findall("testsuite"):
        results.extend(_walk_suite(nested, file))
    return results


def parse_junit_xml(content: str) -> list[TestResult]:
    """Parse JUnit XML into TestResults."""
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ResultParseError(f"Invalid JUnit XML: {e}") from None

    if root.tag == "testsuite":
        suites = [root]
    elif root.tag == "testsuites":
        suites = root.findall("testsuite")
    else:
        raise ResultParseError(f"Unexpected JUnit root element <{root.tag}>")

    results = []
    for suite in suites:
        results.extend(_walk_suite(suite, None))
    return results


def to_junit_xml(results: list[TestResult]) -> str:
    """Render results as JUnit XML, one testsuite per file."""
    by_file: dict[str, list[TestResult]] = {}
    for result in results:
        by_file.setdefault(result.file, []).append(result)

    root = ET.Element("testsuites")
    for file, file_results in by_file.items():
        summary = TestRunSummary.from_results(file_results)
        suite = ET.SubElement(root, "testsuite", {
            "name": file,
            "file": file,
            "tests": str(summary.total),
            "failures": str(sum(1 for r in file_results if r.status == "failed")),
            "errors": str(sum(1 for r in file_results if r.status == "error")),
            "skipped": str(summary.skipped),
        })
        for result in file_results:
            attrs = {"name": result.identifier, "classname": file}
            if result.duration is not None:
                attrs["time"] = f"{result.duration / 1000:.3f}"
            case = ET.SubElement(suite, "testcase", attrs)
            if result.status in ("failed", "error"):
                tag = "failure" if result.status == "failed" else "error"
                detail = ET.SubElement(case, tag)
                detail.text = result.error_message
            elif result.status == "skipped":
                ET.SubElement(case, "skipped")

    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def parse_json(content: str) -> list[TestResult]:
    """Parse the JSON results format into TestResults."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ResultParseError(f"Invalid JSON: {e}") from None

    if isinstance(data, dict):
        data = data.get("results", [])

    try:
        validate.validate(data, "test_results")
    except validate.ValidationError as e:
        raise ResultParseError(str(e)) from None

    return [
        TestResult(
            file=item["file"],
            identifier=item["identifier"],
            status=item["status"],
            duration=item.get("duration"),
            error_message=item.get("errorMessage"),
        )
        for item in data
    ]
