"""
Verification engine.

Computes, for each requirement, whether its linked tests still match the
hashes recorded when they were linked, and aggregates a check report:
counts, blocked requirements, Gherkin problems and orphaned tests.

Everything here is a pure function of its inputs. Loading requirements,
extracting tests and reading results is the caller's job, as is making
sure the requirements directory is initialized.
"""

from dataclasses import dataclass, field

from reqtrack.lib.constants import PRIORITIES
from reqtrack.lib.gherkin import check_stored_format
from reqtrack.lib.results import match_result
from reqtrack.lib.types import (
    ExtractedTest,
    IgnoredTest,
    Requirement,
    TestLink,
    TestResult,
    VerificationStatus,
)

ROOT_GROUP = "(root)"


def get_verification_status(
    tests: list[TestLink],
    current_hashes: dict[str, str],
    has_assessment: bool,
) -> VerificationStatus:
    """
    Verification state of one requirement.

    A link whose test has no current hash (deleted or renamed test) counts
    as unchanged; only a present, different hash makes it stale.
    """
    if not tests:
        return VerificationStatus.NA
    if not has_assessment:
        return VerificationStatus.UNVERIFIED
    for link in tests:
        current = current_hashes.get(link.key)
        if current is not None and current != link.hash:
            return VerificationStatus.STALE
    return VerificationStatus.VERIFIED


@dataclass
class LinkReport:
    link: TestLink
    is_stale: bool
    last_result: str | None = None
    last_run_at: str | None = None

    def to_dict(self) -> dict:
        result = self.link.to_dict()
        result["isStale"] = self.is_stale
        if self.last_result:
            result["lastResult"] = self.last_result
        if self.last_run_at:
            result["lastRunAt"] = self.last_run_at
        return result


@dataclass
class RequirementReport:
    requirement: Requirement
    verification: VerificationStatus
    tests: list[LinkReport]
    dependency_issues: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.requirement.path

    def to_dict(self) -> dict:
        req = self.requirement
        result = {
            "id": req.path,
            "testCount": len(req.tests),
            "verification": self.verification.value,
            "coverageSufficient": req.ai_assessment.sufficient if req.ai_assessment else None,
            "unansweredQuestions": req.unanswered_questions,
            "status": req.status,
            "priority": req.priority,
            "gherkin": req.gherkin,
            "tests": [t.to_dict() for t in self.tests],
        }
        if self.dependency_issues:
            result["dependencyIssues"] = list(self.dependency_issues)
        if req.tags:
            result["tags"] = list(req.tags)
        return result


@dataclass
class RequirementGroup:
    path: str  # Folder prefix such as "auth/", or ROOT_GROUP
    requirements: list[RequirementReport] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"path": self.path, "requirements": [r.to_dict() for r in self.requirements]}


@dataclass
class CheckSummary:
    total_requirements: int = 0
    planned: int = 0
    done: int = 0
    # Coverage and verification of "done" requirements
    untested: int = 0
    tested: int = 0
    unverified: int = 0
    verified: int = 0
    stale: int = 0
    # Verification of every requirement, keyed by status value
    by_verification: dict[str, int] = field(
        default_factory=lambda: {s.value: 0 for s in VerificationStatus}
    )
    orphaned_test_count: int = 0
    unanswered_questions: int = 0
    by_priority: dict[str, int] = field(
        default_factory=lambda: {**{p: 0 for p in PRIORITIES}, "unset": 0}
    )
    blocked_requirements: int = 0
    gherkin_format_issues: int = 0

    def to_dict(self) -> dict:
        return {
            "totalRequirements": self.total_requirements,
            "planned": self.planned,
            "done": self.done,
            "untested": self.untested,
            "tested": self.tested,
            "unverified": self.unverified,
            "verified": self.verified,
            "stale": self.stale,
            "byVerification": dict(self.by_verification),
            "orphanedTestCount": self.orphaned_test_count,
            "unansweredQuestions": self.unanswered_questions,
            "byPriority": dict(self.by_priority),
            "blockedRequirements": self.blocked_requirements,
            "gherkinFormatIssues": self.gherkin_format_issues,
        }


@dataclass
class CheckResult:
    groups: list[RequirementGroup] = field(default_factory=list)
    orphaned_tests: list[ExtractedTest] = field(default_factory=list)
    dependency_issues: list[dict] = field(default_factory=list)  # {requirement, blockedBy}
    gherkin_issues: list[dict] = field(default_factory=list)  # {requirement, errors}
    summary: CheckSummary = field(default_factory=CheckSummary)

    def find(self, requirement_id: str) -> RequirementReport | None:
        for group in self.groups:
            for report in group.requirements:
                if report.id == requirement_id:
                    return report
        return None

    def to_dict(self) -> dict:
        return {
            "requirements": [g.to_dict() for g in self.groups],
            "orphanedTests": [
                {"file": t.file, "identifier": t.identifier, "hash": t.hash}
                for t in self.orphaned_tests
            ],
            "dependencyIssues": list(self.dependency_issues),
            "gherkinIssues": list(self.gherkin_issues),
            "summary": self.summary.to_dict(),
        }


def group_by_folder(requirements: list[Requirement]) -> list[tuple[str, list[Requirement]]]:
    """Group requirements by folder prefix, groups sorted by path."""
    groups: dict[str, list[Requirement]] = {}
    for req in requirements:
        groups.setdefault(req.folder, []).append(req)
    return [(folder, groups[folder]) for folder in sorted(groups)]


def blocking_dependencies(req: Requirement, statuses: dict[str, str]) -> list[str]:
    """Paths of blocking dependencies that are missing or not done."""
    return [
        dep.path for dep in req.dependencies
        if dep.blocking and statuses.get(dep.path) != "done"
    ]


def find_orphaned_tests(
    extracted: list[ExtractedTest],
    requirements: list[Requirement],
    ignored: list[IgnoredTest],
) -> list[ExtractedTest]:
    """Extracted tests linked by no requirement and not ignored, each once."""
    linked = {link.key for req in requirements for link in req.tests}
    ignored_keys = {t.key for t in ignored}
    orphans = []
    seen = set()
    for test in extracted:
        key = test.key
        if key in linked or key in ignored_keys or key in seen:
            continue
        seen.add(key)
        orphans.append(test)
    return orphans


def check(
    requirements: list[Requirement],
    extracted: list[ExtractedTest],
    ignored: list[IgnoredTest] | None = None,
    results: list[TestResult] | None = None,
    results_imported_at: str | None = None,
    all_requirements: list[Requirement] | None = None,
) -> CheckResult:
    """
    Build the verification report for a set of requirements.

    Args:
        requirements: Requirements to report on
        extracted: Current tests (fresh or from cache)
        ignored: Tests excluded from orphan detection
        results: Results of the last test run, if any
        results_imported_at: When those results were produced
        all_requirements: Every known requirement, when requirements is a
            filtered subset. Dependency targets and test links are resolved
            against this set. Defaults to requirements.

    Stored TestLink hashes are compared, never rewritten.
    """
    ignored = ignored or []
    results = results or []
    universe = requirements if all_requirements is None else all_requirements
    current_hashes = {t.key: t.hash for t in extracted}
    statuses = {req.path: req.status for req in universe}

    report = CheckResult()
    summary = report.summary

    for folder, group_reqs in group_by_folder(requirements):
        group = RequirementGroup(path=folder or ROOT_GROUP)

        for req in group_reqs:
            summary.total_requirements += 1
            if req.status == "planned":
                summary.planned += 1
            else:
                summary.done += 1

            verification = get_verification_status(
                req.tests, current_hashes, req.ai_assessment is not None
            )
            summary.by_verification[verification.value] += 1

            if req.status == "done":
                if req.tests:
                    summary.tested += 1
                else:
                    summary.untested += 1
                if verification is VerificationStatus.UNVERIFIED:
                    summary.unverified += 1
                elif verification is VerificationStatus.VERIFIED:
                    summary.verified += 1
                elif verification is VerificationStatus.STALE:
                    summary.stale += 1

            summary.unanswered_questions += req.unanswered_questions

            if req.priority in PRIORITIES:
                summary.by_priority[req.priority] += 1
            else:
                summary.by_priority["unset"] += 1

            blocked_by = blocking_dependencies(req, statuses)
            if blocked_by:
                summary.blocked_requirements += 1
                report.dependency_issues.append({"requirement": req.path, "blockedBy": blocked_by})

            format_check = check_stored_format(req.gherkin)
            if not format_check.valid:
                summary.gherkin_format_issues += 1
                report.gherkin_issues.append({"requirement": req.path, "errors": format_check.errors})

            link_reports = []
            for link in req.tests:
                current = current_hashes.get(link.key)
                result = match_result(link, results)
                link_reports.append(LinkReport(
                    link=link,
                    is_stale=current is not None and current != link.hash,
                    last_result=result.status if result else None,
                    last_run_at=results_imported_at if result else None,
                ))

            group.requirements.append(RequirementReport(
                requirement=req,
                verification=verification,
                tests=link_reports,
                dependency_issues=blocked_by,
            ))

        report.groups.append(group)

    report.orphaned_tests = find_orphaned_tests(extracted, universe, ignored)
    summary.orphaned_test_count = len(report.orphaned_tests)

    return report
