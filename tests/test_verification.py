"""Tests for reqtrack.lib.verification module."""

import copy

import pytest

from reqtrack.lib.types import (
    AIAssessment,
    Dependency,
    ExtractedTest,
    IgnoredTest,
    Question,
    Requirement,
    TestLink,
    TestResult,
    VerificationStatus,
)
from reqtrack.lib.verification import (
    ROOT_GROUP,
    blocking_dependencies,
    check,
    find_orphaned_tests,
    get_verification_status,
    group_by_folder,
)

GHERKIN = "Given a user\nWhen they log in\nThen they see the dashboard"
ASSESSED = AIAssessment(sufficient=True, notes="covered", assessed_at="2024-01-01T00:00:00+00:00")


def _req(path, status="done", tests=None, assessment=None, **kwargs):
    return Requirement(path=path, gherkin=GHERKIN, status=status,
                       tests=tests or [], ai_assessment=assessment, **kwargs)


def _test(file, identifier, hash):
    return ExtractedTest(file=file, identifier=identifier, body="", hash=hash)


class TestGetVerificationStatus:
    def test_no_tests_is_na(self):
        assert get_verification_status([], {}, True) is VerificationStatus.NA

    def test_no_assessment_is_unverified(self):
        links = [TestLink("a.ts", "x", "h1")]
        assert get_verification_status(links, {"a.ts:x": "h2"}, False) is VerificationStatus.UNVERIFIED

    def test_matching_hashes_are_verified(self):
        links = [TestLink("a.ts", "x", "h1"), TestLink("a.ts", "y", "h2")]
        current = {"a.ts:x": "h1", "a.ts:y": "h2"}
        assert get_verification_status(links, current, True) is VerificationStatus.VERIFIED

    def test_one_changed_hash_is_stale(self):
        links = [TestLink("a.ts", "x", "h1"), TestLink("a.ts", "y", "h2")]
        current = {"a.ts:x": "h1", "a.ts:y": "changed"}
        assert get_verification_status(links, current, True) is VerificationStatus.STALE

    def test_missing_test_is_not_stale(self):
        links = [TestLink("a.ts", "deleted", "h1")]
        assert get_verification_status(links, {}, True) is VerificationStatus.VERIFIED


class TestCheckTransitions:
    """Verification state over a requirement's lifetime."""

    def test_verified_then_stale_without_mutation(self):
        link = TestLink("src/a.test.ts", "logs in", "h1")
        req = _req("auth/REQ_login.yml", tests=[link], assessment=ASSESSED)
        before = copy.deepcopy(req)

        report = check([req], [_test("src/a.test.ts", "logs in", "h1")])
        assert report.find("auth/REQ_login.yml").verification is VerificationStatus.VERIFIED

        report = check([req], [_test("src/a.test.ts", "logs in", "h2")])
        found = report.find("auth/REQ_login.yml")
        assert found.verification is VerificationStatus.STALE
        assert found.tests[0].is_stale
        assert report.summary.stale == 1

        # The stored hash and assessment are left alone
        assert req == before
        assert req.tests[0].hash == "h1"

    def test_unverified_until_assessed(self):
        req = _req("REQ_a.yml", tests=[TestLink("a.ts", "x", "h")])
        report = check([req], [_test("a.ts", "x", "h")])
        assert report.find("REQ_a.yml").verification is VerificationStatus.UNVERIFIED
        assert report.summary.unverified == 1

    def test_na_without_tests(self):
        report = check([_req("REQ_a.yml")], [])
        assert report.find("REQ_a.yml").verification is VerificationStatus.NA
        assert report.summary.untested == 1
        assert report.summary.by_verification["n/a"] == 1


class TestCheckSummary:
    def test_counts(self):
        reqs = [
            _req("REQ_a.yml", status="planned", priority="high"),
            _req("auth/REQ_b.yml", tests=[TestLink("a.ts", "x", "h")], assessment=ASSESSED,
                 priority="critical"),
            _req("auth/REQ_c.yml", tests=[TestLink("a.ts", "y", "h")],
                 questions=[Question("why?"), Question("how?", answer="so")]),
        ]
        report = check(reqs, [_test("a.ts", "x", "h"), _test("a.ts", "y", "h")])
        s = report.summary
        assert (s.total_requirements, s.planned, s.done) == (3, 1, 2)
        assert (s.tested, s.untested) == (2, 0)
        assert (s.verified, s.unverified, s.stale) == (1, 1, 0)
        assert s.unanswered_questions == 1
        assert s.by_priority == {"critical": 1, "high": 1, "medium": 0, "low": 0, "unset": 1}
        assert s.by_verification == {"n/a": 1, "unverified": 1, "verified": 1, "stale": 0}

    def test_groups_sorted_with_root_group(self):
        reqs = [_req("z/REQ_1.yml"), _req("REQ_root.yml"), _req("a/b/REQ_2.yml")]
        report = check(reqs, [])
        assert [g.path for g in report.groups] == [ROOT_GROUP, "a/b/", "z/"]

    def test_to_dict_shape(self):
        req = _req("auth/REQ_b.yml", tests=[TestLink("a.ts", "x", "h")], assessment=ASSESSED,
                   tags=["auth"])
        data = check([req], [_test("a.ts", "x", "h"), _test("b.ts", "o", "h")]).to_dict()
        entry = data["requirements"][0]["requirements"][0]
        assert data["requirements"][0]["path"] == "auth/"
        assert entry["id"] == "auth/REQ_b.yml"
        assert entry["verification"] == "verified"
        assert entry["coverageSufficient"] is True
        assert entry["tags"] == ["auth"]
        assert entry["tests"][0]["isStale"] is False
        assert data["orphanedTests"] == [{"file": "b.ts", "identifier": "o", "hash": "h"}]
        assert data["summary"]["orphanedTestCount"] == 1

    def test_gherkin_format_issue(self):
        req = Requirement(path="REQ_a.yml", gherkin="Given a When b Then c", status="planned")
        report = check([req], [])
        assert report.summary.gherkin_format_issues == 1
        assert report.gherkin_issues[0]["requirement"] == "REQ_a.yml"


class TestTestResults:
    def test_last_result_attached_to_link(self):
        req = _req("REQ_a.yml", tests=[TestLink("src/a.test.ts", "x", "h")])
        results = [TestResult("./src/a.test.ts", "x", "failed")]
        report = check([req], [_test("src/a.test.ts", "x", "h")], results=results,
                       results_imported_at="2024-02-01T00:00:00+00:00")
        link = report.find("REQ_a.yml").tests[0]
        assert link.last_result == "failed"
        assert link.last_run_at == "2024-02-01T00:00:00+00:00"
        assert link.to_dict()["lastResult"] == "failed"

    def test_no_result(self):
        req = _req("REQ_a.yml", tests=[TestLink("a.ts", "x", "h")])
        link = check([req], [_test("a.ts", "x", "h")]).find("REQ_a.yml").tests[0]
        assert link.last_result is None
        assert "lastResult" not in link.to_dict()


class TestOrphans:
    def test_unlinked_and_not_ignored(self):
        extracted = [_test("a.ts", "linked", "h"), _test("a.ts", "ignored", "h"), _test("a.ts", "orphan", "h")]
        reqs = [_req("REQ_a.yml", tests=[TestLink("a.ts", "linked", "h")])]
        ignored = [IgnoredTest("a.ts", "ignored", "helper test")]
        orphans = find_orphaned_tests(extracted, reqs, ignored)
        assert [t.identifier for t in orphans] == ["orphan"]

    def test_each_orphan_reported_once(self):
        extracted = [_test("a.ts", "x", "h"), _test("a.ts", "x", "h")]
        assert len(find_orphaned_tests(extracted, [], [])) == 1

    def test_path_filter_uses_all_requirements(self):
        linked_elsewhere = _req("billing/REQ_pay.yml", tests=[TestLink("a.ts", "pay", "h")])
        auth = _req("auth/REQ_login.yml")
        report = check([auth], [_test("a.ts", "pay", "h")],
                       all_requirements=[auth, linked_elsewhere])
        assert report.orphaned_tests == []
        assert report.summary.total_requirements == 1


class TestDependencies:
    def test_blocking_dependency_not_done(self):
        reqs = [
            _req("REQ_base.yml", status="planned"),
            _req("REQ_top.yml", dependencies=[Dependency("REQ_base.yml")]),
        ]
        report = check(reqs, [])
        assert report.summary.blocked_requirements == 1
        assert report.dependency_issues == [{"requirement": "REQ_top.yml", "blockedBy": ["REQ_base.yml"]}]
        assert report.find("REQ_top.yml").dependency_issues == ["REQ_base.yml"]

    def test_missing_dependency_blocks(self):
        req = _req("REQ_top.yml", dependencies=[Dependency("REQ_gone.yml")])
        assert blocking_dependencies(req, {"REQ_top.yml": "done"}) == ["REQ_gone.yml"]

    def test_non_blocking_and_done_dependencies(self):
        req = _req("REQ_top.yml", dependencies=[
            Dependency("REQ_soft.yml", blocking=False),
            Dependency("REQ_done.yml"),
        ])
        assert blocking_dependencies(req, {"REQ_done.yml": "done", "REQ_soft.yml": "planned"}) == []


def test_group_by_folder():
    groups = group_by_folder([_req("b/REQ_1.yml"), _req("a/REQ_2.yml"), _req("b/REQ_3.yml")])
    assert [(folder, [r.path for r in reqs]) for folder, reqs in groups] == [
        ("a/", ["a/REQ_2.yml"]),
        ("b/", ["b/REQ_1.yml", "b/REQ_3.yml"]),
    ]


@pytest.mark.parametrize("status", list(VerificationStatus))
def test_every_status_has_a_summary_bucket(status):
    report = check([], [])
    assert status.value in report.summary.by_verification
