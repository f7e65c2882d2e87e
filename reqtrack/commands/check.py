"""
req check - Report verification state of requirements.

Read-only apart from the test cache: stored link hashes are never changed
here. Use 'req confirm' to accept a changed test.
"""

import json
import sys
from pathlib import Path

from reqtrack.lib.cache import get_tests_with_cache, project_cache_store
from reqtrack.lib.config import Config
from reqtrack.lib.locking import LockTimeout, is_locked
from reqtrack.lib.results import load_test_results
from reqtrack.lib.store import load_all_requirements, load_ignored_tests
from reqtrack.lib.verification import CheckResult, check

MAX_ORPHANS_SHOWN = 20


def print_report(report: CheckResult) -> None:
    for group in report.groups:
        print(f"\n{group.path}")
        for req_report in group.requirements:
            req = req_report.requirement
            name = req.path[len(req.folder):]
            line = f"  {name}  [{req.status}] {req_report.verification.value}  {len(req.tests)} test(s)"
            if req.priority:
                line += f"  priority={req.priority}"
            if req.unanswered_questions:
                line += f"  questions={req.unanswered_questions}"
            print(line)
            for link_report in req_report.tests:
                marker = "!" if link_report.is_stale else "-"
                result = f"  ({link_report.last_result})" if link_report.last_result else ""
                stale = "  STALE" if link_report.is_stale else ""
                print(f"    {marker} {link_report.link.key}{result}{stale}")

    if report.dependency_issues:
        print("\nBlocked requirements:")
        for issue in report.dependency_issues:
            print(f"  {issue['requirement']} blocked by {', '.join(issue['blockedBy'])}")

    if report.gherkin_issues:
        print("\nGherkin format issues:")
        for issue in report.gherkin_issues:
            print(f"  {issue['requirement']}: {'; '.join(issue['errors'])}")

    if report.orphaned_tests:
        print(f"\nOrphaned tests ({len(report.orphaned_tests)}):")
        for test in report.orphaned_tests[:MAX_ORPHANS_SHOWN]:
            print(f"  {test.key}")
        if len(report.orphaned_tests) > MAX_ORPHANS_SHOWN:
            print(f"  ... and {len(report.orphaned_tests) - MAX_ORPHANS_SHOWN} more")

    s = report.summary
    print("\nSummary:")
    print(f"  Requirements: {s.total_requirements} ({s.done} done, {s.planned} planned)")
    print(f"  Done: {s.tested} tested, {s.untested} untested")
    print(f"  Verification: {s.verified} verified, {s.unverified} unverified, {s.stale} stale")
    print(f"  Orphaned tests: {s.orphaned_test_count}")
    if s.blocked_requirements:
        print(f"  Blocked: {s.blocked_requirements}")
    if s.gherkin_format_issues:
        print(f"  Gherkin format issues: {s.gherkin_format_issues}")
    if s.unanswered_questions:
        print(f"  Unanswered questions: {s.unanswered_questions}")


def cmd_check(args, cwd: Path, config: Config) -> int:
    """Check requirements under args.path (all when omitted)."""
    loaded = load_all_requirements(cwd)
    for error in loaded.errors:
        print(f"ERROR: {error}", file=sys.stderr)

    prefix = args.path or ""
    requirements = [r for r in loaded.requirements if r.path.startswith(prefix)]
    if prefix and not requirements:
        print(f"ERROR: No requirements found under {prefix}", file=sys.stderr)
        return 1

    store = project_cache_store(cwd)
    if is_locked(store.lock_path):
        print("Another check is updating the test cache.", file=sys.stderr)

    try:
        cached = get_tests_with_cache(
            cwd,
            config.test_glob,
            store,
            no_cache=args.no_cache,
            names=config.test_names,
            hash_scope=config.hash_scope,
            max_workers=config.max_workers,
        )
    except LockTimeout as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    # Keep stdout clean for --json
    info = sys.stderr if args.json else sys.stdout
    if cached.from_cache:
        print(f"Using cached test data ({len(cached.tests)} tests)", file=info)
    else:
        print(f"Extracted {len(cached.tests)} tests", file=info)

    test_results = load_test_results(cwd)
    report = check(
        requirements,
        cached.tests,
        ignored=load_ignored_tests(cwd),
        results=test_results.results if test_results else None,
        results_imported_at=test_results.imported_at if test_results else None,
        all_requirements=loaded.requirements,
    )

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report)

    return 1 if loaded.errors else 0
