"""End-to-end tests for the req CLI."""

import json
import shlex
import sys
from unittest.mock import patch

import pytest
import yaml

from reqtrack.cli import main
from reqtrack.lib.results import get_test_results_path
from reqtrack.lib.store import load_ignored_tests, load_requirement

AUTH_TESTS = '''
describe("auth", () => {
  it("logs in", () => {
    expect(login("a", "b")).toBe(true)
  })
  it("logs out", () => { logout() })
})
'''


@pytest.fixture
def repo(tmp_path, write_file, write_requirement):
    """Initialized project with one test file and one requirement."""
    assert main(["--cwd", str(tmp_path), "init"]) == 0
    write_file(tmp_path, "src/auth.test.ts", AUTH_TESTS)
    write_requirement(tmp_path, "auth/REQ_login.yml", {
        "gherkin": "Given a user\nWhen they log in\nThen they see the dashboard",
        "status": "done",
    })
    return tmp_path


def req(repo, *args):
    return main(["--cwd", str(repo), *args])


class TestInit:
    def test_creates_config(self, tmp_path, capsys):
        assert main(["--cwd", str(tmp_path), "init", "--test-runner", "npx jest"]) == 0
        config = yaml.safe_load((tmp_path / ".requirements" / "config.yml").read_text())
        assert config["testRunner"] == "npx jest"
        assert (tmp_path / ".requirements" / "ignored-tests.yml").exists()

    def test_already_initialized(self, repo, capsys):
        assert req(repo, "init") == 0
        assert "already initialized" in capsys.readouterr().out


class TestNotInitialized:
    def test_exit_code_2(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--cwd", str(tmp_path), "check"])
        assert exc.value.code == 2
        assert "ERROR: Not initialized" in capsys.readouterr().err


class TestLinkAndCheck:
    def test_full_flow(self, repo, write_file, capsys):
        assert req(repo, "link", "auth/REQ_login.yml", "src/auth.test.ts:logs in") == 0
        requirement = load_requirement(repo, "auth/REQ_login.yml")
        pinned = requirement.tests[0].hash
        assert requirement.tests[0].linked_at

        capsys.readouterr()
        assert req(repo, "check", "--json") == 0
        report = json.loads(capsys.readouterr().out)
        entry = report["requirements"][0]["requirements"][0]
        assert entry["verification"] == "unverified"
        assert report["orphanedTests"] == [
            {"file": "src/auth.test.ts", "identifier": "logs out", "hash": report["orphanedTests"][0]["hash"]}
        ]

        assert req(repo, "assess", "auth/REQ_login.yml", "--result",
                   '{"sufficient": true, "notes": "covers login"}') == 0
        capsys.readouterr()
        assert req(repo, "check", "--json") == 0
        entry = json.loads(capsys.readouterr().out)["requirements"][0]["requirements"][0]
        assert entry["verification"] == "verified"

        # Edit the linked test: stale, and the stored hash stays pinned
        write_file(repo, "src/auth.test.ts", AUTH_TESTS.replace('"b"', '"c"'))
        assert req(repo, "check", "--json", "--no-cache") == 0
        entry = json.loads(capsys.readouterr().out)["requirements"][0]["requirements"][0]
        assert entry["verification"] == "stale"
        assert entry["tests"][0]["isStale"] is True
        assert load_requirement(repo, "auth/REQ_login.yml").tests[0].hash == pinned

        # Confirm accepts the new code
        assert req(repo, "confirm", "auth/REQ_login.yml", "src/auth.test.ts:logs in") == 0
        assert load_requirement(repo, "auth/REQ_login.yml").tests[0].hash != pinned
        capsys.readouterr()
        assert req(repo, "check", "--json", "--no-cache") == 0
        entry = json.loads(capsys.readouterr().out)["requirements"][0]["requirements"][0]
        assert entry["verification"] == "verified"

    def test_check_reports_cache_use(self, repo, capsys):
        assert req(repo, "check") == 0
        assert "Extracted 2 tests" in capsys.readouterr().out
        assert req(repo, "check") == 0
        out = capsys.readouterr().out
        assert "Using cached test data" in out
        assert "REQ_login.yml" in out
        assert "Orphaned tests (2)" in out

    def test_check_path_filter(self, repo, write_requirement, capsys):
        write_requirement(repo, "billing/REQ_pay.yml", {"gherkin": "Given a\nWhen b\nThen c", "status": "planned"})
        assert req(repo, "check", "billing/", "--json") == 0
        report = json.loads(capsys.readouterr().out)
        assert report["summary"]["totalRequirements"] == 1
        assert req(repo, "check", "nothing/") == 1

    def test_check_invalid_requirement_file(self, repo, write_requirement, capsys):
        write_requirement(repo, "REQ_broken.yml", {"gherkin": "Given a"})
        assert req(repo, "check") == 1
        assert 'Missing or invalid "status" field' in capsys.readouterr().err

    def test_link_twice(self, repo, capsys):
        assert req(repo, "link", "auth/REQ_login.yml", "src/auth.test.ts:logs in") == 0
        assert req(repo, "link", "auth/REQ_login.yml", "src/auth.test.ts:logs in") == 0
        assert "already linked" in capsys.readouterr().out
        assert len(load_requirement(repo, "auth/REQ_login.yml").tests) == 1

    def test_link_errors(self, repo, capsys):
        assert req(repo, "link", "auth/REQ_login.yml", "no-colon") == 1
        assert req(repo, "link", "auth/REQ_missing.yml", "src/auth.test.ts:logs in") == 1
        assert req(repo, "link", "auth/REQ_login.yml", "src/auth.test.ts:nope") == 1
        err = capsys.readouterr().err
        assert "Invalid test spec" in err
        assert "Requirement not found" in err
        assert "Test not found in codebase" in err

    def test_unlink(self, repo):
        req(repo, "link", "auth/REQ_login.yml", "src/auth.test.ts:logs in")
        assert req(repo, "unlink", "auth/REQ_login.yml", "src/auth.test.ts:logs in") == 0
        assert load_requirement(repo, "auth/REQ_login.yml").tests == []
        assert req(repo, "unlink", "auth/REQ_login.yml", "src/auth.test.ts:logs in") == 1

    def test_confirm_unlinked(self, repo, capsys):
        assert req(repo, "confirm", "auth/REQ_login.yml", "src/auth.test.ts:logs in") == 1
        assert "Link it first" in capsys.readouterr().err

    @pytest.mark.parametrize("spelling", [
        "./src/auth.test.ts",
        "src/../src/auth.test.ts",
        "{root}/src/auth.test.ts",
    ])
    def test_link_stores_project_relative_path(self, repo, write_file, capsys, spelling):
        test_spec = spelling.format(root=repo.resolve()) + ":logs in"
        assert req(repo, "link", "auth/REQ_login.yml", test_spec) == 0
        assert load_requirement(repo, "auth/REQ_login.yml").tests[0].key == "src/auth.test.ts:logs in"
        assert req(repo, "assess", "auth/REQ_login.yml", "--result", '{"sufficient": true, "notes": "ok"}') == 0

        write_file(repo, "src/auth.test.ts", AUTH_TESTS.replace('"b"', '"c"'))
        capsys.readouterr()
        assert req(repo, "check", "--json", "--no-cache") == 0
        summary = json.loads(capsys.readouterr().out)["summary"]
        assert summary["stale"] == 1
        assert summary["verified"] == 0
        assert summary["orphanedTestCount"] == 1

    def test_link_outside_project_root(self, repo, tmp_path_factory, write_file, capsys):
        other = tmp_path_factory.mktemp("other")
        write_file(other, "x.test.ts", AUTH_TESTS)
        assert req(repo, "link", "auth/REQ_login.yml", f"{other}/x.test.ts:logs in") == 1
        assert req(repo, "link", "auth/REQ_login.yml", "../x.test.ts:logs in") == 1
        assert "outside the project root" in capsys.readouterr().err
        assert load_requirement(repo, "auth/REQ_login.yml").tests == []

    def test_check_reports_held_cache_lock(self, repo, capsys):
        with patch("reqtrack.commands.check.is_locked", return_value=True):
            assert req(repo, "check") == 0
        assert "Another check is updating the test cache" in capsys.readouterr().err


class TestAdd:
    def test_creates_formatted_requirement(self, repo, capsys):
        assert req(repo, "add", "billing/REQ_pay.yml",
                   "--gherkin", "given a cart when they pay then they get a receipt",
                   "--priority", "high", "--tags", "billing, payments") == 0
        assert "Created requirement: billing/REQ_pay.yml" in capsys.readouterr().out

        requirement = load_requirement(repo, "billing/REQ_pay.yml")
        assert requirement.gherkin == "Given a cart\nWhen they pay\nThen they get a receipt"
        assert requirement.status == "planned"
        assert requirement.priority == "high"
        assert requirement.tags == ["billing", "payments"]
        assert requirement.tests == []

    @pytest.mark.parametrize("gherkin, error", [
        ("When they pay Then it works", "Must start with 'Given'"),
        ("Scenario: pay Given a When b Then c", "Scenario:"),
        ("Given a cart When they pay", "Missing 'Then' keyword"),
        ("just some prose", "No Gherkin keywords found"),
    ])
    def test_rejects_invalid_gherkin(self, repo, capsys, gherkin, error):
        assert req(repo, "add", "billing/REQ_pay.yml", "--gherkin", gherkin) == 1
        err = capsys.readouterr().err
        assert "ERROR: Invalid Gherkin" in err
        assert error in err
        assert not (repo / ".requirements" / "billing" / "REQ_pay.yml").exists()

    def test_existing_requirement_needs_force(self, repo, capsys):
        gherkin = "Given a When b Then c"
        assert req(repo, "add", "auth/REQ_login.yml", "--gherkin", gherkin) == 1
        assert "already exists" in capsys.readouterr().err
        assert req(repo, "add", "auth/REQ_login.yml", "--gherkin", gherkin, "--status", "done", "--force") == 0
        assert load_requirement(repo, "auth/REQ_login.yml").gherkin == "Given a\nWhen b\nThen c"

    @pytest.mark.parametrize("path", ["billing/pay.yml", "../REQ_out.yml", "/tmp/REQ_abs.yml"])
    def test_rejects_invalid_path(self, repo, capsys, path):
        assert req(repo, "add", path, "--gherkin", "Given a When b Then c") == 1
        assert "Invalid requirement path" in capsys.readouterr().err


class TestAssess:
    def test_invalid_json(self, repo, capsys):
        assert req(repo, "assess", "auth/REQ_login.yml", "--result", "{bad") == 1
        assert req(repo, "assess", "auth/REQ_login.yml", "--result", '{"sufficient": "yes", "notes": ""}') == 1
        assert "Invalid --result format" in capsys.readouterr().err

    def test_records_assessment(self, repo):
        assert req(repo, "assess", "auth/REQ_login.yml", "-r", '{"sufficient": false, "notes": "gaps"}') == 0
        assessment = load_requirement(repo, "auth/REQ_login.yml").ai_assessment
        assert assessment.sufficient is False
        assert assessment.notes == "gaps"


class TestIgnore:
    def test_ignore_and_unignore(self, repo, capsys):
        assert req(repo, "ignore-test", "src/auth.test.ts:logs out", "--reason", "smoke test") == 0
        assert [t.reason for t in load_ignored_tests(repo)] == ["smoke test"]
        assert req(repo, "ignore-test", "src/auth.test.ts:logs out", "--reason", "again") == 0
        assert len(load_ignored_tests(repo)) == 1

        capsys.readouterr()
        req(repo, "check", "--json")
        orphans = json.loads(capsys.readouterr().out)["orphanedTests"]
        assert [o["identifier"] for o in orphans] == ["logs in"]

        assert req(repo, "unignore-test", "src/auth.test.ts:logs out") == 0
        assert load_ignored_tests(repo) == []
        assert req(repo, "unignore-test", "src/auth.test.ts:logs out") == 1

    def test_ignore_stores_project_relative_path(self, repo, capsys):
        assert req(repo, "ignore-test", "./src/auth.test.ts:logs out", "--reason", "smoke") == 0
        assert load_ignored_tests(repo)[0].key == "src/auth.test.ts:logs out"
        capsys.readouterr()
        assert req(repo, "check", "--json") == 0
        assert json.loads(capsys.readouterr().out)["summary"]["orphanedTestCount"] == 1
        assert req(repo, "unignore-test", "./src/auth.test.ts:logs out") == 0

    def test_ignore_unknown_test(self, repo):
        assert req(repo, "ignore-test", "src/auth.test.ts:ghost", "--reason", "x") == 1


class TestImportResults:
    def test_json_is_stored_as_junit(self, repo, write_file, capsys):
        write_file(repo, "results.json", json.dumps([
            {"file": "src/auth.test.ts", "identifier": "logs in", "status": "failed", "errorMessage": "nope"},
        ]))
        assert req(repo, "import-results", "results.json") == 0
        assert "Imported 1 test results" in capsys.readouterr().out
        assert get_test_results_path(repo).read_text().lstrip().startswith("<?xml")

        req(repo, "link", "auth/REQ_login.yml", "src/auth.test.ts:logs in")
        capsys.readouterr()
        req(repo, "check", "--json")
        link = json.loads(capsys.readouterr().out)["requirements"][0]["requirements"][0]["tests"][0]
        assert link["lastResult"] == "failed"
        assert "lastRunAt" in link

    def test_missing_and_invalid_files(self, repo, write_file, capsys):
        assert req(repo, "import-results", "missing.xml") == 1
        write_file(repo, "out.txt", "PASS everything")
        assert req(repo, "import-results", "out.txt") == 1
        err = capsys.readouterr().err
        assert "File not found" in err
        assert "Could not detect" in err


class TestValidateCommand:
    def test_formats(self, capsys):
        assert main(["validate", "given a when b then c"]) == 0
        assert capsys.readouterr().out == "Given a\nWhen b\nThen c\n"

    def test_invalid(self, capsys):
        assert main(["validate", "When b Then c"]) == 1
        assert "Must start with 'Given'" in capsys.readouterr().err

    def test_warning(self, capsys):
        assert main(["validate", "Given a When b Then c Given d When e Then f"]) == 0
        assert "WARNING: Multiple Given/When/Then blocks" in capsys.readouterr().err


class TestRunCommand:
    RUNNER = (
        "import sys\n"
        "args = sys.argv[1:]\n"
        "out = args[args.index('--reporter-outfile') + 1]\n"
        "open(out, 'w').write('<testsuites><testsuite file=\"src/auth.test.ts\">'\n"
        "                     '<testcase name=\"logs in\"/></testsuite></testsuites>')\n"
        "print('1 pass')\n"
    )

    def test_run_stores_results(self, repo, write_file, capsys):
        script = write_file(repo, "runner.py", self.RUNNER)
        runner = f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"
        assert req(repo, "init", "--force", "--test-runner", runner) == 0

        assert req(repo, "run", "--file", "src/auth.test.ts") == 0
        out = capsys.readouterr().out
        assert "Running tests in src/auth.test.ts" in out
        assert "1 pass" in out
        assert "All tests passed" in out
        assert get_test_results_path(repo).exists()
