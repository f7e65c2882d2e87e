"""
Shared data types for reqtrack.

This module contains dataclasses used across the engine, the store and the
commands to avoid circular imports. Records that cross a YAML/JSON boundary
carry from_dict/to_dict helpers; on disk keys are camelCase.
"""

from dataclasses import dataclass, field
from enum import Enum


class VerificationStatus(str, Enum):
    """Verification state of a requirement's linked tests."""
    NA = "n/a"  # No tests linked
    UNVERIFIED = "unverified"  # Tests linked, never assessed
    VERIFIED = "verified"  # Assessed, hashes match
    STALE = "stale"  # Assessed, at least one linked test changed


def make_test_key(file: str, identifier: str) -> str:
    """Identity key of a test: file + ':' + identifier."""
    return f"{file}:{identifier}"


def split_test_key(key: str) -> tuple[str, str]:
    """Split a 'file:identifier' key at the first colon.

    Raises:
        ValueError: if the key has no colon or an empty part
    """
    file, sep, identifier = key.partition(":")
    if not sep or not file or not identifier:
        raise ValueError(f"Invalid test key format: {key}")
    return file, identifier


@dataclass
class ExtractedTest:
    """A test declaration found in a source file."""
    file: str  # Path relative to the project root
    identifier: str  # Display name from the first string argument
    body: str  # Verbatim argument text after the name (empty when from cache)
    hash: str  # sha256 of the whitespace-normalized body

    @property
    def key(self) -> str:
        return make_test_key(self.file, self.identifier)


@dataclass
class TestLink:
    """Reference from a requirement to a test, pinned to a hash."""
    __test__ = False  # Not a pytest class

    file: str
    identifier: str
    hash: str
    linked_at: str | None = None

    @property
    def key(self) -> str:
        return make_test_key(self.file, self.identifier)

    @classmethod
    def from_dict(cls, data: dict) -> "TestLink":
        return cls(
            file=str(data["file"]),
            identifier=str(data["identifier"]),
            hash=str(data.get("hash", "")),
            linked_at=data.get("linkedAt"),
        )

    def to_dict(self) -> dict:
        result = {"file": self.file, "identifier": self.identifier, "hash": self.hash}
        if self.linked_at:
            result["linkedAt"] = self.linked_at
        return result


@dataclass
class Dependency:
    """Dependency on another requirement, by path."""
    path: str
    blocking: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "Dependency":
        blocking = data.get("blocking")
        return cls(path=str(data["path"]), blocking=blocking is not False)

    def to_dict(self) -> dict:
        return {"path": self.path, "blocking": self.blocking}


@dataclass
class Question:
    """Open question attached to a requirement."""
    question: str
    answer: str | None = None

    @property
    def answered(self) -> bool:
        return bool(self.answer)

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(question=str(data.get("question", "")), answer=data.get("answer"))

    def to_dict(self) -> dict:
        result = {"question": self.question}
        if self.answer is not None:
            result["answer"] = self.answer
        return result


@dataclass
class AIAssessment:
    """Recorded judgement that the linked tests cover the requirement."""
    sufficient: bool
    notes: str
    assessed_at: str

    @classmethod
    def from_dict(cls, data: dict) -> "AIAssessment":
        return cls(
            sufficient=bool(data.get("sufficient", False)),
            notes=str(data.get("notes", "")),
            assessed_at=str(data.get("assessedAt", "")),
        )

    def to_dict(self) -> dict:
        return {
            "sufficient": self.sufficient,
            "notes": self.notes,
            "assessedAt": self.assessed_at,
        }


# Keys owned by Requirement; anything else in the YAML is kept in `extra`
_REQUIREMENT_KEYS = {
    "gherkin", "tests", "status", "priority", "dependencies",
    "tags", "questions", "aiAssessment",
}


@dataclass
class Requirement:
    """A tracked requirement loaded from REQ_*.yml."""
    path: str  # Relative to the requirements dir, e.g. "auth/REQ_login.yml"
    gherkin: str
    status: str  # "planned" or "done"
    tests: list[TestLink] = field(default_factory=list)
    priority: str | None = None
    dependencies: list[Dependency] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    questions: list[Question] = field(default_factory=list)
    ai_assessment: AIAssessment | None = None
    extra: dict = field(default_factory=dict)  # Unknown keys, preserved on save

    @property
    def folder(self) -> str:
        """Folder prefix of the path ('auth/'), or '' at the root."""
        slash = self.path.rfind("/")
        return self.path[:slash + 1] if slash >= 0 else ""

    @property
    def unanswered_questions(self) -> int:
        return sum(1 for q in self.questions if not q.answered)

    @classmethod
    def from_dict(cls, path: str, data: dict) -> "Requirement":
        assessment = data.get("aiAssessment")
        return cls(
            path=path,
            gherkin=str(data.get("gherkin") or ""),
            status=data.get("status"),
            tests=[TestLink.from_dict(t) for t in data.get("tests") or []],
            priority=data.get("priority"),
            dependencies=[Dependency.from_dict(d) for d in data.get("dependencies") or []],
            tags=list(data.get("tags") or []),
            questions=[Question.from_dict(q) for q in data.get("questions") or []],
            ai_assessment=AIAssessment.from_dict(assessment) if assessment else None,
            extra={k: v for k, v in data.items() if k not in _REQUIREMENT_KEYS},
        )

    def to_dict(self) -> dict:
        result = {"gherkin": self.gherkin, "status": self.status}
        result.update(self.extra)
        result["tests"] = [t.to_dict() for t in self.tests]
        if self.priority:
            result["priority"] = self.priority
        if self.dependencies:
            result["dependencies"] = [d.to_dict() for d in self.dependencies]
        if self.tags:
            result["tags"] = list(self.tags)
        if self.questions:
            result["questions"] = [q.to_dict() for q in self.questions]
        if self.ai_assessment:
            result["aiAssessment"] = self.ai_assessment.to_dict()
        return result

    def find_test(self, file: str, identifier: str) -> TestLink | None:
        for link in self.tests:
            if link.file == file and link.identifier == identifier:
                return link
        return None


@dataclass
class IgnoredTest:
    """A test intentionally left without requirement coverage."""
    file: str
    identifier: str
    reason: str
    ignored_at: str | None = None

    @property
    def key(self) -> str:
        return make_test_key(self.file, self.identifier)

    @classmethod
    def from_dict(cls, data: dict) -> "IgnoredTest":
        return cls(
            file=str(data["file"]),
            identifier=str(data["identifier"]),
            reason=str(data.get("reason", "")),
            ignored_at=data.get("ignoredAt"),
        )

    def to_dict(self) -> dict:
        result = {"file": self.file, "identifier": self.identifier, "reason": self.reason}
        if self.ignored_at:
            result["ignoredAt"] = self.ignored_at
        return result


TEST_RESULT_STATUSES = ("passed", "failed", "skipped", "error")


@dataclass
class TestResult:
    """Outcome of one test from an external test run."""
    __test__ = False

    file: str
    identifier: str
    status: str  # passed, failed, skipped, error
    duration: float | None = None  # Milliseconds
    error_message: str | None = None

    def to_dict(self) -> dict:
        result = {"file": self.file, "identifier": self.identifier, "status": self.status}
        if self.duration is not None:
            result["duration"] = self.duration
        if self.error_message:
            result["errorMessage"] = self.error_message
        return result


@dataclass
class TestRunSummary:
    """Counts over a set of test results."""
    __test__ = False

    total: int = 0
    passed: int = 0
    failed: int = 0  # failed + error
    skipped: int = 0

    @classmethod
    def from_results(cls, results: list[TestResult]) -> "TestRunSummary":
        return cls(
            total=len(results),
            passed=sum(1 for r in results if r.status == "passed"),
            failed=sum(1 for r in results if r.status in ("failed", "error")),
            skipped=sum(1 for r in results if r.status == "skipped"),
        )

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
        }
