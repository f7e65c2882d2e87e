"""
Fingerprint cache for test extraction.

Stores, per scan, the mtime of every test file and the hash of every test.
Bodies are not stored: they are only needed to compute hashes. A cache is
reused only if the set of test files and all their mtimes are unchanged.

Persistence goes through a CacheStore so callers can inject an in-memory
store; FileCacheStore writes atomically under an exclusive lock.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from reqtrack.lib import validate
from reqtrack.lib.constants import (
    CACHE_FILE,
    CACHE_LOCK_FILE,
    CACHE_VERSION,
    DEFAULT_TEST_NAMES,
    REQUIREMENTS_DIR,
)
from reqtrack.lib.extract import extract_all_tests, find_test_files, get_file_mtimes
from reqtrack.lib.locking import file_lock
from reqtrack.lib.types import ExtractedTest, make_test_key, split_test_key

logger = logging.getLogger(__name__)


@dataclass
class TestCache:
    """On-disk cache contents."""
    __test__ = False

    version: int
    generated_at: str
    file_mtimes: dict[str, float] = field(default_factory=dict)
    tests: dict[str, str] = field(default_factory=dict)  # "file:identifier" -> hash

    @classmethod
    def from_dict(cls, data: dict) -> "TestCache":
        return cls(
            version=data["version"],
            generated_at=data["generatedAt"],
            file_mtimes=dict(data["fileMtimes"]),
            tests=dict(data["tests"]),
        )

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "generatedAt": self.generated_at,
            "fileMtimes": self.file_mtimes,
            "tests": self.tests,
        }


@dataclass
class CachedTests:
    """Result of get_tests_with_cache."""
    tests: list[ExtractedTest]
    from_cache: bool


class CacheStore(Protocol):
    def load(self) -> TestCache | None: ...

    def save(self, cache: TestCache) -> None: ...


class MemoryCacheStore:
    """Keeps the cache in memory. For tests and embedding callers."""

    def __init__(self, cache: TestCache | None = None):
        self.cache = cache
        self.saves = 0

    def load(self) -> TestCache | None:
        return self.cache

    def save(self, cache: TestCache) -> None:
        self.cache = cache
        self.saves += 1


class FileCacheStore:
    """JSON cache file with atomic, locked writes."""

    def __init__(self, path: Path, lock_path: Path | None = None, lock_timeout: float = 30):
        self.path = path
        self.lock_path = lock_path or path.with_suffix(".lock")
        self.lock_timeout = lock_timeout

    def load(self) -> TestCache | None:
        """Load the cache, or None if missing, corrupt or schema-invalid."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
            validate.validate(data, "cache")
            return TestCache.from_dict(data)
        except (OSError, json.JSONDecodeError, validate.ValidationError) as e:
            logger.warning(f"Ignoring unreadable cache {self.path}: {e}")
            return None

    def save(self, cache: TestCache) -> None:
        """Replace the cache file.

        Writes a temp file in the same directory and renames it over the
        old one, so an interrupted write never leaves a torn cache.

        Raises:
            LockTimeout: if another writer holds the lock
        """
        data = cache.to_dict()
        validate.validate_before_write(data, "cache", self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with file_lock(self.lock_path, self.lock_timeout):
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(data, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise


def project_cache_store(cwd: Path) -> FileCacheStore:
    """The FileCacheStore at .requirements/cache.json."""
    req_dir = cwd / REQUIREMENTS_DIR
    return FileCacheStore(req_dir / CACHE_FILE, lock_path=req_dir / CACHE_LOCK_FILE)


def is_cache_valid(cache: TestCache, current_mtimes: dict[str, float]) -> bool:
    """
    Check whether cache still describes the current test files.

    Invalid if the version differs, a file was added or deleted, or any
    file's mtime changed.
    """
    if cache.version != CACHE_VERSION:
        return False

    for file in current_mtimes:
        if file not in cache.file_mtimes:
            return False  # New file

    for file, cached_mtime in cache.file_mtimes.items():
        current = current_mtimes.get(file)
        if current is None:
            return False  # Deleted file
        if current != cached_mtime:
            return False  # Modified file

    return True


def build_cache(tests: list[ExtractedTest], file_mtimes: dict[str, float]) -> TestCache:
    """Build a cache from freshly extracted tests."""
    return TestCache(
        version=CACHE_VERSION,
        generated_at=datetime.now(timezone.utc).isoformat(),
        file_mtimes=dict(file_mtimes),
        tests={make_test_key(t.file, t.identifier): t.hash for t in tests},
    )


def cache_to_tests(cache: TestCache) -> list[ExtractedTest]:
    """
    Convert cache entries back to ExtractedTest objects with empty bodies.

    Raises:
        ValueError: on a malformed key
    """
    tests = []
    for key, test_hash in cache.tests.items():
        file, identifier = split_test_key(key)
        tests.append(ExtractedTest(file=file, identifier=identifier, body="", hash=test_hash))
    tests.sort(key=lambda t: (t.file, t.identifier))
    return tests


def get_tests_with_cache(
    cwd: Path,
    test_glob: str,
    store: CacheStore,
    no_cache: bool = False,
    names=DEFAULT_TEST_NAMES,
    hash_scope: str = "call",
    max_workers: int | None = None,
) -> CachedTests:
    """
    Get tests, using the cache if valid, otherwise extracting fresh.

    With no_cache the cache is never read but is still overwritten.
    """
    files = find_test_files(cwd, test_glob)
    mtimes = get_file_mtimes(cwd, files)

    if not no_cache:
        existing = store.load()
        if existing is not None and is_cache_valid(existing, mtimes):
            try:
                tests = cache_to_tests(existing)
                logger.debug(f"Cache hit: {len(tests)} test(s)")
                return CachedTests(tests=tests, from_cache=True)
            except ValueError as e:
                logger.warning(f"Ignoring corrupt cache: {e}")

    tests = extract_all_tests(
        cwd, test_glob, names=names, hash_scope=hash_scope,
        max_workers=max_workers, files=files,
    )
    store.save(build_cache(tests, mtimes))
    return CachedTests(tests=tests, from_cache=False)
