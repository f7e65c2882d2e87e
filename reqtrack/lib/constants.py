"""Shared constants for reqtrack."""

import re

# Layout of the .requirements directory
REQUIREMENTS_DIR = ".requirements"
CONFIG_FILE = "config.yml"
CACHE_FILE = "cache.json"
CACHE_LOCK_FILE = "cache.lock"
IGNORED_TESTS_FILE = "ignored-tests.yml"
TEST_RESULTS_FILE = "test-results.xml"

# Requirement files are REQ_<name>.yml at any depth
REQUIREMENT_FILE_PATTERN = re.compile(r'^REQ_[A-Za-z0-9_.-]+\.yml$')

CACHE_VERSION = 1

DEFAULT_TEST_GLOB = "**/*.test.{ts,js,tsx,jsx}"
DEFAULT_TEST_RUNNER = "bun test"
DEFAULT_TEST_NAMES = ("it", "test", "Bun.test")
DEFAULT_MAX_WORKERS = 8

# Directories never scanned for test files
SKIP_DIRS = frozenset({"node_modules", ".git", REQUIREMENTS_DIR})

PRIORITIES = ("critical", "high", "medium", "low")
IMPLEMENTATION_STATUSES = ("planned", "done")
