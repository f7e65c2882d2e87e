"""
req init - Create the .requirements directory and default config.
"""

from pathlib import Path

from reqtrack.lib.config import Config, config_exists, get_config_path, save_config
from reqtrack.lib.store import get_ignored_tests_path, save_ignored_tests


def cmd_init(args, cwd: Path) -> int:
    """Initialize requirement tracking in cwd."""
    if config_exists(cwd) and not args.force:
        print("Requirements already initialized.")
        print("Use --force to reset config.yml to defaults.")
        return 0

    config = Config()
    if args.test_glob:
        config.test_glob = args.test_glob
    if args.test_runner:
        config.test_runner = args.test_runner

    save_config(cwd, config)
    if not get_ignored_tests_path(cwd).exists():
        save_ignored_tests(cwd, [])

    print(f"Initialized {get_config_path(cwd).relative_to(cwd)}")
    print(f"  Test files: {config.test_glob}")
    print(f"  Test runner: {config.test_runner}")
    print("\nCreate requirements as .requirements/<folder>/REQ_<name>.yml")
    return 0
