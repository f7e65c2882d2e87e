#!/usr/bin/env python3
"""req CLI entrypoint."""

import sys
import argparse
import logging
from pathlib import Path

from reqtrack.lib.config import ConfigError, load_config
from reqtrack.lib.constants import PRIORITIES
from reqtrack.commands import init as cmd_init_module
from reqtrack.commands import add as cmd_add_module
from reqtrack.commands import check as cmd_check_module
from reqtrack.commands import link as cmd_link_module
from reqtrack.commands import confirm as cmd_confirm_module
from reqtrack.commands import assess as cmd_assess_module
from reqtrack.commands import ignore as cmd_ignore_module
from reqtrack.commands import import_results as cmd_import_results_module
from reqtrack.commands import run as cmd_run_module
from reqtrack.commands import validate as cmd_validate_module


def get_cwd(args) -> Path:
    """Project root from --cwd or the current directory."""
    return Path(args.cwd).resolve() if args.cwd else Path.cwd()


def get_project_config(args):
    """Load config for the project, exiting if it is not initialized."""
    cwd = get_cwd(args)
    try:
        return load_config(cwd), cwd
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)


def cmd_init(args):
    return cmd_init_module.cmd_init(args, get_cwd(args))


def cmd_add(args):
    config, cwd = get_project_config(args)
    return cmd_add_module.cmd_add(args, cwd, config)


def cmd_check(args):
    config, cwd = get_project_config(args)
    return cmd_check_module.cmd_check(args, cwd, config)


def cmd_link(args):
    config, cwd = get_project_config(args)
    return cmd_link_module.cmd_link(args, cwd, config)


def cmd_unlink(args):
    config, cwd = get_project_config(args)
    return cmd_link_module.cmd_unlink(args, cwd, config)


def cmd_confirm(args):
    config, cwd = get_project_config(args)
    return cmd_confirm_module.cmd_confirm(args, cwd, config)


def cmd_assess(args):
    config, cwd = get_project_config(args)
    return cmd_assess_module.cmd_assess(args, cwd, config)


def cmd_ignore_test(args):
    config, cwd = get_project_config(args)
    return cmd_ignore_module.cmd_ignore_test(args, cwd, config)


def cmd_unignore_test(args):
    config, cwd = get_project_config(args)
    return cmd_ignore_module.cmd_unignore_test(args, cwd, config)


def cmd_import_results(args):
    config, cwd = get_project_config(args)
    return cmd_import_results_module.cmd_import_results(args, cwd, config)


def cmd_run(args):
    config, cwd = get_project_config(args)
    return cmd_run_module.cmd_run(args, cwd, config)


def cmd_validate(args):
    return cmd_validate_module.cmd_validate(args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='req',
        description='Track requirements and verify the tests that cover them'
    )
    parser.add_argument('--cwd', help='Project root (default: current directory)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # req init
    p_init = subparsers.add_parser('init', help='Create .requirements/ with default config')
    p_init.add_argument('--force', action='store_true', help='Overwrite existing config.yml')
    p_init.add_argument('--test-glob', help='Glob for test files')
    p_init.add_argument('--test-runner', help='Command that runs the tests')
    p_init.set_defaults(func=cmd_init)

    # req add
    p_add = subparsers.add_parser('add', help='Create a requirement from Gherkin text')
    p_add.add_argument('path', help='Requirement path (e.g. auth/REQ_login.yml)')
    p_add.add_argument('--gherkin', '-g', required=True, help='Given/When/Then steps')
    p_add.add_argument('--status', choices=['planned', 'done'], default='planned')
    p_add.add_argument('--priority', choices=list(PRIORITIES))
    p_add.add_argument('--tags', help='Comma-separated tags')
    p_add.add_argument('--force', action='store_true', help='Overwrite an existing requirement')
    p_add.set_defaults(func=cmd_add)

    # req check
    p_check = subparsers.add_parser('check', help='Report verification state')
    p_check.add_argument('path', nargs='?', help='Folder or file under .requirements/ (e.g. auth/)')
    p_check.add_argument('--json', action='store_true', help='Print the report as JSON')
    p_check.add_argument('--no-cache', action='store_true', help='Re-extract all tests')
    p_check.set_defaults(func=cmd_check)

    # req link
    p_link = subparsers.add_parser('link', help='Link a test to a requirement')
    p_link.add_argument('requirement', help='Requirement path (e.g. auth/REQ_login.yml)')
    p_link.add_argument('test', help='Test as file:identifier')
    p_link.set_defaults(func=cmd_link)

    # req unlink
    p_unlink = subparsers.add_parser('unlink', help='Remove a test link')
    p_unlink.add_argument('requirement', help='Requirement path')
    p_unlink.add_argument('test', help='Test as file:identifier')
    p_unlink.set_defaults(func=cmd_unlink)

    # req confirm
    p_confirm = subparsers.add_parser('confirm', help='Accept the current code of a linked test')
    p_confirm.add_argument('requirement', help='Requirement path')
    p_confirm.add_argument('test', help='Test as file:identifier')
    p_confirm.set_defaults(func=cmd_confirm)

    # req assess
    p_assess = subparsers.add_parser('assess', help='Record a coverage assessment')
    p_assess.add_argument('requirement', help='Requirement path')
    p_assess.add_argument('--result', '-r', required=True,
                          help='JSON: {"sufficient": true, "notes": "..."}')
    p_assess.set_defaults(func=cmd_assess)

    # req ignore-test
    p_ignore = subparsers.add_parser('ignore-test', help='Exclude a test from orphan detection')
    p_ignore.add_argument('test', help='Test as file:identifier')
    p_ignore.add_argument('--reason', required=True, help='Why the test needs no requirement')
    p_ignore.set_defaults(func=cmd_ignore_test)

    # req unignore-test
    p_unignore = subparsers.add_parser('unignore-test', help='Remove a test from the ignore list')
    p_unignore.add_argument('test', help='Test as file:identifier')
    p_unignore.set_defaults(func=cmd_unignore_test)

    # req import-results
    p_import = subparsers.add_parser('import-results', help='Import results of an external test run')
    p_import.add_argument('file', help='JUnit XML or JSON results file')
    p_import.add_argument('--format', choices=['junit-xml', 'json'], help='Skip format detection')
    p_import.set_defaults(func=cmd_import_results)

    # req run
    p_run = subparsers.add_parser('run', help='Run tests and store results')
    p_run.add_argument('--file', help='Only run this test file')
    p_run.add_argument('--identifier', help='Only run tests matching this name')
    p_run.set_defaults(func=cmd_run)

    # req validate
    p_validate = subparsers.add_parser('validate', help='Check and format Gherkin text')
    p_validate.add_argument('text', help='Gherkin steps')
    p_validate.set_defaults(func=cmd_validate)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
