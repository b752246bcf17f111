"""CLI entry point: python3 -m incbuild

Commands:
  build     (default) recompile stale units and relink if needed
  clean     remove objects and the executable, keep dependency records
  reset     clean, then remove dependency records too
  plan      show what build would do without doing it
  affected  list the units whose dependency records mention a path
"""

import argparse
import logging
import sys

from .config import load_config
from .errors import BuildError, BuildFailed, CompileError, ConfigError, LinkError
from .planner import IncrementalBuildPlanner

logger = logging.getLogger('incbuild')


def main(argv=None):
    parser = argparse.ArgumentParser(prog='incbuild', description='Incremental C build')
    parser.add_argument('command', nargs='?', default='build',
                        choices=('build', 'clean', 'reset', 'plan', 'affected'))
    parser.add_argument('path', nargs='?', help='Path to look up with the affected command')
    parser.add_argument('-f', '--file', default='Make.inc', help='Build configuration file')
    parser.add_argument('-j', '--jobs', type=int, help='Number of parallel compilations')
    parser.add_argument('-k', '--keep-going', action='store_true', default=None,
                        help='Keep compiling other units after a failure')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log staleness decisions')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
    )

    if args.command == 'affected' and not args.path:
        parser.error('affected requires a path')

    try:
        config = load_config(args.file, jobs=args.jobs, keep_going=args.keep_going)
    except ConfigError as e:
        _error_exit(e, status=2)

    planner = IncrementalBuildPlanner(config)
    try:
        return _dispatch(planner, args)
    except (ValueError, FileNotFoundError) as e:
        _error_exit(e, status=2)
    except BuildError as e:
        _error_exit(e)


def _dispatch(planner, args):
    if args.command == 'build':
        report = planner.build()
        logger.info('%d unit(s) compiled%s', len(report.compiled), ', linked' if report.linked else '')
    elif args.command == 'clean':
        planner.clean()
    elif args.command == 'reset':
        planner.reset()
    elif args.command == 'plan':
        plan = planner.plan()
        for unit in plan.to_compile:
            print(f'compile {unit.path}')
        if plan.must_link:
            print(f'link {planner.config.executable}')
    elif args.command == 'affected':
        for unit in sorted(planner.affected_by(args.path)):
            print(unit)
    return 0


def _error_exit(error, status=1):
    """Report error on stderr, with compiler/linker output verbatim, and exit."""
    errors = error.errors if isinstance(error, BuildFailed) else [error]
    for e in errors:
        sys.stderr.write(f'incbuild: {e}\n')
        if isinstance(e, (CompileError, LinkError)) and e.diagnostic:
            sys.stderr.write(e.diagnostic)
            if not e.diagnostic.endswith('\n'):
                sys.stderr.write('\n')
    if isinstance(error, BuildFailed):
        sys.stderr.write(f'incbuild: {error}\n')
    sys.exit(status)


if __name__ == '__main__':
    sys.exit(main())
