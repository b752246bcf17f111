"""Build configuration.

A `BuildConfig` is passed explicitly to the planner. It can be read from a
``Make.inc``-style file holding plain variable assignments::

    SOURCES   = main.c a.c b.c
    TARGET    = app
    BUILD_DIR = build
    DEPS_DIR  = .d
    CC        = gcc
    CFLAGS    = -Wall -O2
    INCLUDES  = include
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigError
from .parser import Tokens, parse, split_words
from .records import stem

logger = logging.getLogger(__name__)

_ASSIGNMENT = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*)\s*([+:?]?=)\s*(.*)$')
_REFERENCE = re.compile(r'\$[({]([A-Za-z_][A-Za-z0-9_]*)[)}]')

_LIST_VARIABLES = ('SOURCES', 'CFLAGS', 'LDFLAGS', 'INCLUDES')


@dataclass
class BuildConfig:
    sources: list[Path]
    target: str
    root: Path = Path('.')
    build_dir: Path = Path('build')
    deps_dir: Path = Path('.d')
    cc: str = 'gcc'
    cflags: list[str] = field(default_factory=list)
    ldflags: list[str] = field(default_factory=list)
    include_dirs: list[Path] = field(default_factory=list)
    jobs: int = 1
    keep_going: bool = False

    def __post_init__(self):
        self.root = Path(self.root)
        self.sources = [Path(s) for s in self.sources]
        self.build_dir = Path(self.build_dir)
        self.deps_dir = Path(self.deps_dir)
        self.include_dirs = [Path(p) for p in self.include_dirs]
        # clean() removes the build directory and must never reach the records
        if self.deps_dir == self.build_dir or self.build_dir in self.deps_dir.parents:
            raise ConfigError(f'DEPS_DIR {self.deps_dir} must not live inside BUILD_DIR {self.build_dir}')
        if self.jobs < 1:
            raise ConfigError(f'jobs must be at least 1, got {self.jobs}')
        # each source owns its object, record and pending record
        owners = {}
        for source in self.sources:
            name = stem(source)
            if name in owners:
                raise ConfigError(f'{owners[name]} and {source} would share the artifacts of {name.as_posix()}')
            owners[name] = source

    @property
    def build_path(self) -> Path:
        return self.root / self.build_dir

    @property
    def deps_path(self) -> Path:
        return self.root / self.deps_dir

    @property
    def executable(self) -> Path:
        return self.build_path / self.target


def expand(value: str, variables: dict[str, str]) -> str:
    """Substitute ``$(NAME)`` and ``${NAME}`` references.

    Unknown names fall back to the environment, then to the empty string.
    """
    def lookup(m):
        name = m.group(1)
        return variables.get(name, os.environ.get(name, ''))
    return _REFERENCE.sub(lookup, value)


def parse_variables(fd) -> dict[str, str]:
    variables: dict[str, str] = {}
    for token, line in parse(fd):
        if token != Tokens.expression:
            what = line['targets'] if token == Tokens.rule else line
            raise ConfigError(f'unsupported {token} in configuration: {what!r}')
        line = line.split(' #', 1)[0].strip()
        m = _ASSIGNMENT.match(line)
        if not m:
            raise ConfigError(f'cannot parse configuration line: {line!r}')
        name, op, value = m.groups()
        if op == '?=' and name in variables:
            continue
        if op == ':=':
            value = expand(value, variables)
        if op == '+=' and name in variables:
            value = f'{variables[name]} {value}'.strip()
        variables[name] = value
    return {name: expand(value, variables) for name, value in variables.items()}


def load_config(path, **overrides) -> BuildConfig:
    """Read a configuration file; keyword arguments override its values."""
    path = Path(path)
    try:
        with open(path) as fd:
            variables = parse_variables(fd)
    except OSError as e:
        raise ConfigError(f'cannot read configuration {path}: {e}') from e

    for name in ('SOURCES', 'TARGET'):
        if not variables.get(name, '').strip():
            raise ConfigError(f'{path}: {name} is not set')

    lists = {name: split_words(variables.get(name, '')) for name in _LIST_VARIABLES}
    settings = dict(
        sources=lists['SOURCES'],
        target=variables['TARGET'].strip(),
        root=path.parent,
        cflags=lists['CFLAGS'],
        ldflags=lists['LDFLAGS'],
        include_dirs=lists['INCLUDES'],
    )
    for name, key in (('BUILD_DIR', 'build_dir'), ('DEPS_DIR', 'deps_dir'), ('CC', 'cc')):
        if variables.get(name, '').strip():
            settings[key] = variables[name].strip()
    settings.update({k: v for k, v in overrides.items() if v is not None})

    config = BuildConfig(**settings)
    logger.debug('loaded %d source(s) from %s', len(config.sources), path)
    return config
