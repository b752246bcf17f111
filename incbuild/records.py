"""Source units, dependency records and build artifacts on disk."""

import contextlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .parser import parse_depfile

logger = logging.getLogger(__name__)

RECORD_SUFFIX = '.d'
PENDING_RECORD_SUFFIX = '.Td'
OBJECT_SUFFIX = '.o'


def stem(path: Path) -> Path:
    """Relative, suffix-less name used to place a unit's artifacts.

    >>> stem(Path('src/a.c')).as_posix()
    'src/a'
    >>> stem(Path('/abs/b.c')).as_posix()
    'abs/b'
    >>> stem(Path('../lib/c.c')).as_posix()
    '__/lib/c'
    """
    parts = [p for p in path.with_suffix('').parts if p != path.anchor]
    return Path(*('__' if p == '..' else p for p in parts))


def mtime_ns(path):
    """Modification time of path in nanoseconds, or None if it is absent."""
    try:
        return os.stat(path).st_mtime_ns
    except FileNotFoundError:
        return None


def ensure_dir(path):
    # "already exists" is success, including when another worker won the race
    Path(path).mkdir(parents=True, exist_ok=True)


@dataclass(frozen=True)
class SourceUnit:
    path: Path
    mtime_ns: int
    object_path: Path
    record_path: Path

    @property
    def pending_record_path(self) -> Path:
        return self.record_path.with_suffix(PENDING_RECORD_SUFFIX)

    @classmethod
    def discover(cls, path, config):
        """Stat a configured source; raises FileNotFoundError if it is gone."""
        path = Path(path)
        st = os.stat(config.root / path)
        name = stem(path)
        return cls(
            path=path,
            mtime_ns=st.st_mtime_ns,
            object_path=config.build_path / name.with_suffix(OBJECT_SUFFIX),
            record_path=config.deps_path / name.with_suffix(RECORD_SUFFIX),
        )


@dataclass(frozen=True)
class DependencyRecord:
    unit: Path
    dependencies: tuple
    generated_ns: int

    @classmethod
    def read(cls, unit: SourceUnit):
        """Load the record of unit, or None when there is no usable one."""
        try:
            with open(unit.record_path) as fd:
                _, deps = parse_depfile(fd)
            generated = os.stat(unit.record_path).st_mtime_ns
        except FileNotFoundError:
            return None
        except ValueError as e:
            logger.warning('ignoring malformed dependency record %s: %s', unit.record_path, e)
            return None
        return cls(unit=unit.path, dependencies=tuple(deps), generated_ns=generated)


@dataclass(frozen=True)
class BuildArtifact:
    path: Path
    mtime_ns: int

    @classmethod
    def stat(cls, path):
        return cls(path=Path(path), mtime_ns=os.stat(path).st_mtime_ns)


def _fsync(path):
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


@contextlib.contextmanager
def scoped_write(path, pending=None):
    """Yield a temporary path that replaces ``path`` only if the block succeeds.

    On any exception the temporary file is removed and ``path`` is left
    exactly as it was.
    """
    path = Path(path)
    pending = Path(pending) if pending else path.with_name(f'.{path.name}.tmp')
    ensure_dir(path.parent)
    with contextlib.suppress(FileNotFoundError):
        os.unlink(pending)
    try:
        yield pending
        _fsync(pending)
        os.replace(pending, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(pending)
        raise
