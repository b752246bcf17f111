"""Compiler and linker collaborators.

The planner only depends on the `Compiler` and `Linker` protocols; `GccToolchain`
implements both by running a gcc-compatible driver.
"""

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Protocol, Sequence

from .errors import CompileError, LinkError

logger = logging.getLogger(__name__)


class Compiler(Protocol):
    def compile(self, source: Path, include_dirs: Sequence[Path], object_path: Path,
                depfile_path: Path, target_name: str) -> None:
        """Compile source into object_path and list its dependencies in depfile_path.

        Raises:
            CompileError with the compiler diagnostic on failure.
        """
        ...


class Linker(Protocol):
    def link(self, objects: Sequence[Path], output: Path) -> None:
        """Link objects into output.

        Raises:
            LinkError with the linker diagnostic on failure.
        """
        ...


class GccToolchain:
    """gcc (or clang) driver run from the project root."""

    def __init__(self, cc='gcc', cflags=(), ldflags=(), cwd=None):
        self.cc = cc
        self.cflags = list(cflags)
        self.ldflags = list(ldflags)
        self.cwd = cwd

    @classmethod
    def from_config(cls, config):
        return cls(config.cc, config.cflags, config.ldflags, cwd=config.root)

    def _run(self, cmd):
        logger.debug('running %s', shlex.join(cmd))
        return subprocess.run(cmd, cwd=self.cwd, capture_output=True, text=True)

    def compile(self, source, include_dirs, object_path, depfile_path, target_name):
        # -MD writes dependencies as a side effect of compiling, -MP adds an
        # empty rule per header so deleted headers do not break later parses
        cmd = [
            self.cc,
            '-MT', target_name, '-MD', '-MP', '-MF', str(depfile_path),
            '-c', str(source),
            *self.cflags,
            *(f'-I{d}' for d in include_dirs),
            '-o', str(object_path),
        ]
        proc = self._run(cmd)
        if proc.returncode != 0:
            raise CompileError(source, proc.stderr + proc.stdout, proc.returncode)
        if proc.stderr:
            logger.warning('%s:\n%s', source, proc.stderr.rstrip())

    def link(self, objects, output):
        cmd = [self.cc, *(str(o) for o in objects), *self.ldflags, '-o', str(output)]
        proc = self._run(cmd)
        if proc.returncode != 0:
            raise LinkError(output, proc.stderr + proc.stdout, proc.returncode)
