"""Incremental build planning and execution.

A unit is stale, and must be recompiled, when any of these holds:

- its object file does not exist
- it has no dependency record (first build, or the record was reset)
- the unit itself is newer than its object
- a path listed in its record is newer than its object
- a path listed in its record no longer exists

The executable is relinked iff at least one unit is stale or the executable
itself is missing.
"""

import concurrent.futures
import contextlib
import logging
import os
import shutil
import warnings
from dataclasses import dataclass, field
from pathlib import Path

from .errors import BuildFailed, CompileError, MissingDependencyWarning
from .parser import get_influences
from .records import BuildArtifact, DependencyRecord, SourceUnit, mtime_ns, scoped_write
from .toolchain import GccToolchain

logger = logging.getLogger(__name__)


@dataclass
class BuildPlan:
    to_compile: list = field(default_factory=list)
    must_link: bool = False


@dataclass
class BuildReport:
    compiled: list = field(default_factory=list)
    linked: bool = False


class IncrementalBuildPlanner:

    def __init__(self, config, compiler=None, linker=None):
        self.config = config
        if compiler is None or linker is None:
            gcc = GccToolchain.from_config(config)
            compiler = compiler or gcc
            linker = linker or gcc
        self.compiler = compiler
        self.linker = linker

    def _resolve(self, path):
        # recorded paths are relative to the project root unless absolute
        return self.config.root / path

    def discover(self, sources=None):
        sources = self.config.sources if sources is None else sources
        return [SourceUnit.discover(s, self.config) for s in sources]

    def stale_reason(self, unit):
        """Why unit must be recompiled, or None if its object is fresh."""
        object_ns = mtime_ns(unit.object_path)
        if object_ns is None:
            return 'no object file'
        record = DependencyRecord.read(unit)
        if record is None:
            return 'no dependency record'
        if unit.mtime_ns > object_ns:
            return f'{unit.path} is newer than its object'
        for dep in record.dependencies:
            dep_ns = mtime_ns(self._resolve(dep))
            if dep_ns is None:
                message = f'{dep}, recorded as a dependency of {unit.path}, no longer exists'
                logger.warning('%s', message)
                warnings.warn(message, MissingDependencyWarning, stacklevel=3)
                return f'{dep} vanished'
            if dep_ns > object_ns:
                return f'{dep} is newer than its object'
        return None

    def plan(self, units=None):
        if units is None:
            units = self.discover()
        units = list(units)
        if not units:
            raise ValueError('nothing to build: no source units given')
        for unit in units:
            if not self._resolve(unit.path).exists():
                raise FileNotFoundError(f'source unit {unit.path} does not exist')

        plan = BuildPlan()
        for unit in units:
            reason = self.stale_reason(unit)
            if reason is None:
                logger.debug('%s is up to date', unit.path)
                continue
            logger.debug('%s is stale: %s', unit.path, reason)
            plan.to_compile.append(unit)
        plan.must_link = bool(plan.to_compile) or not self.config.executable.exists()
        return plan

    def compile(self, unit):
        logger.info('compiling %s', unit.path)
        # the record goes in first: if committing the object then fails, the
        # old object is still older than the changed inputs and stays stale
        with scoped_write(unit.object_path) as object_tmp:
            with scoped_write(unit.record_path, unit.pending_record_path) as record_tmp:
                self.compiler.compile(
                    unit.path,
                    self.config.include_dirs,
                    object_tmp.resolve(),
                    record_tmp.resolve(),
                    str(unit.object_path),
                )
        # some compilers leave the object older than its dependency file
        os.utime(unit.object_path)
        record = DependencyRecord.read(unit)
        if record is None:
            raise CompileError(unit.path, f'no usable dependency record written to {unit.record_path}')
        return record

    def link(self, objects):
        output = self.config.executable
        logger.info('linking %s', output)
        with scoped_write(output) as output_tmp:
            self.linker.link([Path(o.path).resolve() for o in objects], output_tmp.resolve())
        return BuildArtifact.stat(output)

    def _compile_all(self, units):
        compiled = []
        errors = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.config.jobs) as executor:
            futures = {executor.submit(self.compile, unit): unit for unit in units}
            for future in concurrent.futures.as_completed(futures):
                try:
                    future.result()
                except CompileError as e:
                    errors.append(e)
                    if not self.config.keep_going:
                        # running compilations still finish and commit
                        executor.shutdown(wait=True, cancel_futures=True)
                        raise
                    logger.error('%s', e)
                else:
                    compiled.append(futures[future])
        if errors:
            raise BuildFailed(errors)
        return compiled

    def build(self, sources=None):
        units = self.discover(sources)
        plan = self.plan(units)
        report = BuildReport()
        if plan.to_compile:
            # the old executable no longer matches the objects; with it gone,
            # an interrupted compile or link still leaves must_link set
            with contextlib.suppress(FileNotFoundError):
                os.unlink(self.config.executable)
            report.compiled = self._compile_all(plan.to_compile)
        if plan.must_link:
            objects = [BuildArtifact.stat(unit.object_path) for unit in units]
            self.link(objects)
            report.linked = True
        else:
            logger.info('%s is up to date', self.config.executable)
        return report

    def clean(self):
        """Delete objects, the executable and the build directory; keep records."""
        build_path = self.config.build_path
        if build_path.exists():
            logger.info('removing %s', build_path)
            shutil.rmtree(build_path)

    def reset(self):
        """clean() plus every dependency record."""
        self.clean()
        deps_path = self.config.deps_path
        if deps_path.exists():
            logger.info('removing %s', deps_path)
            shutil.rmtree(deps_path)

    def affected_by(self, path, units=None):
        """Units whose dependency records list path."""
        if units is None:
            units = self.discover()
        dependencies = {}
        for unit in units:
            record = DependencyRecord.read(unit)
            deps = record.dependencies if record else ()
            dependencies[unit.path.as_posix()] = [Path(d).as_posix() for d in deps]
        return get_influences(dependencies).get(Path(path).as_posix(), set())
