"""Exceptions and warnings raised while planning and running a build."""


class BuildError(Exception):
    """Base class for every failure incbuild reports."""


class ConfigError(BuildError):
    """The build configuration is malformed or incomplete."""


class CompileError(BuildError):
    """The compiler rejected a source unit.

    ``diagnostic`` holds the compiler output verbatim.
    """

    def __init__(self, unit, diagnostic, returncode=None):
        self.unit = unit
        self.diagnostic = diagnostic
        self.returncode = returncode
        super().__init__(f'failed to compile {unit} (exit status {returncode})')


class LinkError(BuildError):
    """The linker failed to produce the executable."""

    def __init__(self, output, diagnostic, returncode=None):
        self.output = output
        self.diagnostic = diagnostic
        self.returncode = returncode
        super().__init__(f'failed to link {output} (exit status {returncode})')


class BuildFailed(BuildError):
    """Several compilations failed during a keep-going build."""

    def __init__(self, errors):
        self.errors = list(errors)
        units = ', '.join(str(e.unit) for e in self.errors)
        super().__init__(f'{len(self.errors)} unit(s) failed to compile: {units}')


class MissingDependencyWarning(UserWarning):
    """A path listed in a dependency record no longer exists."""
