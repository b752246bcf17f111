from .config import BuildConfig, load_config
from .errors import (
    BuildError,
    BuildFailed,
    CompileError,
    ConfigError,
    LinkError,
    MissingDependencyWarning,
)
from .planner import BuildPlan, BuildReport, IncrementalBuildPlanner
from .records import BuildArtifact, DependencyRecord, SourceUnit
