"""
Path resolution: which file ships for a source, and where it goes.

Maps source files to their compiled output (and compiler-generated
siblings) and computes their deploy directory under one of four
DeployPathStrategy values.
"""

from .project import Module, ProjectLayout, canonical_path, discover_project
from .resolver import (
    OutputResolution,
    PathResolver,
    effective_strategy,
    find_sibling_artifacts,
    relative_deploy_path,
    resolve_output,
)

__all__ = [
    "Module",
    "ProjectLayout",
    "canonical_path",
    "discover_project",
    "OutputResolution",
    "PathResolver",
    "effective_strategy",
    "find_sibling_artifacts",
    "relative_deploy_path",
    "resolve_output",
]
