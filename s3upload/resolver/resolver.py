"""
Source to output to deploy path resolution.

Two questions are answered for every source file of an upload:

1. Which file actually ships? Sources with a compiled behavior (java,
   groovy, ...) map to their compiled output, found through the
   extension's path mappings or the owning module's output directory.
   Compiler-generated siblings (nested types, 'Outer$Inner.class') travel
   with the output file.
2. Where does it go? The directory of the source, rewritten through the
   deploy path mappings, is cut according to the session's
   DeployPathStrategy and prefixed with the configured deploy path prefix.

All functions here are pure string algebra, except the existence check of
a computed output file and the sibling listing.

Example:
    >>> resolver = PathResolver(config, discover_project("/work/shop"))
    >>> resolution = resolver.resolve_output("/work/shop/core/src/main/java/a/B.java")
    >>> resolution.output_path
    '/work/shop/core/target/classes/a/B.class'
    >>> resolver.relative_deploy_path(resolution.source_path)
    'WEB-INF/classes/a/'
"""

import os
import posixpath
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from s3upload.errors import ResolutionError
from s3upload.resolver.project import (
    SEPARATOR,
    Module,
    ProjectLayout,
    canonical_path,
    is_under,
)
from s3upload.utils.config_loader import (
    DEFAULT_SOURCE_OUTPUT,
    CompiledBehavior,
    Config,
    DeployPathStrategy,
)
from s3upload.utils.logging import get_logger, log_function_call

logger = get_logger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


@dataclass(frozen=True)
class OutputResolution:
    """
    Output file of one source file.

    Attributes:
        source_path: Canonical source path
        output_path: File to upload (equals source_path when not derived)
        derived: True when output_path was computed from a rule
    """

    source_path: str
    output_path: str
    derived: bool = False


def file_extension(path: str) -> str:
    """Extension without dot ('' for none)."""
    return posixpath.splitext(posixpath.basename(path))[1][1:]


def replace_extension(path: str, extension: str, new_extension: str) -> str:
    """Swap a trailing '.extension' for '.new_extension'."""
    suffix = "." + extension
    if extension and path.endswith(suffix):
        return path[: -len(suffix)] + "." + new_extension
    return path


def _module_output_path(source_path: str, module: Module) -> Optional[str]:
    """outputDir + (source path - source root), None when not applicable."""
    if not module.output_dir:
        return None
    source_root = module.find_source_root(source_path)
    if source_root is None:
        return None
    return module.output_dir.rstrip(SEPARATOR) + source_path[len(source_root.rstrip(SEPARATOR)):]


@log_function_call
def resolve_output(
    source_file: PathLike,
    behavior: Optional[CompiledBehavior],
    module: Optional[Module] = None,
) -> OutputResolution:
    """
    Find the output file that corresponds to a source file.

    Resolution order: the extension's path mappings (first contained
    source substring wins), then the module's output directory, then the
    source path itself; the extension substitution applies to whichever
    path was produced. Without a behavior, the source is its own output and
    the file system is not touched.

    Args:
        source_file: Source file path
        behavior: Compiled behavior of the source extension, or None
        module: Owning module, None to skip module based conversion

    Returns:
        OutputResolution

    Raises:
        ResolutionError: If the computed output file doesn't exist
    """
    source_path = canonical_path(source_file)
    if behavior is None:
        return OutputResolution(source_path, source_path, derived=False)

    output_path: Optional[str] = None
    for source_part, output_part in behavior.path_mappings:
        if source_part in source_path:
            output_path = source_path.replace(source_part, output_part, 1)
            break

    if output_path is None and module is not None:
        output_path = _module_output_path(source_path, module)

    if output_path is None:
        output_path = source_path

    if behavior.output_extension:
        output_path = replace_extension(
            output_path, behavior.extension, behavior.output_extension
        )

    if output_path == source_path:
        return OutputResolution(source_path, source_path, derived=False)

    if not os.path.isfile(output_path):
        logger.error(f"Compiled output of {source_path} not found at {output_path}")
        raise ResolutionError(
            "Compiled output not found", output_path, reason="compiled output not found"
        )

    return OutputResolution(source_path, output_path, derived=True)


def find_sibling_artifacts(
    output_path: PathLike, behavior: Optional[CompiledBehavior]
) -> List[str]:
    """
    Compiler-generated siblings of an output file.

    With separator '$', siblings of 'B.class' are the files of the same
    directory whose name starts with 'B$' ('B$Inner.class', 'B$1.class').

    Args:
        output_path: Output file of the source unit
        behavior: Compiled behavior of the source extension, or None

    Returns:
        Sorted sibling paths, empty without a subclasses separator
    """
    if behavior is None or not behavior.subclasses_separator:
        return []

    output = canonical_path(output_path)
    directory = posixpath.dirname(output)
    stem = posixpath.splitext(posixpath.basename(output))[0]
    prefix = stem + behavior.subclasses_separator

    try:
        entries = os.listdir(directory)
    except FileNotFoundError:
        return []

    return sorted(
        posixpath.join(directory, name)
        for name in entries
        if name.startswith(prefix) and os.path.isfile(posixpath.join(directory, name))
    )


# ============================================================================
# Deploy Path Strategies
# ============================================================================

@dataclass(frozen=True)
class DeployPathContext:
    """
    Inputs shared by all deploy path strategies.

    Directory values always end with '/'.

    Attributes:
        source_path: Canonical source path
        original_dir: Directory of the source
        processed_dir: original_dir after the first matching deploy mapping
        matched_mapping: (source folder, deploy folder) applied, if any
        content_root: Most specific content root containing the source
        source_root: Most specific source root containing the source
        base_path: Project base directory
        auto_map: Rewrite the source root to source_output when unmapped
        source_output: Deploy folder of auto-mapped source roots
    """

    source_path: str
    original_dir: str
    processed_dir: str
    matched_mapping: Optional[Tuple[str, str]] = None
    content_root: Optional[str] = None
    source_root: Optional[str] = None
    base_path: Optional[str] = None
    auto_map: bool = True
    source_output: str = DEFAULT_SOURCE_OUTPUT


def _best_root(directory: str, roots: Sequence[str]) -> Optional[str]:
    # roots come sorted longest first
    for root in roots:
        if is_under(directory.rstrip(SEPARATOR), root.rstrip(SEPARATOR)):
            return root.rstrip(SEPARATOR)
    return None


def build_deploy_context(
    source_file: PathLike,
    mapping_table: Iterable[Tuple[str, str]],
    content_roots: Sequence[str] = (),
    source_roots: Sequence[str] = (),
    base_path: Optional[str] = None,
    auto_map: bool = True,
    source_output: str = DEFAULT_SOURCE_OUTPUT,
) -> DeployPathContext:
    """Compute the strategy independent part of a deploy path."""
    source_path = canonical_path(source_file)
    original_dir = posixpath.dirname(source_path).rstrip(SEPARATOR) + SEPARATOR

    matched: Optional[Tuple[str, str]] = None
    processed_dir = original_dir
    for source_folder, deploy_folder in mapping_table:
        if source_folder in original_dir:
            matched = (source_folder, deploy_folder)
            processed_dir = original_dir.replace(source_folder, deploy_folder, 1)
            break

    return DeployPathContext(
        source_path=source_path,
        original_dir=original_dir,
        processed_dir=processed_dir,
        matched_mapping=matched,
        content_root=_best_root(original_dir, content_roots),
        source_root=_best_root(original_dir, source_roots),
        base_path=canonical_path(base_path) if base_path else None,
        auto_map=auto_map,
        source_output=source_output,
    )


def _source_root_in_module(context: DeployPathContext) -> bool:
    return (
        context.content_root is not None
        and context.source_root is not None
        and context.source_root != context.content_root
        and is_under(context.source_root, context.content_root)
    )


def _auto_mapped_dir(context: DeployPathContext) -> str:
    """processed_dir with an unmapped source root rewritten to source_output."""
    if not context.auto_map or context.matched_mapping is not None:
        return context.processed_dir
    if not _source_root_in_module(context):
        return context.processed_dir

    source_root_dir = context.source_root + SEPARATOR
    if not context.processed_dir.startswith(source_root_dir):
        return context.processed_dir

    return (
        context.content_root
        + context.source_output
        + context.processed_dir[len(source_root_dir):]
    )


def deploy_path_from_mappings(context: DeployPathContext) -> str:
    """Path starting at the replacement of the matched deploy mapping."""
    if context.matched_mapping is None:
        raise ResolutionError("No deploy mapping matches", context.source_path, reason="no mapping")
    index = context.original_dir.index(context.matched_mapping[0])
    return context.processed_dir[index + 1:]


def deploy_path_from_sources(context: DeployPathContext) -> str:
    """
    Path inside the module, after its source folder.

    A rewritten source folder (deploy mapping or auto mapping) is kept as
    the leading segment ('WEB-INF/classes/a/'); an untouched one is
    dropped ('a/').
    """
    if not _source_root_in_module(context):
        raise ResolutionError("No source root for", context.source_path, reason="no source root")

    processed_dir = _auto_mapped_dir(context)
    source_root_dir = context.source_root + SEPARATOR
    content_root_dir = context.content_root + SEPARATOR
    if processed_dir.startswith(source_root_dir):
        return processed_dir[len(source_root_dir):]
    if processed_dir.startswith(content_root_dir):
        return processed_dir[len(content_root_dir):]
    raise ResolutionError("No source root for", context.source_path, reason="no source root")


def deploy_path_from_module_name(context: DeployPathContext) -> str:
    """Path starting at the module's own directory name."""
    if context.content_root is None:
        raise ResolutionError("No content root for", context.source_path, reason="no content root")

    processed_dir = _auto_mapped_dir(context)
    parent_dir = posixpath.dirname(context.content_root).rstrip(SEPARATOR) + SEPARATOR
    if not processed_dir.startswith(parent_dir):
        raise ResolutionError("No content root for", context.source_path, reason="no content root")
    return processed_dir[len(parent_dir):]


def deploy_path_after_project_root(context: DeployPathContext) -> str:
    """Path after the project base directory."""
    if not context.base_path:
        raise ResolutionError("No project base path for", context.source_path, reason="no base path")

    base_dir = context.base_path.rstrip(SEPARATOR) + SEPARATOR
    if not context.processed_dir.startswith(base_dir):
        raise ResolutionError("Outside project base path", context.source_path, reason="no base path")
    return context.processed_dir[len(base_dir):]


STRATEGIES: Dict[DeployPathStrategy, Callable[[DeployPathContext], str]] = {
    DeployPathStrategy.FROM_MAPPINGS: deploy_path_from_mappings,
    DeployPathStrategy.FROM_SOURCES: deploy_path_from_sources,
    DeployPathStrategy.FROM_MODULE_NAME: deploy_path_from_module_name,
    DeployPathStrategy.AFTER_PROJECT_ROOT: deploy_path_after_project_root,
}


@log_function_call
def relative_deploy_path(
    source_file: PathLike,
    strategy: DeployPathStrategy,
    mapping_table: Iterable[Tuple[str, str]],
    content_roots: Sequence[str] = (),
    source_roots: Sequence[str] = (),
    auto_map: bool = True,
    source_output: str = DEFAULT_SOURCE_OUTPUT,
    prefix: str = "",
    base_path: Optional[str] = None,
) -> str:
    """
    Directory of a source file relative to the deployed project.

    Args:
        source_file: Source file path
        strategy: Active deploy path strategy
        mapping_table: Ordered (source folder, deploy folder) pairs
        content_roots: Content roots, sorted longest first
        source_roots: Source roots, sorted longest first
        auto_map: Rewrite unmapped source roots to source_output
        source_output: Deploy folder of auto-mapped source roots
        prefix: Deploy path prefix ('' or 'folder/')
        base_path: Project base directory

    Returns:
        Directory ending with '/' (or '' for the deployed project root)

    Raises:
        ResolutionError: If the strategy's precondition does not hold

    Example:
        >>> relative_deploy_path(
        ...     "/p/mod/src/main/java/a/B.java", DeployPathStrategy.FROM_SOURCES, [],
        ...     content_roots=["/p/mod"], source_roots=["/p/mod/src/main/java"])
        'WEB-INF/classes/a/'
    """
    context = build_deploy_context(
        source_file,
        mapping_table,
        content_roots=content_roots,
        source_roots=source_roots,
        base_path=base_path,
        auto_map=auto_map,
        source_output=source_output,
    )
    return prefix + STRATEGIES[strategy](context)


# ============================================================================
# Session Resolver
# ============================================================================

def effective_strategy(config: Config, layout: ProjectLayout) -> DeployPathStrategy:
    """Configured strategy, else AFTER_PROJECT_ROOT for marked projects."""
    if config.strategy_configured:
        return config.deploy_path_strategy
    if layout.root_markers:
        logger.info(
            f"Project root marker {layout.root_markers[0]} found, "
            f"using {DeployPathStrategy.AFTER_PROJECT_ROOT.value}"
        )
        return DeployPathStrategy.AFTER_PROJECT_ROOT
    return config.deploy_path_strategy


class PathResolver:
    """
    Resolver bound to one session's Config and ProjectLayout.

    The strategy is selected once, at construction. Owning modules are
    cached per directory.
    """

    def __init__(self, config: Config, layout: ProjectLayout) -> None:
        self.config = config
        self.layout = layout
        self.strategy = effective_strategy(config, layout)
        self._content_roots = layout.content_roots
        self._source_roots = layout.source_roots
        self._modules_by_dir: Dict[str, Optional[Module]] = {}

    def find_owning_module(self, source_file: PathLike) -> Optional[Module]:
        directory = posixpath.dirname(canonical_path(source_file))
        if directory not in self._modules_by_dir:
            self._modules_by_dir[directory] = self.layout.find_owning_module(directory)
        return self._modules_by_dir[directory]

    def behavior_for(self, source_file: PathLike) -> Optional[CompiledBehavior]:
        return self.config.behavior_for(file_extension(canonical_path(source_file)))

    def resolve_output(
        self, source_file: PathLike, module: Optional[Module] = None
    ) -> OutputResolution:
        if module is None:
            module = self.find_owning_module(source_file)
        return resolve_output(source_file, self.behavior_for(source_file), module)

    def find_sibling_artifacts(self, resolution: OutputResolution) -> List[str]:
        if not resolution.derived:
            return []
        return find_sibling_artifacts(
            resolution.output_path, self.behavior_for(resolution.source_path)
        )

    def relative_deploy_path(self, source_file: PathLike) -> str:
        return relative_deploy_path(
            source_file,
            self.strategy,
            self.config.deploy_path_mappings,
            content_roots=self._content_roots,
            source_roots=self._source_roots,
            auto_map=self.config.auto_source_mapping,
            source_output=self.config.deploy_source_output,
            prefix=self.config.deploy_path_prefix,
            base_path=self.layout.base_path,
        )
