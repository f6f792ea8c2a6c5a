"""
Project model: modules, content roots and source roots.

The resolver only needs a few facts about the build: where each module
lives (its content root), which of its folders hold sources, and where the
compiler writes its output. discover_project() derives them from a Maven
or Gradle checkout; hosts with their own project model build a
ProjectLayout directly.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from s3upload.utils.logging import get_logger

logger = get_logger(__name__)

SEPARATOR = "/"

MAVEN_BUILD_FILES = ("pom.xml",)
GRADLE_BUILD_FILES = ("build.gradle", "build.gradle.kts")

SOURCE_ROOT_CANDIDATES = (
    "src/main/java",
    "src/main/groovy",
    "src/main/kotlin",
    "src/main/resources",
    "src/main/webapp",
)

MAVEN_OUTPUT_DIR = "target/classes"
GRADLE_OUTPUT_DIR = "build/classes/java/main"

# Directories never holding modules
SKIPPED_DIRECTORIES = {"target", "build", "out", "node_modules", "bin", "classes"}

# Projects deployed as whole trees; their presence selects AFTER_PROJECT_ROOT
PROJECT_ROOT_MARKERS = ("hybris/bin/platform",)


def canonical_path(path: Union[str, "os.PathLike[str]"]) -> str:
    """Absolute, normalized, '/'-separated path; never touches the file system."""
    return Path(os.path.abspath(os.fspath(path))).as_posix()


def is_under(path: str, root: str) -> bool:
    """Whether path is root itself or inside it."""
    root = root.rstrip(SEPARATOR)
    return path == root or path.startswith(root + SEPARATOR)


def longest_first(paths: Iterable[str]) -> Tuple[str, ...]:
    """Sort roots so that nested roots come before their parents."""
    return tuple(sorted(set(paths), key=lambda p: (-len(p), p)))


@dataclass(frozen=True)
class Module:
    """
    One build unit.

    Attributes:
        name: Module name (its directory name)
        content_root: Module directory
        source_roots: Production source folders inside the module
        output_dir: Compiler output directory, None when unknown
    """

    name: str
    content_root: str
    source_roots: Tuple[str, ...] = ()
    output_dir: Optional[str] = None

    def find_source_root(self, path: str) -> Optional[str]:
        """Most specific source root of this module containing path."""
        for root in longest_first(self.source_roots):
            if is_under(path, root):
                return root
        return None


@dataclass(frozen=True)
class ProjectLayout:
    """
    Modules of a project and the roots derived from them.

    Attributes:
        base_path: Project base directory
        modules: Known modules
        root_markers: PROJECT_ROOT_MARKERS found under base_path
    """

    base_path: str
    modules: Tuple[Module, ...] = ()
    root_markers: Tuple[str, ...] = ()

    @property
    def content_roots(self) -> Tuple[str, ...]:
        return longest_first(m.content_root for m in self.modules)

    @property
    def source_roots(self) -> Tuple[str, ...]:
        return longest_first(root for m in self.modules for root in m.source_roots)

    def find_owning_module(self, path: str) -> Optional[Module]:
        """
        Module whose content root contains path, most specific first.

        Args:
            path: Canonical path of a file or directory

        Returns:
            Owning Module, None when path is outside every module
        """
        best: Optional[Module] = None
        for module in self.modules:
            if is_under(path, module.content_root):
                if best is None or len(module.content_root) > len(best.content_root):
                    best = module
        return best


def _build_module(directory: Path) -> Optional[Module]:
    if any((directory / name).is_file() for name in MAVEN_BUILD_FILES):
        output = directory / MAVEN_OUTPUT_DIR
    elif any((directory / name).is_file() for name in GRADLE_BUILD_FILES):
        output = directory / GRADLE_OUTPUT_DIR
    else:
        return None

    source_roots = tuple(
        canonical_path(directory / candidate)
        for candidate in SOURCE_ROOT_CANDIDATES
        if (directory / candidate).is_dir()
    )
    return Module(
        name=directory.name,
        content_root=canonical_path(directory),
        source_roots=source_roots,
        output_dir=canonical_path(output),
    )


def discover_project(base_path: Union[str, Path]) -> ProjectLayout:
    """
    Discover Maven and Gradle modules under a project directory.

    Args:
        base_path: Project base directory

    Returns:
        ProjectLayout with every module found (nested modules included)

    Raises:
        NotADirectoryError: If base_path is not a directory

    Example:
        >>> layout = discover_project("/work/shop")
        >>> [m.name for m in layout.modules]
        ['shop', 'shop-core', 'shop-webapp']
    """
    base = Path(base_path)
    if not base.is_dir():
        raise NotADirectoryError(f"Project directory not found: {base}")

    modules: List[Module] = []
    for current, dirnames, _ in os.walk(base):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d not in SKIPPED_DIRECTORIES
        )
        module = _build_module(Path(current))
        if module is not None:
            modules.append(module)
            # source folders never contain modules
            dirnames[:] = [d for d in dirnames if d != "src"]

    markers = tuple(marker for marker in PROJECT_ROOT_MARKERS if (base / marker).is_dir())

    layout = ProjectLayout(
        base_path=canonical_path(base),
        modules=tuple(modules),
        root_markers=markers,
    )
    logger.info(
        f"Discovered {len(layout.modules)} module(s), "
        f"{len(layout.source_roots)} source root(s) in {layout.base_path}"
    )
    return layout
