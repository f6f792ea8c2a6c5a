"""
Configuration loader for upload sessions.

Reads the project's property file (``s3upload.properties`` or its YAML
variant) and turns the flat key/value bag into an immutable ``Config``:
extension behaviors, deploy path mappings, the deploy path strategy, the
deploy path prefix and the remote layout of the release bucket.

Example property file (s3upload.properties):
    ```properties
    project.name=shop
    aws.region=eu-west-1

    # groovy scripts compile to classes under a custom folder
    compile.mapping.extension.groovy=class
    compile.mapping.path.groovy=/src/scripts/:/build/scripts/
    compile.mapping.subclasses.groovy=$

    deploy.path.mappings.webapp=/src/main/webapp/:/
    deploy.path.strategy=FROM_SOURCES
    deploy.path.prefix=shop/
    mapping.project.magnolia=webapp
    ```

Usage:
    >>> from s3upload.utils.config_loader import load_config, load_project_properties
    >>> config = load_config(load_project_properties("/work/shop"))
    >>> config.deploy_path_strategy
    <DeployPathStrategy.FROM_SOURCES: 'FROM_SOURCES'>
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from s3upload.errors import ConfigurationError
from s3upload.utils.logging import get_logger, log_function_call

logger = get_logger(__name__)

SEPARATOR = "/"

PROJECT_PROPERTIES_FILES = ("s3upload.properties", "s3upload.yaml", "s3upload.yml")

# Property keys
BUCKET_NAME_KEY = "bucket.name"
PROJECT_NAME_KEY = "project.name"
LAST_VERSIONS_PATH_KEY = "last.versions.path"
VERSIONS_PATH_KEY = "versions.path"
PATCH_PATH_KEY = "patch.path"
DEPLOY_PATH_KEY = "deploy.path"
AWS_REGION_KEY = "aws.region"
COMPILE_MAPPING_EXTENSION_KEY = "compile.mapping.extension."
COMPILE_MAPPING_PATH_KEY = "compile.mapping.path."
COMPILE_MAPPING_SUBCLASSES_KEY = "compile.mapping.subclasses."
DEPLOY_PATH_MAPPINGS_KEY = "deploy.path.mappings."
DEPLOY_PATH_STRATEGY_KEY = "deploy.path.strategy"
DEPLOY_PATH_PREFIX_KEY = "deploy.path.prefix"
DEPLOY_SOURCE_OUTPUT_KEY = "deploy.source.output"
DEPLOY_AUTO_SOURCE_MAPPING_KEY = "deploy.auto.source.mapping"
PROJECT_SUFFIX_MAPPING_KEY = "mapping.project."

# Remote layout defaults
BUCKET_SUFFIX = "-releases"
DEFAULT_LAST_VERSIONS_PATH = "last"
DEFAULT_VERSIONS_PATH = "versions"
DEFAULT_PATCH_PATH = "patch"
DEFAULT_AWS_REGION = "eu-west-1"
DEFAULT_SOURCE_OUTPUT = "/WEB-INF/classes/"

# (output extension, subclasses separator) per source extension
DEFAULT_COMPILED_BEHAVIORS: Dict[str, Tuple[str, str]] = {
    "java": ("class", "$"),
    "groovy": ("class", "$"),
}

DEFAULT_DEPLOY_PATH_MAPPINGS: Tuple[Tuple[str, str], ...] = (
    ("/src/main/java/", "/WEB-INF/classes/"),
    ("/src/main/resources/", "/WEB-INF/classes/"),
    ("/src/main/webapp/", "/"),
)

# marker file suffix -> deployed project folder suffix
DEFAULT_PROJECT_SUFFIX_MAPPINGS: Dict[str, str] = {
    "esb": "esb",
    "magnolia": "webapp",
}

_TRUE_VALUES = {"true", "yes", "on", "1"}
_FALSE_VALUES = {"false", "no", "off", "0"}


class DeployPathStrategy(str, Enum):
    """
    Where the relative deploy path of a file starts.

    Values:
        FROM_MAPPINGS: At the replacement point of the matched deploy mapping
        FROM_SOURCES: Right after the module directory, source folder rewritten
        FROM_MODULE_NAME: At the module's own directory name
        AFTER_PROJECT_ROOT: Right after the project base directory
    """

    FROM_MAPPINGS = "FROM_MAPPINGS"
    FROM_SOURCES = "FROM_SOURCES"
    FROM_MODULE_NAME = "FROM_MODULE_NAME"
    AFTER_PROJECT_ROOT = "AFTER_PROJECT_ROOT"


@dataclass
class ConfigError:
    """Validation error for a single property."""

    field: str
    message: str
    value: Optional[Any] = None

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value})"
        return f"{self.field}: {self.message}"


@dataclass(frozen=True)
class CompiledBehavior:
    """
    How sources with one extension map to compiled output.

    Attributes:
        extension: Source extension without dot (e.g. 'java')
        output_extension: Output extension without dot, None keeps the source one
        path_mappings: Ordered (source substring, output substring) pairs,
            first match wins
        subclasses_separator: When set, output siblings named
            '<base><separator>...' belong to the same source unit
    """

    extension: str
    output_extension: Optional[str] = None
    path_mappings: Tuple[Tuple[str, str], ...] = ()
    subclasses_separator: Optional[str] = None


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration of one upload session.

    Built once by load_config() and passed explicitly to the resolver,
    the locator and the orchestrator.
    """

    compiled_behaviors: Mapping[str, CompiledBehavior] = field(default_factory=dict)
    deploy_path_mappings: Tuple[Tuple[str, str], ...] = DEFAULT_DEPLOY_PATH_MAPPINGS
    deploy_path_strategy: DeployPathStrategy = DeployPathStrategy.FROM_SOURCES
    strategy_configured: bool = False
    deploy_path_prefix: str = ""
    deploy_source_output: str = DEFAULT_SOURCE_OUTPUT
    auto_source_mapping: bool = True
    project_suffix_mappings: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PROJECT_SUFFIX_MAPPINGS)
    )
    project_name: Optional[str] = None
    bucket_name: Optional[str] = None
    last_versions_path: str = DEFAULT_LAST_VERSIONS_PATH
    versions_path: str = DEFAULT_VERSIONS_PATH
    patch_path: str = DEFAULT_PATCH_PATH
    deploy_path: Optional[str] = None
    aws_region: str = DEFAULT_AWS_REGION

    def behavior_for(self, extension: Optional[str]) -> Optional[CompiledBehavior]:
        """Extension behavior, or None when the source is its own output."""
        if not extension:
            return None
        return self.compiled_behaviors.get(extension)

    def resolve_project_name(self, default: str) -> str:
        return self.project_name or default

    def resolve_bucket_name(self, project_name: str) -> str:
        return self.bucket_name or project_name + BUCKET_SUFFIX


# ============================================================================
# Separator Helpers
# ============================================================================

def force_not_starting_with_separator(value: Optional[str]) -> str:
    if not value:
        return ""
    return value[1:] if value.startswith(SEPARATOR) else value


def force_starting_with_separator(value: Optional[str]) -> str:
    if not value:
        return SEPARATOR
    return value if value.startswith(SEPARATOR) else SEPARATOR + value


def force_ending_with_separator(value: Optional[str], keep_empty: bool = False) -> str:
    if not value:
        return "" if keep_empty else SEPARATOR
    return value if value.endswith(SEPARATOR) else value + SEPARATOR


def ensure_separators(value: Optional[str]) -> str:
    """Normalize a folder fragment to '/fragment/' ('' becomes '/')."""
    return force_ending_with_separator(force_starting_with_separator(value))


# ============================================================================
# Property Files
# ============================================================================

_KEY_SEPARATOR = re.compile(r"(?<!\\)[=:\s]")


def _split_property(logical_line: str) -> Tuple[str, str]:
    """Split one logical properties line into key and value."""
    match = _KEY_SEPARATOR.search(logical_line)
    if match is None:
        return logical_line.replace("\\", ""), ""
    key = logical_line[: match.start()]
    value = logical_line[match.end():].lstrip()
    if match.group() not in "=:" and value[:1] in ("=", ":"):
        value = value[1:].lstrip()
    return key.replace("\\", ""), value.rstrip()


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse Java properties syntax into an ordered dict.

    Supports '=' / ':' / whitespace key separators, '#' and '!' comments
    and backslash line continuations. Unicode escapes are not decoded.
    A continuation on the last line ends the property at end of input.

    Args:
        text: Content of a .properties file

    Returns:
        Dictionary of keys to values, in file order
    """
    properties: Dict[str, str] = {}
    logical_line = ""

    for raw_line in text.splitlines():
        line = raw_line.lstrip() if not logical_line else raw_line.strip()
        if not logical_line and (not line or line[0] in "#!"):
            continue

        # odd number of trailing backslashes continues the line
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            logical_line += line[:-1]
            continue
        logical_line += line

        key, value = _split_property(logical_line)
        properties[key] = value
        logical_line = ""

    if logical_line:
        key, value = _split_property(logical_line)
        properties[key] = value

    return properties


def _flatten(data: Mapping[str, Any], prefix: str = "") -> Dict[str, str]:
    flat: Dict[str, str] = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, full_key + "."))
        elif isinstance(value, bool):
            flat[full_key] = str(value).lower()
        elif value is None:
            flat[full_key] = ""
        else:
            flat[full_key] = str(value)
    return flat


def read_properties_file(path: Union[str, Path]) -> Dict[str, str]:
    """
    Read a property file, .properties or YAML.

    YAML documents are flattened into dotted keys, so
    ``deploy: {path: {strategy: FROM_MAPPINGS}}`` becomes
    ``deploy.path.strategy=FROM_MAPPINGS``.

    Args:
        path: Path of the property file

    Returns:
        Flat key/value dictionary

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If the YAML is malformed or not a mapping
    """
    path = Path(path)
    logger.info(f"Loading properties from: {path}")

    if not path.is_file():
        raise FileNotFoundError(f"Properties file not found: {path}")

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() not in (".yaml", ".yml"):
        return parse_properties(text)

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse {path}: {e}") from e

    if document is None:
        return {}
    if not isinstance(document, Mapping):
        raise ConfigurationError(f"{path} must contain a mapping, got {type(document).__name__}")
    return _flatten(document)


def load_project_properties(base_path: Union[str, Path]) -> Dict[str, str]:
    """
    Load the project's property file from its base directory.

    Returns an empty dict when the project has no property file; every
    setting has a default.
    """
    for name in PROJECT_PROPERTIES_FILES:
        candidate = Path(base_path) / name
        if candidate.is_file():
            return read_properties_file(candidate)
    logger.debug(f"No project properties in {base_path}, using defaults")
    return {}


# ============================================================================
# Config Building
# ============================================================================

def _parse_bool(key: str, value: str, errors: List[ConfigError]) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    errors.append(ConfigError(key, "Must be true or false", value))
    return None


def _parse_path_pairs(
    key: str, value: str, errors: List[ConfigError]
) -> List[Tuple[str, str]]:
    """Parse 'src1:dst1,src2:dst2' into normalized (src, dst) pairs."""
    pairs: List[Tuple[str, str]] = []
    for item in re.sub(r"\s", "", value).split(","):
        if not item:
            continue
        parts = item.split(":")
        if len(parts) != 2 or not parts[0]:
            errors.append(ConfigError(key, "Expected 'source:target' pairs", item))
            continue
        pairs.append((ensure_separators(parts[0]), ensure_separators(parts[1])))
    return pairs


def _merge_pairs(
    overrides: List[Tuple[str, str]], defaults: Tuple[Tuple[str, str], ...]
) -> Tuple[Tuple[str, str], ...]:
    """User pairs first (last duplicate wins), then defaults they don't shadow."""
    merged: Dict[str, str] = {}
    for source, target in overrides:
        merged[source] = target
    for source, target in defaults:
        merged.setdefault(source, target)
    return tuple(merged.items())


@log_function_call
def load_config(raw_properties: Mapping[str, str]) -> Config:
    """
    Build the session Config from a flat property bag.

    Pure transformation: no file system or network access.

    Args:
        raw_properties: Key/value pairs, e.g. from load_project_properties()

    Returns:
        Immutable Config

    Raises:
        ConfigurationError: Listing every invalid property found

    Example:
        >>> config = load_config({"compile.mapping.extension.kt": "class"})
        >>> config.behavior_for("kt").output_extension
        'class'
    """
    errors: List[ConfigError] = []

    behaviors: Dict[str, Dict[str, Any]] = {
        ext: {"output_extension": out, "path_mappings": [], "subclasses_separator": sep}
        for ext, (out, sep) in DEFAULT_COMPILED_BEHAVIORS.items()
    }
    deploy_overrides: List[Tuple[str, str]] = []
    suffix_mappings = dict(DEFAULT_PROJECT_SUFFIX_MAPPINGS)

    def behavior(extension: str) -> Dict[str, Any]:
        return behaviors.setdefault(
            extension,
            {"output_extension": None, "path_mappings": [], "subclasses_separator": None},
        )

    for key, raw_value in raw_properties.items():
        value = "" if raw_value is None else str(raw_value).strip()

        if key.startswith(COMPILE_MAPPING_EXTENSION_KEY):
            extension = key[len(COMPILE_MAPPING_EXTENSION_KEY):]
            behavior(extension)["output_extension"] = value.lstrip(".") or None
        elif key.startswith(COMPILE_MAPPING_PATH_KEY):
            extension = key[len(COMPILE_MAPPING_PATH_KEY):]
            behavior(extension)["path_mappings"].extend(_parse_path_pairs(key, value, errors))
        elif key.startswith(COMPILE_MAPPING_SUBCLASSES_KEY):
            extension = key[len(COMPILE_MAPPING_SUBCLASSES_KEY):]
            behavior(extension)["subclasses_separator"] = value or None
        elif key.startswith(DEPLOY_PATH_MAPPINGS_KEY):
            deploy_overrides.extend(_parse_path_pairs(key, value, errors))
        elif key.startswith(PROJECT_SUFFIX_MAPPING_KEY):
            suffix_mappings[key[len(PROJECT_SUFFIX_MAPPING_KEY):]] = value

    strategy = DeployPathStrategy.FROM_SOURCES
    strategy_value = raw_properties.get(DEPLOY_PATH_STRATEGY_KEY)
    strategy_configured = strategy_value is not None
    if strategy_configured:
        strategy_value = str(strategy_value).strip()
        if strategy_value in DeployPathStrategy.__members__:
            strategy = DeployPathStrategy[strategy_value]
        else:
            errors.append(
                ConfigError(
                    DEPLOY_PATH_STRATEGY_KEY,
                    f"Invalid strategy (valid: {list(DeployPathStrategy.__members__)})",
                    strategy_value,
                )
            )

    auto_source_mapping = True
    if DEPLOY_AUTO_SOURCE_MAPPING_KEY in raw_properties:
        parsed = _parse_bool(
            DEPLOY_AUTO_SOURCE_MAPPING_KEY,
            str(raw_properties[DEPLOY_AUTO_SOURCE_MAPPING_KEY]),
            errors,
        )
        auto_source_mapping = True if parsed is None else parsed

    if errors:
        for error in errors:
            logger.error(f"Invalid property {error}")
        raise ConfigurationError(
            "Invalid configuration: " + "; ".join(str(e) for e in errors)
        )

    prefix = force_ending_with_separator(
        force_not_starting_with_separator(
            str(raw_properties.get(DEPLOY_PATH_PREFIX_KEY, "")).strip()
        ),
        keep_empty=True,
    )
    source_output = ensure_separators(
        str(raw_properties.get(DEPLOY_SOURCE_OUTPUT_KEY, DEFAULT_SOURCE_OUTPUT)).strip()
    )

    def optional(key: str) -> Optional[str]:
        value = raw_properties.get(key)
        return None if value is None else str(value).strip()

    config = Config(
        compiled_behaviors={
            ext: CompiledBehavior(
                extension=ext,
                output_extension=values["output_extension"],
                path_mappings=tuple(values["path_mappings"]),
                subclasses_separator=values["subclasses_separator"],
            )
            for ext, values in behaviors.items()
        },
        deploy_path_mappings=_merge_pairs(deploy_overrides, DEFAULT_DEPLOY_PATH_MAPPINGS),
        deploy_path_strategy=strategy,
        strategy_configured=strategy_configured,
        deploy_path_prefix=prefix,
        deploy_source_output=source_output,
        auto_source_mapping=auto_source_mapping,
        project_suffix_mappings=suffix_mappings,
        project_name=optional(PROJECT_NAME_KEY) or None,
        bucket_name=optional(BUCKET_NAME_KEY) or None,
        last_versions_path=optional(LAST_VERSIONS_PATH_KEY) or DEFAULT_LAST_VERSIONS_PATH,
        versions_path=optional(VERSIONS_PATH_KEY) or DEFAULT_VERSIONS_PATH,
        patch_path=optional(PATCH_PATH_KEY) or DEFAULT_PATCH_PATH,
        # empty string is a valid override meaning "directly under patch path"
        deploy_path=optional(DEPLOY_PATH_KEY),
        aws_region=optional(AWS_REGION_KEY) or DEFAULT_AWS_REGION,
    )

    logger.info(
        f"Configuration loaded: strategy={config.deploy_path_strategy.value}, "
        f"{len(config.compiled_behaviors)} extension behavior(s), "
        f"{len(config.deploy_path_mappings)} deploy mapping(s)"
    )
    return config
