"""
Remote version and deployed-project locator.

The release bucket of a project is laid out as:

    <lastVersionsPath>/<marker>                    first line: current version
    <versionsPath>/<version>/<patchPath>/<folder>/ one folder per deployed project

A marker object names one release target (e.g. 'prod-shop-magnolia.txt').
The locator reads the current version from it, then finds the deployed
project folder the target maps to, either from the 'deploy.path' override
or by listing the folders under the version's patch path.

Example usage:
    >>> targets = list_upload_configs(store, "shop-releases", "last", "shop")
    >>> version = read_marker_first_line(store, "shop-releases", marker_key("last", targets[0]))
    >>> patch = patch_path_prefix("versions", version, "patch")
    >>> resolve_deployed_project_path(store, "shop-releases", patch, targets[0], {"magnolia": "webapp"})
    'versions/1.4.0/patch/shop-webapp/'
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from s3upload.errors import AmbiguousMapping, EmptyMarker, RemoteNotFound
from s3upload.store.store import ObjectStore
from s3upload.utils.logging import get_logger, log_function_call

logger = get_logger(__name__)

SEPARATOR = "/"
SUFFIX_SEPARATOR = "-"
PROD_PREFIX = "pro"


@dataclass
class UploadConfig:
    """
    One release target, built from a marker object name.

    Attributes:
        project_name: Project the target belongs to
        full_file_name: Marker object name with extension
        file_name: Marker object name without its last extension
        sub_project_name: Text after the last '-' of file_name
        is_prod: Whether file_name starts with 'pro'
        version: Current release version, set once per session
    """

    project_name: str
    full_file_name: str
    file_name: str = ""
    sub_project_name: str = ""
    is_prod: bool = False
    version: Optional[str] = field(default=None)

    @classmethod
    def from_marker(cls, project_name: str, full_file_name: str) -> "UploadConfig":
        """
        Derive the target fields from a marker object name.

        Example:
            >>> UploadConfig.from_marker("shop", "prod-shop-magnolia.txt").sub_project_name
            'magnolia'
        """
        file_name = full_file_name.rsplit(".", 1)[0] if "." in full_file_name else full_file_name
        return cls(
            project_name=project_name,
            full_file_name=full_file_name,
            file_name=file_name,
            sub_project_name=file_name.rsplit(SUFFIX_SEPARATOR, 1)[-1],
            is_prod=file_name.startswith(PROD_PREFIX),
        )

    def assign_version(self, version: str) -> str:
        """
        Set the version once; later calls must agree with it.

        Raises:
            ValueError: If a different version was already assigned
        """
        if self.version is None:
            self.version = version
        elif self.version != version:
            raise ValueError(
                f"Version of {self.full_file_name} already set to {self.version}, got {version}"
            )
        return self.version

    def __str__(self) -> str:
        return self.file_name


# ============================================================================
# Remote Paths
# ============================================================================

def marker_key(last_versions_path: str, upload_config: UploadConfig) -> str:
    """Key of a target's marker object."""
    return last_versions_path.strip(SEPARATOR) + SEPARATOR + upload_config.full_file_name


def patch_path_prefix(versions_path: str, version: str, patch_path: str) -> str:
    """'<versionsPath>/<version>/<patchPath>/'."""
    parts = [versions_path.strip(SEPARATOR), version.strip(SEPARATOR), patch_path.strip(SEPARATOR)]
    return SEPARATOR.join(part for part in parts if part) + SEPARATOR


def list_first_level_folders(keys: List[str], prefix: str) -> List[str]:
    """Distinct first-level folder names of keys under prefix, in listing order."""
    folders: List[str] = []
    for key in keys:
        if not key.startswith(prefix):
            continue
        name = key[len(prefix):].split(SEPARATOR, 1)[0]
        if name and name not in folders:
            folders.append(name)
    return folders


# ============================================================================
# Locator Operations
# ============================================================================

def list_upload_configs(
    store: ObjectStore, bucket: str, last_versions_path: str, project_name: str
) -> List[UploadConfig]:
    """
    Discover the release targets of a project from its marker objects.

    Args:
        store: Object store
        bucket: Release bucket
        last_versions_path: Folder holding the marker objects
        project_name: Project the targets belong to

    Returns:
        One UploadConfig per marker object, in listing order

    Raises:
        RemoteNotFound: If no marker object exists
    """
    prefix = last_versions_path.strip(SEPARATOR) + SEPARATOR
    configs: List[UploadConfig] = []
    for key in store.list_objects(bucket, prefix):
        name = key[len(prefix):] if key.startswith(prefix) else key
        # nested keys and the folder placeholder are not markers
        if not name or SEPARATOR in name:
            continue
        configs.append(UploadConfig.from_marker(project_name, name))

    if not configs:
        error_msg = f"No version marker found in path {bucket}/{last_versions_path}"
        logger.error(error_msg)
        raise RemoteNotFound(error_msg)

    logger.info(f"Found {len(configs)} release target(s): {', '.join(map(str, configs))}")
    return configs


@log_function_call
def read_marker_first_line(store: ObjectStore, bucket: str, key: str) -> str:
    """
    Read the version string from the first line of a marker object.

    Args:
        store: Object store
        bucket: Release bucket
        key: Marker object key

    Returns:
        First line, stripped

    Raises:
        RemoteNotFound: If the object or its content is missing
        EmptyMarker: If the first line is blank
    """
    stream = store.get_object(bucket, key)
    if stream is None:
        raise RemoteNotFound(f"Object has no content: {bucket}/{key}")

    try:
        raw = stream.readline()
    finally:
        close = getattr(stream, "close", None)
        if close is not None:
            close()

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8-sig", errors="replace")
    line = raw.strip()
    if not line:
        error_msg = f"Version marker is empty: {bucket}/{key}"
        logger.error(error_msg)
        raise EmptyMarker(error_msg)

    logger.info(f"Current version from {key}: {line}")
    return line


@log_function_call
def resolve_deployed_project_path(
    store: ObjectStore,
    bucket: str,
    patch_path_prefix: str,
    upload_config: UploadConfig,
    suffix_mappings: Mapping[str, str],
    deploy_path_override: Optional[str] = None,
) -> str:
    """
    Key prefix of the deployed project folder a target uploads into.

    Precedence: override, then the single-folder shortcut, then the suffix
    match. The single-folder shortcut returns '' so files go directly under
    the patch path prefix.

    Args:
        store: Object store
        bucket: Release bucket
        patch_path_prefix: '<versionsPath>/<version>/<patchPath>/'
        upload_config: Release target
        suffix_mappings: Sub-project name -> deployed folder suffix
        deploy_path_override: Configured 'deploy.path', None to discover

    Returns:
        Deployed project prefix; '' for the single-folder shortcut

    Raises:
        RemoteNotFound: If no folder exists under the patch path
        AmbiguousMapping: If several folders exist and none matches
    """
    if deploy_path_override is not None:
        override = deploy_path_override.strip(SEPARATOR)
        return patch_path_prefix + override + (SEPARATOR if override else "")

    keys = store.list_objects(bucket, patch_path_prefix)
    folders = list_first_level_folders(keys, patch_path_prefix)

    if not folders:
        error_msg = f"No project found in path {bucket}/{patch_path_prefix}"
        logger.error(error_msg)
        raise RemoteNotFound(error_msg)

    if len(folders) == 1:
        logger.info(f"Single deployed project '{folders[0]}' under {patch_path_prefix}")
        return ""

    expected_suffix = suffix_mappings.get(upload_config.sub_project_name)
    for folder in folders:
        if (
            expected_suffix is not None
            and SUFFIX_SEPARATOR in folder
            and folder.rsplit(SUFFIX_SEPARATOR, 1)[-1] == expected_suffix
        ):
            logger.info(f"Deployed project for {upload_config}: {folder}")
            return patch_path_prefix + folder + SEPARATOR

    error_msg = (
        f"No deployed project with suffix '{expected_suffix or upload_config.sub_project_name}' "
        f"for {upload_config} in path {bucket}/{patch_path_prefix} (found: {', '.join(folders)})"
    )
    logger.error(error_msg)
    raise AmbiguousMapping(error_msg)
