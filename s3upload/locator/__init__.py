"""
Remote version and deployed project discovery.

Reads the current release version from a marker object and finds the
deployed project folder a release target uploads into.
"""

from .locator import (
    UploadConfig,
    list_upload_configs,
    marker_key,
    patch_path_prefix,
    read_marker_first_line,
    resolve_deployed_project_path,
)

__all__ = [
    "UploadConfig",
    "list_upload_configs",
    "marker_key",
    "patch_path_prefix",
    "read_marker_first_line",
    "resolve_deployed_project_path",
]
