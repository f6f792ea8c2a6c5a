"""
Upload sessions.

Resolves source files locally, confirms stale outputs, then uploads one
batch per remote directory into the current release's patch tree.
"""

from .uploader import (
    GroupResult,
    ResolvedFile,
    UploadPlan,
    UploadReport,
    describe_plan,
    expand_source_files,
    plan_upload,
    upload_files,
)

__all__ = [
    "GroupResult",
    "ResolvedFile",
    "UploadPlan",
    "UploadReport",
    "describe_plan",
    "expand_source_files",
    "plan_upload",
    "upload_files",
]
