"""
Upload orchestrator.

Sequences one upload session:

1. Resolve every source file locally: output file, sibling artifacts and
   relative deploy directory (plan_upload).
2. Ask the caller to confirm output files older than their sources; a
   refusal ends the session before any remote call.
3. Read the release version from the target's marker object (once).
4. Find the deployed project folder under the version's patch path (once).
5. Upload one batch per remote directory; a failed batch is reported and
   the remaining directories still upload.

Example usage:
    >>> resolver = PathResolver(config, discover_project("/work/shop"))
    >>> target = UploadConfig.from_marker("shop", "prod-shop-magnolia.txt")
    >>> with open_store(credentials, config.aws_region) as store:
    ...     report = upload_files(["/work/shop/core/src/main/java/a/B.java"],
    ...                           target, config, resolver, store, confirm=lambda files: True)
    >>> report.uploaded_keys
    ['versions/1.4.0/patch/shop-webapp/WEB-INF/classes/a/B.class']
"""

import os
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from s3upload.errors import ResolutionError, TransferError, UploadAborted
from s3upload.locator.locator import (
    UploadConfig,
    marker_key,
    patch_path_prefix,
    read_marker_first_line,
    resolve_deployed_project_path,
)
from s3upload.resolver.project import Module, canonical_path
from s3upload.resolver.resolver import PathResolver
from s3upload.store.store import ObjectStore, object_key
from s3upload.utils.config_loader import Config
from s3upload.utils.logging import get_logger, log_function_call
from s3upload.utils.metrics import get_metrics

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedFile:
    """
    A source file with everything needed to upload it.

    Attributes:
        source_path: Canonical source path
        output_path: File shipped for the source
        siblings: Compiler-generated siblings shipped along
        deploy_dir: Directory relative to the deployed project ('' or 'a/b/')
        stale: Output older than its source
    """

    source_path: str
    output_path: str
    siblings: Tuple[str, ...] = ()
    deploy_dir: str = ""
    stale: bool = False

    @property
    def files(self) -> Tuple[str, ...]:
        return (self.output_path,) + self.siblings


@dataclass
class UploadPlan:
    """Local part of a session: resolved files and per-file failures."""

    files: List[ResolvedFile] = field(default_factory=list)
    errors: List[ResolutionError] = field(default_factory=list)

    @property
    def groups(self) -> Dict[str, List[str]]:
        """Deploy directory -> local files, in resolution order, without duplicates."""
        groups: Dict[str, List[str]] = {}
        for resolved in self.files:
            group = groups.setdefault(resolved.deploy_dir, [])
            for path in resolved.files:
                if path not in group:
                    group.append(path)
        return groups

    @property
    def stale_files(self) -> List[ResolvedFile]:
        return [resolved for resolved in self.files if resolved.stale]


@dataclass
class GroupResult:
    """Outcome of one directory batch."""

    directory: str
    files: List[str]
    keys: List[str] = field(default_factory=list)
    error: Optional[TransferError] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class UploadReport:
    """
    Result of an upload session.

    Attributes:
        upload_config: Release target
        bucket: Release bucket
        version: Release version the files went into
        destination: Key prefix every directory group is placed under
        groups: One result per directory batch
        resolution_errors: Source files that could not be resolved
    """

    upload_config: UploadConfig
    bucket: str
    version: Optional[str] = None
    destination: str = ""
    groups: List[GroupResult] = field(default_factory=list)
    resolution_errors: List[ResolutionError] = field(default_factory=list)

    @property
    def uploaded_keys(self) -> List[str]:
        return [key for group in self.groups for key in group.keys]

    @property
    def failed_groups(self) -> List[GroupResult]:
        return [group for group in self.groups if not group.success]

    @property
    def success(self) -> bool:
        return not self.failed_groups and not self.resolution_errors

    @property
    def outcome(self) -> str:
        if self.success:
            return "success"
        if self.uploaded_keys:
            return "partial"
        return "failure"


ConfirmCallback = Callable[[List[ResolvedFile]], bool]


def expand_source_files(paths: Iterable[str]) -> List[str]:
    """
    Canonical file list, directories expanded recursively.

    Hidden files and directories inside expanded directories are skipped.
    Duplicates keep their first position.
    """
    expanded: List[str] = []
    for path in paths:
        if os.path.isdir(path):
            for current, dirnames, filenames in os.walk(path):
                dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
                for name in sorted(filenames):
                    if not name.startswith("."):
                        expanded.append(canonical_path(os.path.join(current, name)))
        else:
            expanded.append(canonical_path(path))

    return list(dict.fromkeys(expanded))


def is_stale(source_path: str, output_path: str) -> bool:
    """Whether a derived output file is strictly older than its source."""
    if source_path == output_path:
        return False
    return os.path.getmtime(output_path) < os.path.getmtime(source_path)


def plan_upload(
    source_files: Sequence[str],
    resolver: PathResolver,
    module: Optional[Module] = None,
) -> UploadPlan:
    """
    Resolve source files without any remote call.

    A file that cannot be resolved is recorded in plan.errors and the
    remaining files are still resolved.

    Args:
        source_files: Files or directories to upload
        resolver: Session resolver
        module: Owning module of every file, None to look it up per file

    Returns:
        UploadPlan
    """
    plan = UploadPlan()
    for source in expand_source_files(source_files):
        try:
            resolution = resolver.resolve_output(source, module)
            deploy_dir = resolver.relative_deploy_path(resolution.source_path)
        except ResolutionError as e:
            logger.error(f"Skipping {source}: {e}")
            plan.errors.append(e)
            continue

        resolved = ResolvedFile(
            source_path=resolution.source_path,
            output_path=resolution.output_path,
            siblings=tuple(resolver.find_sibling_artifacts(resolution)),
            deploy_dir=deploy_dir,
            stale=is_stale(resolution.source_path, resolution.output_path),
        )
        if resolved.stale:
            logger.warning(f"{resolved.output_path} is older than {resolved.source_path}")
        logger.debug(f"{source} -> {resolved.output_path} in '{deploy_dir}'")
        plan.files.append(resolved)

    return plan


def _upload_group(
    store: ObjectStore, bucket: str, destination: str, files: List[str]
) -> GroupResult:
    metrics = get_metrics()
    result = GroupResult(directory=destination, files=files)
    try:
        with metrics.track_batch():
            result.keys = list(store.batch_put_objects(bucket, destination, files))
    except Exception as e:  # any backend failure is reported per group
        logger.error(f"Upload to {bucket}/{destination} failed: {e}", exc_info=True)
        metrics.record_batch_failure(len(files))
        result.error = TransferError(destination, e)
        return result

    metrics.record_batch_success(
        files=len(files),
        bytes_uploaded=sum(os.path.getsize(path) for path in files),
    )
    for key in result.keys:
        logger.info(f"Uploaded to {key}")
    return result


@log_function_call
def upload_files(
    source_files: Sequence[str],
    upload_config: UploadConfig,
    config: Config,
    resolver: PathResolver,
    store: ObjectStore,
    confirm: Optional[ConfirmCallback] = None,
    module: Optional[Module] = None,
    plan: Optional[UploadPlan] = None,
) -> UploadReport:
    """
    Upload source files (as their resolved outputs) to a release target.

    Args:
        source_files: Files or directories to upload
        upload_config: Release target; its version is set if still unset
        config: Session configuration
        resolver: Session resolver
        store: Object store
        confirm: Called with the stale files; must return True to go on.
            Without it, stale files abort the session.
        module: Owning module of every file, None to look it up per file
        plan: Plan already built from source_files, to skip planning again

    Returns:
        UploadReport with per-group results and per-file resolution errors

    Raises:
        UploadAborted: If stale files were not confirmed (no remote call made)
        RemoteNotFound: If the marker or the deployed project is missing
        EmptyMarker: If the marker's first line is blank
        AmbiguousMapping: If no deployed project matches the target
    """
    metrics = get_metrics()
    bucket = config.resolve_bucket_name(upload_config.project_name)
    report = UploadReport(upload_config=upload_config, bucket=bucket)

    if plan is None:
        plan = plan_upload(source_files, resolver, module)
    report.resolution_errors = list(plan.errors)
    if plan.errors:
        metrics.record_unresolved(len(plan.errors))

    stale = plan.stale_files
    if stale and (confirm is None or not confirm(stale)):
        metrics.record_session("aborted")
        raise UploadAborted(
            f"{len(stale)} output file(s) older than their sources: "
            + ", ".join(resolved.output_path for resolved in stale)
        )

    groups = plan.groups
    if not groups:
        logger.warning("Nothing to upload")
        metrics.record_session(report.outcome)
        return report

    if upload_config.version is None:
        version = read_marker_first_line(
            store, bucket, marker_key(config.last_versions_path, upload_config)
        )
        upload_config.assign_version(version)
    report.version = upload_config.version

    patch_prefix = patch_path_prefix(config.versions_path, report.version, config.patch_path)
    deployed = resolve_deployed_project_path(
        store,
        bucket,
        patch_prefix,
        upload_config,
        config.project_suffix_mappings,
        deploy_path_override=config.deploy_path,
    )
    # '' means the only deployed project lives directly under the patch path
    report.destination = deployed or patch_prefix

    for deploy_dir, files in groups.items():
        report.groups.append(_upload_group(store, bucket, report.destination + deploy_dir, files))

    logger.info(
        f"Uploaded {len(report.uploaded_keys)} file(s) in {len(report.groups)} "
        f"director{'y' if len(report.groups) == 1 else 'ies'} to {bucket}/{report.destination} "
        f"({len(report.failed_groups)} failed, {len(report.resolution_errors)} unresolved)"
    )
    metrics.record_session(report.outcome)
    return report


def describe_plan(plan: UploadPlan, destination: str = "") -> List[str]:
    """Human-readable lines of a plan, one per file key."""
    lines: List[str] = []
    for deploy_dir, files in plan.groups.items():
        for path in files:
            lines.append(f"{path} -> {object_key(destination + deploy_dir, path)}")
    return lines
