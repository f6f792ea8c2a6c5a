#!/usr/bin/env python3
"""
Upload compiled output of source files into the current release patch.

CLI host for the upload pipeline: resolves each source file to its output
file and deploy directory, then uploads one batch per directory into the
patch tree of the release target's current version.

Usage:
    python scripts/upload.py core/src/main/java/a/B.java
    python scripts/upload.py webapp/src/main/webapp/ --target prod-shop-magnolia.txt
    python scripts/upload.py core/src/main/java/a/B.java --dry-run
    python scripts/upload.py --list-targets
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List

# Add project root to path for imports (before other imports)
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from s3upload.errors import S3UploadError, UploadAborted  # noqa: E402
from s3upload.locator import UploadConfig, list_upload_configs  # noqa: E402
from s3upload.resolver import PathResolver, discover_project  # noqa: E402
from s3upload.store import open_store  # noqa: E402
from s3upload.uploader import ResolvedFile, describe_plan, plan_upload, upload_files  # noqa: E402
from s3upload.utils.config_loader import (  # noqa: E402
    DEPLOY_PATH_STRATEGY_KEY,
    DeployPathStrategy,
    load_config,
    load_project_properties,
    read_properties_file,
)
from s3upload.utils.credentials import load_env_file, resolve_project_credentials  # noqa: E402
from s3upload.utils.logging import get_logger, new_session_id  # noqa: E402

logger = get_logger(__name__)


def parse_args(argv: List[str] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Upload compiled files into the current release patch on S3",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upload the compiled class of a source file (and its inner classes)
  %(prog)s core/src/main/java/com/shop/Cart.java

  # Upload a whole web folder to a given release target
  %(prog)s webapp/src/main/webapp/css/ --target prod-shop-magnolia.txt

  # Show where files would go, without credentials or network access
  %(prog)s core/src/main/java/com/shop/Cart.java --dry-run

  # List release targets of the project
  %(prog)s --list-targets

Credentials are read from <PROJECT>_AWS_ACCESS_KEY and
<PROJECT>_AWS_SECRET_ACCESS_KEY (environment or .env in the project dir).
        """,
    )

    parser.add_argument(
        "files",
        nargs="*",
        help="Source files or directories to upload",
    )

    parser.add_argument(
        "-d",
        "--project-dir",
        default=os.getcwd(),
        help="Project base directory (default: current directory)",
    )

    parser.add_argument(
        "-c",
        "--config",
        help="Property file (default: s3upload.properties in the project dir)",
    )

    parser.add_argument(
        "-t",
        "--target",
        help="Marker file of the release target (e.g. prod-shop-magnolia.txt)",
    )

    parser.add_argument(
        "--list-targets",
        action="store_true",
        help="List release targets and exit",
    )

    parser.add_argument(
        "-s",
        "--strategy",
        choices=[strategy.value for strategy in DeployPathStrategy],
        help="Deploy path strategy (overrides deploy.path.strategy)",
    )

    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Resolve files and print their destinations without uploading",
    )

    parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Upload output files older than their sources without asking",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    return parser.parse_args(argv)


def confirm_stale_files(files: List[ResolvedFile]) -> bool:
    """Ask on the terminal whether stale output files may be uploaded."""
    print("\n⚠️  Output files older than their sources (not recompiled?):")
    for resolved in files:
        print(f"  • {resolved.output_path}")

    if not sys.stdin.isatty():
        print("Not a terminal, refusing. Use --yes to upload anyway.")
        return False

    answer = input("Upload anyway? [y/N] ").strip().lower()
    return answer in ("y", "yes")


def select_target(targets: List[UploadConfig], name: str = None) -> UploadConfig:
    """Pick the release target named on the command line, or the only one."""
    if name:
        for target in targets:
            if name in (target.full_file_name, target.file_name):
                return target
        raise S3UploadError(
            f"Unknown target {name} (available: {', '.join(t.full_file_name for t in targets)})"
        )
    if len(targets) == 1:
        return targets[0]
    raise S3UploadError(
        f"Several release targets, choose one with --target: "
        f"{', '.join(t.full_file_name for t in targets)}"
    )


def main(argv: List[str] = None) -> int:
    """Main entry point for upload CLI."""
    args = parse_args(argv)

    # Configure logging verbosity
    if args.verbose:
        logging.getLogger("s3upload").setLevel(logging.DEBUG)

    if not args.files and not args.list_targets:
        print("❌ No files to upload")
        return 1

    try:
        project_dir = Path(args.project_dir).resolve()
        raw_properties = (
            read_properties_file(args.config)
            if args.config
            else load_project_properties(project_dir)
        )
        if args.strategy:
            raw_properties[DEPLOY_PATH_STRATEGY_KEY] = args.strategy

        config = load_config(raw_properties)
        resolver = PathResolver(config, discover_project(project_dir))
        project_name = config.resolve_project_name(project_dir.name)
        bucket = config.resolve_bucket_name(project_name)

        if args.dry_run:
            plan = plan_upload(args.files, resolver)
            print(f"🔎 Upload plan for {project_name} ({resolver.strategy.value})")
            for line in describe_plan(plan):
                print(f"  {line}")
            for resolved in plan.stale_files:
                print(f"  ⚠️  older than its source: {resolved.output_path}")
            for error in plan.errors:
                print(f"  ❌ {error}")
            return 0 if not plan.errors else 1

        # Credentials first: nothing remote happens without them
        load_env_file(project_dir)
        credentials = resolve_project_credentials(project_name)
        new_session_id()

        # Stale outputs are confirmed before any remote call
        plan = None
        if not args.list_targets:
            plan = plan_upload(args.files, resolver)
            if plan.stale_files and not args.yes and not confirm_stale_files(plan.stale_files):
                raise UploadAborted(
                    f"{len(plan.stale_files)} output file(s) older than their sources"
                )

        with open_store(credentials, config.aws_region) as store:
            if args.list_targets:
                targets = list_upload_configs(store, bucket, config.last_versions_path, project_name)
                print(f"🎯 Release targets of {project_name} in {bucket}:")
                for target in targets:
                    print(f"  • {target.full_file_name}{' (prod)' if target.is_prod else ''}")
                return 0

            if args.target:
                target = UploadConfig.from_marker(project_name, args.target)
            else:
                target = select_target(
                    list_upload_configs(store, bucket, config.last_versions_path, project_name)
                )

            print(f"📤 Uploading to {bucket} ({target.file_name})")
            report = upload_files(
                args.files,
                target,
                config,
                resolver,
                store,
                confirm=lambda files: True,
                plan=plan,
            )

        print(f"\n📊 Upload Summary (version {report.version}):")
        for group in report.groups:
            if group.success:
                print(f"  ✅ {group.directory}")
                for key in group.keys:
                    print(f"     {key}")
            else:
                print(f"  ❌ {group.directory}: {group.error.cause}")
        for error in report.resolution_errors:
            print(f"  ❌ {error}")

        return 0 if report.success else 1

    except KeyboardInterrupt:
        print("\n⚠️  Upload cancelled by user")
        return 130

    except UploadAborted as e:
        print(f"🛑 Upload aborted: {e}")
        return 1

    except (S3UploadError, OSError) as e:
        logger.error(f"Upload failed: {e}")
        print(f"❌ {e}")
        return 1

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"❌ Unexpected error: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
