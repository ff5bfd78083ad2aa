"""CLI interface for bucketsync."""

import logging
import threading
from typing import Any, Optional

import click

from .config import CANNED_ACLS, SyncConfig, config
from .exceptions import BucketSyncError, ExecutionError
from .output import OutputFormatter
from .storage import create_backend
from .sync import SyncEngine, resolve_endpoint

logger = logging.getLogger(__name__)

# Third-party loggers that are noisy at INFO/DEBUG level
QUIET_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def configure_logging(verbose: bool) -> None:
    """Configure logging based on the verbose flag.

    Args:
        verbose: Enable debug logging for bucketsync modules
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("bucketsync").setLevel(logging.DEBUG)
    else:
        # Set default logging level to WARNING to suppress debug/info messages
        logging.basicConfig(level=logging.WARNING)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@click.command()
@click.argument("source", type=str)
@click.argument("destination", type=str)
@click.option(
    "--max-threads",
    "-m",
    type=int,
    default=None,
    help="Maximum number of parallel transfers (default: 12)",
)
@click.option(
    "--delete",
    is_flag=True,
    help="Delete files on the destination that do not exist on the source",
)
@click.option(
    "--dry-run", "-n", is_flag=True, help="Show what would be done but change nothing"
)
@click.option(
    "--acl",
    type=click.Choice(CANNED_ACLS),
    default=None,
    help="ACL applied to every written remote object (default: private)",
)
@click.option("--profile", "-p", default=None, help="Credentials profile to use")
@click.option("--region", "-r", default=None, help="Region to use")
@click.option("--verify", is_flag=True, help="Verify the destination after syncing")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="bucketsync")
@click.pass_context
def main(
    ctx: Any,
    source: str,
    destination: str,
    max_threads: Optional[int],
    delete: bool,
    dry_run: bool,
    acl: Optional[str],
    profile: Optional[str],
    region: Optional[str],
    verify: bool,
    quiet: bool,
    json_output: bool,
    verbose: bool,
) -> None:
    """Mirror SOURCE to DESTINATION.

    Each location is either a local directory or remote://<bucket>/<path>.
    Files are compared by content digest and only changed files are
    transferred.

    Examples:
        bucketsync ./photos remote://media/photos          # Upload changes
        bucketsync remote://media/photos ./photos          # Download changes
        bucketsync remote://media/photos remote://backup/photos
        bucketsync ./photos remote://media/photos --delete --dry-run
    """
    configure_logging(verbose)
    out = OutputFormatter(json_output=json_output, quiet=quiet)

    sync_config = SyncConfig(
        source=source,
        destination=destination,
        max_threads=config.max_threads if max_threads is None else max_threads,
        delete=delete,
        dry_run=dry_run,
        acl=acl or config.acl,
        profile=profile or config.profile,
        region=region or config.region,
        verify=verify,
    )

    cancel_event = threading.Event()

    try:
        sync_config.validate()
        endpoints = [resolve_endpoint(source), resolve_endpoint(destination)]
        buckets = sorted({e.bucket for e in endpoints if e.is_remote})

        backend = None
        if buckets:
            backend = create_backend(sync_config.profile, sync_config.region)
            for bucket in buckets:
                backend.check_connectivity(bucket)

        # JSON mode prints only the final summary
        engine_out = OutputFormatter(
            json_output=json_output, quiet=quiet or json_output
        )
        engine = SyncEngine(backend, engine_out)
        summary = engine.sync(sync_config, cancel_event=cancel_event)

    except KeyboardInterrupt:
        cancel_event.set()
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return
    except ExecutionError as e:
        if out.json_output:
            out.output_json(e.summary.to_dict())
        out.error(str(e))
        ctx.exit(1)
        return
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(summary.to_dict())

    if summary.verification is not None and not summary.verification.is_valid:
        out.error("Verification failed")
        ctx.exit(1)


if __name__ == "__main__":
    main()
