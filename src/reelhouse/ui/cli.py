from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING
from uuid import UUID

from dotenv import load_dotenv

from reelhouse.app import (
    WORK_QUEUES,
    abandon_import,
    discover_catalog,
    import_ceremony,
    import_status,
    resume_imports,
    retry_enrichment,
    run_workers,
)
from reelhouse.config import configure_logging
from reelhouse.domain.model import EntityKind, StreamKind
from reelhouse.domain.recovery import ManifestResume

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from reelhouse.domain.import_status import StatusReport

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import movies, people and award nominations")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    discover = subparsers.add_parser(
        "discover", help="Walk a catalog discovery stream, queueing its items for workers"
    )
    discover.add_argument("--stream", required=True, help="Name of the discovery stream")
    discover.add_argument(
        "--kind",
        choices=[kind.value for kind in StreamKind],
        default=StreamKind.PAGES.value,
        help="Unit of the stream: catalog pages or release years (default: %(default)s)",
    )
    discover.add_argument("--start", type=int, default=None, help="First position to fetch")
    discover.add_argument("--end", type=int, help="Last position to fetch (inclusive)")
    discover.add_argument("--steps", type=int, help="Stop after this many units")

    ceremony = subparsers.add_parser("ceremony", help="Import one award ceremony")
    ceremony.add_argument("--organization", required=True, help="Awarding body, e.g. oscars")
    ceremony.add_argument("--year", type=int, required=True, help="Award year")
    ceremony.add_argument(
        "--payload-file",
        type=Path,
        help="Read the ceremony payload from a JSON file (or directory tree) instead of HTTP",
    )
    ceremony.add_argument(
        "--queued",
        action="store_true",
        help="Hand entries to the job queue; workers resolve and materialize them",
    )

    resume = subparsers.add_parser("resume", help="Resume unfinished manifests and streams")
    resume.add_argument("--manifest", type=str, help="Resume only this manifest id")
    resume.add_argument("--steps", type=int, help="Limit discovery units per resumed stream")

    abandon = subparsers.add_parser("abandon", help="Give up on a manifest")
    abandon.add_argument("manifest_id", type=str, help="Manifest id to abandon")

    status = subparsers.add_parser("status", help="Summarize manifests and streams")
    status.add_argument(
        "--include-archived", action="store_true", help="Include archived manifests"
    )

    enrich = subparsers.add_parser("enrich", help="Retry failed detail fetches")
    enrich.add_argument(
        "--kind",
        choices=[kind.value for kind in EntityKind],
        required=True,
        help="Which placeholders to enrich",
    )
    enrich.add_argument("--limit", type=int, help="Maximum number of records to retry")

    worker = subparsers.add_parser("worker", help="Process queued work units")
    worker.add_argument(
        "--queue",
        dest="queues",
        action="append",
        choices=list(WORK_QUEUES),
        help="Queue to consume; repeat for several (default: all)",
    )
    worker.add_argument("--concurrency", type=int, help="Worker processes to run")

    args = parser.parse_args(list(argv))
    _validate(args)
    return args


def _validate(args: argparse.Namespace) -> None:
    if args.command == "discover":
        if args.start is None:
            args.start = 1 if args.kind == StreamKind.PAGES.value else None
        if args.start is None:
            raise ValueError("--start is required for year streams")
        if args.end is not None and args.end < args.start:
            raise ValueError("--end must not precede --start")
        if args.steps is not None and args.steps < 1:
            raise ValueError("--steps must be positive")
    if args.command == "enrich" and args.limit is not None and args.limit < 1:
        raise ValueError("--limit must be positive")
    if args.command == "worker" and args.concurrency is not None and args.concurrency < 1:
        raise ValueError("--concurrency must be positive")


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise ValueError(f"Invalid manifest id: {value}") from exc


def format_status(report: StatusReport) -> list[str]:
    """Render a status report as plain text lines."""

    lines = [
        "Entities: "
        + ", ".join(f"{kind}={count}" for kind, count in sorted(report.entities.items())),
        "Admissions: "
        + ", ".join(f"{tier}={count}" for tier, count in sorted(report.admissions.items())),
    ]
    for row in report.manifests:
        line = (
            f"{row.batch_key}  {row.status:<13} {row.label:<11} "
            f"{row.created}/{row.total_relations} relations ({row.match_rate:.0%})"
        )
        if row.error:
            line += f"  error: {row.error}"
        lines.append(line)
    for cursor in report.cursors:
        end = cursor.end_position if cursor.end_position is not None else "-"
        line = f"{cursor.stream}  {cursor.status:<11} at {cursor.last_completed_position}/{end}"
        if cursor.error:
            line += f"  error: {cursor.error}"
        lines.append(line)
    if report.failed_manifests or report.stalled_cursors:
        lines.append(
            f"Attention: {len(report.failed_manifests)} failed manifest(s), "
            f"{len(report.stalled_cursors)} stalled stream(s)"
        )
    return lines


def _run_command(args: argparse.Namespace) -> None:
    if args.command == "discover":
        discover_catalog(
            args.stream,
            kind=StreamKind(args.kind),
            start=args.start,
            end=args.end,
            max_steps=args.steps,
        )
    elif args.command == "ceremony":
        import_ceremony(
            args.organization,
            args.year,
            payload_file=args.payload_file,
            queued=args.queued,
        )
    elif args.command == "resume":
        manifest_id = _parse_uuid(args.manifest) if args.manifest else None
        result = resume_imports(manifest_id=manifest_id, max_steps=args.steps)
        if isinstance(result, ManifestResume):
            log.info("Manifest %s is now %s", result.batch_key, result.status)
        else:
            for deferred in result.deferred:
                log.info("Manifest %s still has queued work; not resumed", deferred)
            for unit, error in result.errors.items():
                log.error("Resume of %s failed: %s", unit, error)
    elif args.command == "abandon":
        manifest = abandon_import(_parse_uuid(args.manifest_id))
        log.info("Abandoned %s", manifest.batch_key)
    elif args.command == "status":
        for line in format_status(import_status(include_archived=args.include_archived)):
            log.info(line)
    elif args.command == "enrich":
        report = retry_enrichment(EntityKind(args.kind), limit=args.limit)
        log.info(
            "Enrichment finished: attempted=%s, upgraded=%s, still failing=%s",
            report.attempted,
            report.upgraded,
            report.still_failing,
        )
    elif args.command == "worker":
        run_workers(args.queues or WORK_QUEUES, concurrency=args.concurrency)
    else:
        raise ValueError(f"Unsupported command: {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(args_list)
    except ValueError:
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
    try:
        _run_command(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during import")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
