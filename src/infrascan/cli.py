"""
infrascan command line
======================
Submit AWS credentials (typed or found inside files) for analysis and poll
the resulting job.

Usage:
    infrascan submit --access-key AKIA... --secret-key ... --region eu-west-1
    infrascan upload credentials.csv .env
    infrascan status 3f0c8a1e-...
"""

import argparse
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from src.infrascan import __version__
from src.infrascan.jobs import JobController
from src.infrascan.models import DEFAULT_REGION, FileBlob, JobStatus, JobStatusView, SubmitResult
from src.infrascan.storage import build_job_store

console = Console()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def read_upload(path: Path) -> FileBlob:
    content = path.read_bytes()
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileBlob(name=path.name, content=content, type=media_type, size=len(content))


def print_status(job_id: str, view: JobStatusView) -> int:
    colour = {
        JobStatus.COMPLETED: "green",
        JobStatus.FAILED: "red",
        JobStatus.UNKNOWN: "yellow",
    }.get(view.status, "cyan")
    console.print(f"[bold]Job[/bold] {job_id}: [{colour}]{view.status.value}[/{colour}]")
    if view.output:
        console.print(Text.from_ansi(view.output))
    if view.error:
        console.print(Text(view.error, style="red"))
    return 0 if view.status in (JobStatus.COMPLETED, JobStatus.RUNNING, JobStatus.PENDING) else 1


def follow(controller: JobController, result: SubmitResult, wait: bool) -> int:
    if not result.success:
        console.print(f"[red]Error:[/red] {result.error}")
        return 1

    console.print(f"Job created: [bold]{result.job_id}[/bold]")
    if wait:
        with console.status("Running analysis...", spinner="dots"):
            view = controller.wait(result.job_id)
        return print_status(result.job_id, view)

    # The analysis runs on a daemon thread, so it has to finish before we exit
    view = controller.wait(result.job_id)
    return 0 if view.status == JobStatus.COMPLETED else 1


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="infrascan",
        description="Run the AWS infrastructure analysis against submitted credentials",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    infrascan submit --access-key AKIAEXAMPLE --secret-key SECRET --region us-west-2 --wait
    infrascan upload ~/Downloads/credentials.csv --wait
    infrascan status 3f0c8a1e-0b7e-4a43-9a55-2b9f3f8a6f10
        """
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (default: WARNING)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"infrascan {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    submit = subparsers.add_parser("submit", help="Submit credentials directly")
    submit.add_argument("--access-key", required=True)
    submit.add_argument("--secret-key", required=True)
    submit.add_argument("--region", default=DEFAULT_REGION, help=f"AWS region (default: {DEFAULT_REGION})")
    submit.add_argument("--wait", "-w", action="store_true", help="Print the job result when it finishes")

    upload = subparsers.add_parser("upload", help="Find credentials inside one or more files")
    upload.add_argument("files", nargs="+", type=Path)
    upload.add_argument("--wait", "-w", action="store_true", help="Print the job result when it finishes")

    status = subparsers.add_parser("status", help="Show the state of a job")
    status.add_argument("job_id")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    store = build_job_store()
    store.init()
    controller = JobController(store)

    if args.command == "status":
        return print_status(args.job_id, controller.get_job_status(args.job_id))

    if args.command == "submit":
        result = controller.create_job_from_credentials(args.access_key, args.secret_key, args.region)
        return follow(controller, result, args.wait)

    try:
        uploads = [read_upload(path) for path in args.files]
    except OSError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1
    result = controller.create_job_from_files(uploads)
    return follow(controller, result, args.wait)


if __name__ == "__main__":
    sys.exit(main())
