"""
CLI entry point for the download poller.

Submits URLs to a running fetchvault API and follows them until they
complete or fail.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from ...schema.download import DownloadStatus, DownloadView
from ..utils.logging import setup_transfer_logger
from .client import DEFAULT_POLL_INTERVAL, DownloadApiError, DownloadPollerClient

DEFAULT_API_URL = "http://localhost:8000"


def print_progress(view: DownloadView) -> None:
    print(f"  {view.download_id}: {view.status.value} {view.progress}%")


def print_view(view: DownloadView) -> None:
    print(f"Download ID: {view.download_id}")
    print(f"Source URL: {view.source_url}")
    print(f"File: {view.file_name} ({view.file_size} bytes, {view.content_type})")
    print(f"Status: {view.status.value} ({view.progress}%)")
    print(f"Downloads: {view.download_count}")
    if view.error:
        print(f"Error: {view.error}")
    if view.download_url:
        print(f"Download URL: {view.download_url}")


async def fetch_url(
    client: DownloadPollerClient, url: str, confirm: bool = False, timeout: Optional[float] = None
) -> None:
    view = await client.fetch(url, confirm=confirm, timeout=timeout, on_update=print_progress)
    print_view(view)
    if view.status == DownloadStatus.FAILED:
        sys.exit(1)


async def run_command(args: argparse.Namespace) -> None:
    async with DownloadPollerClient(args.api_url, poll_interval=args.interval) as client:
        if args.command == "fetch":
            await fetch_url(client, args.url, confirm=args.confirm, timeout=args.timeout)
        elif args.command == "status":
            print_view(await client.get(args.download_id))
        elif args.command == "wait":
            print_view(await client.poll_until_terminal(args.download_id, timeout=args.timeout, on_update=print_progress))
        elif args.command == "confirm":
            download_url, download_count = await client.confirm_download(args.download_id)
            print(f"Download URL: {download_url}")
            print(f"Downloads: {download_count}")
        elif args.command == "list":
            for job in await client.list():
                print(f"{job.download_id}  {job.status.value:<11} {job.progress:>3}%  {job.file_name}")


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="fetchvault download client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m fetchvault.transfer.poller fetch https://example.com/archive.zip --confirm
  python -m fetchvault.transfer.poller status Ab3_xY9-kLmN
  python -m fetchvault.transfer.poller wait Ab3_xY9-kLmN --timeout 300
  python -m fetchvault.transfer.poller list --api-url http://localhost:8000
        """,
    )
    parser.add_argument(
        "--api-url", default=os.getenv("FETCHVAULT_API_URL", DEFAULT_API_URL), help="Base URL of the API"
    )
    parser.add_argument("--interval", type=float, default=DEFAULT_POLL_INTERVAL, help="Seconds between polls")
    parser.add_argument(
        "--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    fetch_parser = subparsers.add_parser("fetch", help="Submit a URL and wait for it")
    fetch_parser.add_argument("url", help="Source URL to fetch")
    fetch_parser.add_argument("--confirm", action="store_true", help="Count the download and print a fresh link")
    fetch_parser.add_argument("--timeout", type=float, help="Give up after this many seconds")

    status_parser = subparsers.add_parser("status", help="Show one download")
    status_parser.add_argument("download_id")

    wait_parser = subparsers.add_parser("wait", help="Poll a download until it finishes")
    wait_parser.add_argument("download_id")
    wait_parser.add_argument("--timeout", type=float, help="Give up after this many seconds")

    confirm_parser = subparsers.add_parser("confirm", help="Count a download and print a fresh link")
    confirm_parser.add_argument("download_id")

    subparsers.add_parser("list", help="List recent downloads")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_transfer_logger("fetchvault.poller", level=args.log_level, json_logs=False)
    logger = logging.getLogger(__name__)

    try:
        asyncio.run(run_command(args))
    except DownloadApiError as e:
        logger.debug("Request failed", exc_info=True)
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
