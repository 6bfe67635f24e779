"""CLI entrypoint that prints a bucket's storage layout.

Builds a Storage Control client from application default credentials,
issues one GetStorageLayout call and prints the result. Any failure is
logged and ends the process with status 1.
"""

import argparse
import logging
import sys
from typing import List, Optional

from gcsbench import __version__
from gcsbench.exceptions import GcsBenchError
from gcsbench.layout import (
    DEFAULT_LAYOUT_BUCKET,
    build_control_client,
    fetch_storage_layout,
    format_layout,
)
from gcsbench.logging_config import log_exception, setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Print the storage layout of a bucket")
    parser.add_argument(
        "--bucket",
        default=DEFAULT_LAYOUT_BUCKET,
        help=f"Bucket to inspect (default: {DEFAULT_LAYOUT_BUCKET})",
    )
    parser.add_argument(
        "--project",
        default="_",
        help="Project owning the bucket (default: _, resolved by the service)",
    )
    parser.add_argument("--json", action="store_true", help="Print the layout as JSON")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose (DEBUG level) logging"
    )
    parser.add_argument(
        "--log-format",
        choices=["human", "json", "simple"],
        default=None,
        help="Log format (default: human). Can also set via GCSBENCH_LOG_FORMAT env var",
    )
    parser.add_argument(
        "--log-context",
        action="store_true",
        help="Include module, function and line number in console log lines",
    )
    parser.add_argument(
        "--version", action="version", version=f"gcsbench {__version__}"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else None,
        format_type=args.log_format,
        use_colors=True,
        include_context=args.log_context,
    )

    try:
        client = build_control_client()
        layout = fetch_storage_layout(client, args.bucket, args.project)
    except GcsBenchError as exc:
        log_exception(logger, "storage-layout failed", exc)
        return 1

    print(format_layout(layout, as_json=args.json))
    return 0


if __name__ == "__main__":
    sys.exit(main())
