"""CLI entry point for column exports.

Usage:
    python -m chunkexport run ./post_content.yaml
    python -m chunkexport run ./post_content.yaml --chunk-size 4096 --output ./out.bin
    python -m chunkexport status ./post_content.yaml
    python -m chunkexport reset ./post_content.yaml

Re-running ``run`` after a failure resumes from the last saved offset.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from chunkexport.lib.config_loader import ExportJob, load_job
from chunkexport.lib.connections import close_all_connections
from chunkexport.lib.env import load_env_file
from chunkexport.lib.errors import ExportError
from chunkexport.lib.export import export_column, job_status, reset_job
from chunkexport.lib.logging import setup_logging

logger = logging.getLogger(__name__)

COMMANDS = ("run", "status", "reset")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chunk-export",
        description="Export one binary database column to a file in resumable chunks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Export (or resume exporting) the configured column
    chunk-export run ./post_content.yaml

    # Show saved progress
    chunk-export status ./post_content.yaml

    # Forget progress and delete partial output
    chunk-export reset ./post_content.yaml
        """,
    )
    parser.add_argument("command", choices=COMMANDS, help="What to do")
    parser.add_argument("config", help="Path to the export YAML config")
    parser.add_argument(
        "--chunk-size",
        type=int,
        help="Override export.chunk_size (bytes per fetch)",
    )
    parser.add_argument(
        "--output",
        help="Override export.output",
    )
    parser.add_argument(
        "--manifest",
        help="Override export.manifest",
    )
    parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Skip comparing the output size to the column length",
    )
    parser.add_argument(
        "--keep-output",
        action="store_true",
        help="With reset: keep the partial output file (the next run overwrites it)",
    )
    parser.add_argument(
        "--env-file",
        help="Load environment variables from this .env file first",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (one line per chunk)",
    )
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to console",
    )
    return parser


def apply_overrides(job: ExportJob, args: argparse.Namespace) -> ExportJob:
    if args.chunk_size is not None:
        job.chunk_size = args.chunk_size
    if args.output:
        job.output_path = args.output
    if args.manifest:
        job.manifest_path = args.manifest
    if args.no_verify:
        job.verify = False
    return job


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    setup_logging(verbose=args.verbose, json_format=args.json_log, log_file=args.log_file)

    try:
        load_env_file(args.env_file)
        job = apply_overrides(load_job(args.config), args)

        if args.command == "status":
            print(json.dumps(job_status(job), indent=2))
        elif args.command == "reset":
            removed = reset_job(job, remove_output=not args.keep_output)
            print(f"Reset {job.table}.{job.column}" if removed else "Nothing to reset")
        else:
            result = export_column(job)
            print(json.dumps(result.to_dict(), indent=2))
    except ExportError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        close_all_connections()

    return 0


if __name__ == "__main__":
    sys.exit(main())
