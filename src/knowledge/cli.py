"""
Command-line entry point for the knowledge store.

Usage:
    buddy-knowledge init [--path DIR]
    buddy-knowledge add --dir docs/ --file notes.md --url https://example.com
    buddy-knowledge search "how are releases tagged" --limit 5
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config.config_loader import KnowledgeConfig, load_config
from .core.exceptions import KnowledgeError
from .core.logging import configure_logging
from .ingest.pipeline import IngestReport
from .ingest.sources import SourceSpec
from .store import KnowledgeStore, KnowledgeStoreBuilder


logger = logging.getLogger(__name__)

LOG_FILE_NAME = "knowledge.log"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="buddy-knowledge",
        description="Build and search the assistant's knowledge store",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml (default: nearest .buddy/config.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging on the console",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Ingest the current project as context")
    init_parser.add_argument(
        "--path",
        type=Path,
        default=Path("."),
        help="Project root to ingest (default: current directory)",
    )

    add_parser = subparsers.add_parser("add", help="Add files, directories or web pages")
    add_parser.add_argument("--dir", type=Path, help="Directory to ingest recursively")
    add_parser.add_argument("--file", type=Path, help="Single file to ingest")
    add_parser.add_argument("--url", help="Web page to fetch and ingest")

    search_parser = subparsers.add_parser("search", help="Find the most similar stored knowledge")
    search_parser.add_argument("text", help="Text to search for")
    search_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=10,
        help="Maximum number of results (default: 10)",
    )

    args = parser.parse_args(argv)
    if args.command == "add" and not (args.dir or args.file or args.url):
        parser.error("add needs at least one of --dir, --file or --url")
    return args


def setup_logging(config: KnowledgeConfig, verbose: bool = False) -> None:
    """Wire configured log levels into the package logger."""
    configure_logging(
        level=logging.DEBUG if verbose else config.console_log_level,
        log_file=config.log_dir / LOG_FILE_NAME,
        file_level=config.file_log_level,
    )


def print_report(label: str, report: IngestReport) -> None:
    print(
        f"{label}: {report.jobs_succeeded} stored, {report.jobs_failed} failed "
        f"({report.jobs_enqueued} found)"
    )
    for data_source in report.failed_sources:
        print(f"  failed: {data_source}")


def run_init(store: KnowledgeStore, config: KnowledgeConfig, args: argparse.Namespace) -> int:
    report = store.ingest(SourceSpec.project(str(args.path), config.file_types))
    print_report("Project", report)
    return 0


def run_add(store: KnowledgeStore, config: KnowledgeConfig, args: argparse.Namespace) -> int:
    if args.dir:
        print_report(str(args.dir), store.ingest(SourceSpec.directory(str(args.dir))))
    if args.file:
        print_report(str(args.file), store.ingest(SourceSpec.file(str(args.file))))
    if args.url:
        print_report(args.url, store.ingest(SourceSpec.url(args.url)))
    return 0


def run_search(store: KnowledgeStore, args: argparse.Namespace) -> int:
    results = store.query_knowledge(args.text, limit=args.limit)
    if not results:
        print("No knowledge stored yet.")
        return 0
    for result in results:
        print(f"{result.data_source}\t{result.distance:.4f}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
        setup_logging(config, verbose=args.verbose)

        with KnowledgeStoreBuilder(config).build() as store:
            if args.command == "init":
                return run_init(store, config, args)
            if args.command == "add":
                return run_add(store, config, args)
            return run_search(store, args)

    except KnowledgeError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
