"""
Command line entry points for batch work.

Usage examples:
  # extract every PDF in a folder
  python -m cvmatch.cli extract --folder ./cvs

  # score every CV against every active job (optionally wiping old matches first)
  python -m cvmatch.cli score-all --reset --report reports/scores.csv

  # insert the sample job catalogue
  python -m cvmatch.cli seed-jobs --clear

  # delete all stored chat turns
  python -m cvmatch.cli clear-chat
"""
import argparse
import asyncio
import sys
from typing import List, Optional

from cvmatch.dependencies import ServiceContainer, build_container
from cvmatch.services.db import init_indexes
from cvmatch.utils.exceptions import CVMatchError
from cvmatch.utils.logging_config import configure_for_environment, get_logger

logger = get_logger(__name__)


async def cmd_extract(container: ServiceContainer, args) -> int:
    report = await container.batch_extractor.process_folder(args.folder)
    print(f"Processed {report.total} file(s): {len(report.succeeded)} succeeded, {len(report.failed)} failed")
    for item in report.failed:
        print(f"  FAILED {item.file}: {item.error}")
    return 0 if not report.failed else 1


async def cmd_score_all(container: ServiceContainer, args) -> int:
    rows = await container.batch_scorer.score_all(reset=args.reset)
    path = container.batch_scorer.write_report(rows, args.report)
    print(f"Stored {len(rows)} match(es); report written to {path}")
    return 0


async def cmd_seed_jobs(container: ServiceContainer, args) -> int:
    result = await container.jobs.seed(clear_existing=args.clear)
    print(f"Existing: {result['existing_count']}, deleted: {result['deleted_count']}, "
          f"inserted: {result['inserted_count']}")
    return 0


async def cmd_clear_chat(container: ServiceContainer, args) -> int:
    deleted = await container.chat.clear_history()
    print(f"Deleted {deleted} chat turn(s)")
    return 0


COMMANDS = {
    "extract": cmd_extract,
    "score-all": cmd_score_all,
    "seed-jobs": cmd_seed_jobs,
    "clear-chat": cmd_clear_chat,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cvmatch", description="CV matching batch tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Extract every PDF CV in a folder")
    extract.add_argument("--folder", required=True, help="Folder containing PDF CVs")

    score = subparsers.add_parser("score-all", help="Score all CVs against all active jobs")
    score.add_argument("--reset", action="store_true", help="Delete existing match records first")
    score.add_argument("--report", default="reports/match_scores.csv", help="CSV report path")

    seed = subparsers.add_parser("seed-jobs", help="Insert the sample job catalogue")
    seed.add_argument("--clear", action="store_true", help="Delete existing jobs first")

    subparsers.add_parser("clear-chat", help="Delete all chat history")
    return parser


async def run(args, container: Optional[ServiceContainer] = None) -> int:
    owned = container is None
    container = container or build_container()
    try:
        if container.db is not None:
            await init_indexes(container.db)
        return await COMMANDS[args.command](container, args)
    finally:
        if owned:
            container.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_for_environment()
    try:
        return asyncio.run(run(args))
    except CVMatchError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(f"Error: {e.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
