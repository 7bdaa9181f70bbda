"""Command-line entry point for batch linking.

Usage:
    python -m shiplink ingest classified.jsonl
    python -m shiplink run --source backfill [--relink] [--no-validate]
"""

import argparse
import asyncio
import json
import logging
import sys

from shiplink.config import settings
from shiplink.database import async_session, engine
from shiplink.intake import DocumentIntake, read_jsonl
from shiplink.linking.index import IndexSnapshotError
from shiplink.models.link import LinkSource
from shiplink.pipeline import BatchRunner

logger = logging.getLogger("shiplink.cli")


async def ingest(path: str) -> int:
    documents = read_jsonl(path)
    async with async_session() as db:
        result = await DocumentIntake().ingest(db, documents)
        await db.commit()
    print(result.model_dump_json())
    return 0


async def run(source: str, relink: bool, validate_links: bool | None) -> int:
    runner = BatchRunner(settings, async_session)
    try:
        linking_run = await runner.run(
            link_source=LinkSource(source),
            relink=relink,
            validate_links=validate_links,
        )
    except IndexSnapshotError as e:
        logger.error("Run aborted: %s", e)
        return 2
    print(json.dumps(linking_run.report, indent=2))
    return 1 if linking_run.report and linking_run.report.get("failures") else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shiplink", description="Shipment document linking")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest_parser = sub.add_parser("ingest", help="Load classified documents from a JSON Lines file")
    ingest_parser.add_argument("path")

    run_parser = sub.add_parser("run", help="Run dedup, linking, validation, timelines and blockers")
    run_parser.add_argument("--source", choices=[s.value for s in LinkSource], default=LinkSource.BACKFILL.value)
    run_parser.add_argument("--relink", action="store_true", help="Re-resolve documents that already have a link")
    validate = run_parser.add_mutually_exclusive_group()
    validate.add_argument("--validate", dest="validate_links", action="store_true", default=None)
    validate.add_argument("--no-validate", dest="validate_links", action="store_false")
    return parser


async def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "ingest":
            return await ingest(args.path)
        return await run(args.source, args.relink, args.validate_links)
    finally:
        await engine.dispose()


def cli() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
