from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from app.settings import Settings
from ingest.pipeline import run_pipeline
from ingest.sources import SourceConfigError, load_sources, require_credentials
from normalize.transforms import TRANSFORMS


logger = logging.getLogger("eventmap")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="eventmap-ingest",
        description="Fetch event sources and write the map's event data files.",
    )
    parser.add_argument("--sources", type=Path, default=None)
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument("--horizon-months", type=int, default=None)
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    settings = Settings()
    overrides: dict[str, object] = {}
    if args.sources is not None:
        overrides["sources_file"] = args.sources
    if args.output_dir is not None:
        overrides["output_dir"] = args.output_dir
    if args.concurrency is not None:
        overrides["concurrency"] = max(1, args.concurrency)
    if args.horizon_months is not None:
        overrides["horizon_months"] = max(0, args.horizon_months)
    return settings.model_copy(update=overrides)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    # API sources read their tokens from os.environ.
    load_dotenv()
    try:
        settings = build_settings(args)
    except ValidationError as e:
        configure_logging("INFO")
        logger.error("invalid settings: %s", e)
        return 1
    configure_logging(settings.log_level)

    try:
        sources = load_sources(settings.sources_file, set(TRANSFORMS))
        require_credentials(sources)
    except SourceConfigError as e:
        logger.error("fatal: %s", e)
        return 1

    asyncio.run(run_pipeline(settings, sources=sources))
    return 0


if __name__ == "__main__":
    sys.exit(main())
