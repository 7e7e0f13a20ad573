"""
Import an Anki .apkg file from the command line.

Runs the same pipeline as the HTTP endpoint for a given owner, without
bearer authentication. Useful for bulk migrations and for debugging files
users report as broken.

    ankiport-import --owner <user-id> --file deck.apkg
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ankiport.db.database import async_session_factory, init_db
from ankiport.models.failure import KnownError
from ankiport.services.anki_import import AnkiImporter, ImportOutcome
from ankiport.services.storage import storage_from_settings

logger = logging.getLogger(__name__)


async def run_import(owner_id: str, path: Path, create_tables: bool = False) -> ImportOutcome:
    """
    Import one .apkg file for an owner.

    Args:
        owner_id: User id that will own the decks and cards
        path: Path to the .apkg file
        create_tables: Create missing tables before importing

    Returns:
        Outcome of the import

    Raises:
        KnownError: If the import fails
    """
    if create_tables:
        await init_db()

    storage = storage_from_settings()
    try:
        importer = AnkiImporter(async_session_factory, storage)
        return await importer.run(owner_id, path.read_bytes(), path.name)
    finally:
        await storage.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import an Anki .apkg file")
    parser.add_argument("--owner", required=True, help="Owner user id")
    parser.add_argument("--file", required=True, type=Path, help="Path to the .apkg file")
    parser.add_argument(
        "--init-db", action="store_true", help="Create database tables before importing"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)

    if not args.file.is_file():
        logger.error("File not found: %s", args.file)
        return 2

    try:
        outcome = asyncio.run(run_import(args.owner, args.file, args.init_db))
    except KnownError as e:
        logger.error("Import failed [%s]: %s", e.code.value, e.message)
        if e.detail:
            logger.error("Details: %s", e.detail)
        return 1

    logger.info(
        "Imported %d cards into %d decks (import %s)",
        outcome.imported,
        outcome.decks,
        outcome.import_id,
    )
    for warning in outcome.warnings:
        logger.warning(warning)
    return 0


if __name__ == "__main__":
    sys.exit(main())
