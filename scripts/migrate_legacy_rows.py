#!/usr/bin/env python3
"""
One-time migration: re-encode legacy media rows with the current codec scheme.

Usage:
    python scripts/migrate_legacy_rows.py [--dry-run] [--database-url URL]

Rows whose description is still in the legacy ``|||SEARCH_CTX|||`` packing
(or plain text) are decoded with the normal fallback chain and written back
in the current scheme. Titles are left as stored and no page URLs are
invented for records without pages.

Run with --dry-run to preview without making changes.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from memoryreel.codec import detect_scheme, encode_description
from memoryreel.db.connection import build_engine, build_session_factory, close_db, get_session_context
from memoryreel.db.repositories.media import MediaRepository


async def migrate_legacy_rows(
    session_factory: async_sessionmaker[AsyncSession],
    dry_run: bool = False,
) -> Dict[str, int]:
    """Re-encode every non-current row.

    Returns:
        Count of rows per detected scheme, plus "migrated"
    """
    stats: Dict[str, int] = {"v2": 0, "v1": 0, "plain": 0, "migrated": 0}

    async with get_session_context(session_factory) as session:
        repo = MediaRepository(session)
        for row in await repo.get_recent():
            scheme = detect_scheme(row.description)
            stats[scheme] = stats.get(scheme, 0) + 1
            if scheme == "v2":
                continue

            record = repo.to_record(row)
            print(f"  [{scheme}] {row.id} {row.title!r}")
            if not dry_run:
                row.description = encode_description(record)
                stats["migrated"] += 1

        if dry_run:
            print("\nDRY RUN - Rolling back all changes...")
            await session.rollback()

    return stats


async def run_migration(dry_run: bool = False, database_url: Optional[str] = None):
    print("=" * 60)
    print("Legacy media row migration")
    if dry_run:
        print("DRY RUN MODE - No changes will be made")
    print("=" * 60)

    engine = build_engine(database_url)
    try:
        stats = await migrate_legacy_rows(build_session_factory(engine), dry_run=dry_run)
    finally:
        await close_db(engine)

    print("\n" + "=" * 60)
    print(
        f"Current: {stats['v2']}, legacy: {stats['v1']}, plain: {stats['plain']}, "
        f"migrated: {stats['migrated']}"
    )
    print("=" * 60)


def main():
    parser = argparse.ArgumentParser(description="Re-encode legacy media rows")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without making them",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override DATABASE_URL",
    )
    args = parser.parse_args()

    asyncio.run(run_migration(dry_run=args.dry_run, database_url=args.database_url))


if __name__ == "__main__":
    main()
