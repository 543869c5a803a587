"""
CLI helper to load companions from a JSON file into the configured store.

The file holds a list of objects with ``name``, ``subject``, ``topic`` and
optionally ``voice``, ``style``, ``duration`` and ``author``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from companion_backend.db import DbClient, NewCompanion, StoreErrorKind, StoreFailure
from companion_backend.dependencies import get_db_client

logger = logging.getLogger(__name__)


def load_seed_file(path: Path) -> list[dict]:
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    if not isinstance(payload, list):
        raise ValueError(f"{path}: expected a JSON list of companions")
    return payload


def seed_companions(
    db: DbClient, entries: list[dict], default_author: str
) -> tuple[int, int]:
    """Insert entries; returns (created, skipped). Existing names are skipped."""
    created = skipped = 0
    for entry in entries:
        try:
            fields = NewCompanion(
                name=entry["name"],
                subject=entry["subject"],
                topic=entry["topic"],
                voice=entry.get("voice", ""),
                style=entry.get("style", ""),
                duration=int(entry.get("duration", 15)),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed entry %r: %s", entry, e)
            skipped += 1
            continue

        result = db.insert_companion(fields, author=entry.get("author") or default_author)
        if isinstance(result, StoreFailure):
            if result.kind != StoreErrorKind.CONFLICT:
                raise RuntimeError(f"Store error while seeding: {result.detail}")
            logger.info("Companion %r already exists; skipped", fields.name)
            skipped += 1
            continue
        created += 1
    return created, skipped


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Seed companions into the store")
    parser.add_argument("path", type=Path, help="JSON file with a list of companions")
    parser.add_argument(
        "--author",
        type=str,
        default="system",
        help="Author id for entries that do not name one",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    entries = load_seed_file(args.path)
    created, skipped = seed_companions(get_db_client(), entries, args.author)
    logger.info("Seeded %d companions (%d skipped)", created, skipped)
    return 0


if __name__ == "__main__":
    sys.exit(main())
