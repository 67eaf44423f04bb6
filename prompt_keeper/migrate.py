"""
One-shot move of ``prompts.json`` into the prompts table.

Safe to run on every startup:
- nothing happens when the file is missing or the table already has rows;
- an unreadable or empty file, or a database without users, is left
  untouched so a later startup can retry;
- all records are inserted in one transaction, owned by the first
  registered user, and only after commit is the file renamed to
  ``<name>.migrated``.

Errors are logged, never raised: this runs in the background at startup.
"""
import logging
from pathlib import Path
from typing import Union
from datetime import datetime, timezone

import orjson

from .exceptions import TransientStorageError
from .storage import Database

logger = logging.getLogger("prompt_keeper.migrate")

MIGRATED_SUFFIX = ".migrated"
DEFAULT_DESCRIPTION = "Imported prompt"

_COUNT_PROMPTS = "SELECT COUNT(*) AS c FROM prompts"

_SELECT_FIRST_USER = "SELECT id FROM users ORDER BY id LIMIT 1"

_INSERT_PROMPT = """
INSERT INTO prompts (user_id, description, form_data, created_at)
VALUES (?, ?, ?, ?)
"""


def _legacy_row(record, owner_id: int, now: str) -> tuple:
    if isinstance(record, dict):
        description = record.get("description") or DEFAULT_DESCRIPTION
        form_data = record.get("formData") or record
        created_at = record.get("createdAt") or now
    else:
        description, form_data, created_at = DEFAULT_DESCRIPTION, record, now
    return (
        owner_id,
        str(description),
        orjson.dumps(form_data).decode("utf-8"),
        str(created_at),
    )


async def _count_prompts(db: Database) -> int:
    async with db.acquire() as conn:
        cursor = await conn.execute(_COUNT_PROMPTS)
        row = await cursor.fetchone()
    return row["c"]


async def migrate_legacy_prompts(
    db: Database,
    source: Union[str, Path],
) -> int:
    """Import legacy prompt records if (and only if) it is safe to.

    Args:
        db: Initialized application database.
        source: Path of the legacy JSON file.

    Returns:
        Number of imported prompts (0 when nothing was done).
    """
    source = Path(source)
    if not source.exists():
        return 0

    try:
        if await _count_prompts(db) > 0:
            return 0
    except TransientStorageError as err:
        logger.error("Legacy prompt import skipped: %s", err)
        return 0

    try:
        records = orjson.loads(source.read_bytes())
    except (OSError, orjson.JSONDecodeError) as err:
        logger.warning("Legacy prompt file %s is unreadable: %s", source, err)
        return 0
    if not isinstance(records, list) or not records:
        return 0

    now = datetime.now(timezone.utc).isoformat()
    try:
        async with db.transaction() as conn:
            # re-checked under the write lock: another process may have won
            cursor = await conn.execute(_COUNT_PROMPTS)
            if (await cursor.fetchone())["c"] > 0:
                return 0
            cursor = await conn.execute(_SELECT_FIRST_USER)
            owner = await cursor.fetchone()
            if owner is None:
                logger.info(
                    "Skipping prompt migration: no users registered yet. "
                    "Will retry on next startup."
                )
                return 0
            owner_id = owner["id"]
            await conn.executemany(
                _INSERT_PROMPT,
                [_legacy_row(record, owner_id, now) for record in records],
            )
    except Exception:
        logger.exception("Legacy prompt import failed; %s left for retry", source)
        return 0

    try:
        source.rename(source.with_name(source.name + MIGRATED_SUFFIX))
    except OSError as err:
        # rows are committed, so the table check already prevents a re-import
        logger.error("Could not mark %s as migrated: %s", source, err)

    logger.info(
        "Migrated %d prompts from JSON to SQLite (assigned to user #%s)",
        len(records), owner_id,
    )
    return len(records)
