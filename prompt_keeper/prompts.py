"""Saved prompts, scoped to their owner."""
import logging
from typing import Any

import orjson

from .exceptions import NotFoundError, ValidationError
from .storage import Database

logger = logging.getLogger("prompt_keeper.storage")

DESCRIPTION_MAX_LENGTH = 40

_INSERT_PROMPT = """
INSERT INTO prompts (user_id, description, form_data, is_public)
VALUES (?, ?, ?, ?)
"""

_SELECT_PROMPT = """
SELECT id, description, form_data, created_at, is_public
FROM prompts
WHERE id = ?
"""

_SELECT_USER_PROMPTS = """
SELECT id, description, form_data, created_at, is_public
FROM prompts
WHERE user_id = ?
ORDER BY created_at DESC, id DESC
"""

_UPDATE_VISIBILITY = """
UPDATE prompts SET is_public = ? WHERE id = ? AND user_id = ?
"""

_DELETE_PROMPT = "DELETE FROM prompts WHERE id = ? AND user_id = ?"


def _as_dict(row) -> dict:
    return {
        "id": row["id"],
        "description": row["description"],
        "formData": orjson.loads(row["form_data"]),
        "createdAt": row["created_at"],
        "isPublic": bool(row["is_public"]),
    }


class PromptStore:
    def __init__(self, db: Database):
        self._db = db

    async def save_prompt(
        self,
        user_id: int,
        description: str,
        form_data: Any,
        is_public: bool = False,
    ) -> dict:
        if not description or not form_data:
            raise ValidationError("description and formData are required")
        async with self._db.acquire() as conn:
            cursor = await conn.execute(
                _INSERT_PROMPT,
                (
                    user_id,
                    str(description)[:DESCRIPTION_MAX_LENGTH],
                    orjson.dumps(form_data).decode("utf-8"),
                    1 if is_public else 0,
                ),
            )
            cursor = await conn.execute(_SELECT_PROMPT, (cursor.lastrowid,))
            row = await cursor.fetchone()
        return _as_dict(row)

    async def list_prompts(self, user_id: int) -> list[dict]:
        """Prompts owned by ``user_id``, newest first."""
        async with self._db.acquire() as conn:
            cursor = await conn.execute(_SELECT_USER_PROMPTS, (user_id,))
            rows = await cursor.fetchall()
        return [_as_dict(row) for row in rows]

    async def set_visibility(
        self, user_id: int, prompt_id: int, is_public: bool
    ) -> None:
        """Raises NotFoundError when the prompt is missing or not owned."""
        async with self._db.acquire() as conn:
            cursor = await conn.execute(
                _UPDATE_VISIBILITY, (1 if is_public else 0, prompt_id, user_id)
            )
            changed = cursor.rowcount
        if not changed:
            raise NotFoundError("Prompt not found or not owned by you")

    async def delete_prompt(self, user_id: int, prompt_id: int) -> None:
        async with self._db.acquire() as conn:
            await conn.execute(_DELETE_PROMPT, (prompt_id, user_id))
