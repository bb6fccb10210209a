from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from typing import Any

from voice_memos.db.database import Database
from voice_memos.errors import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MemosRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def insert(
        self,
        *,
        user_id: str | None,
        title: str | None,
        transcript: str,
        audio_url: str = "",
        metadata: dict[str, Any] | None = None,
        duration: float | None = None,
    ) -> dict[str, Any]:
        memo_id = str(uuid.uuid4())
        try:
            with self.db.lock:
                self.db.conn.execute(
                    """
                    INSERT INTO memos(id, user_id, title, transcript, audio_url, metadata, duration)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        memo_id,
                        user_id,
                        title,
                        transcript,
                        audio_url,
                        json.dumps(metadata or {}, sort_keys=True),
                        duration,
                    ),
                )
                self.db.conn.commit()
        except sqlite3.Error as exc:
            logger.exception("Memo insert failed")
            raise PersistenceError("Failed to save memo", cause=exc) from exc

        memo = self.get(memo_id)
        if memo is None:
            raise PersistenceError("Failed to save memo: no row returned")
        return memo

    def update_owned(
        self,
        memo_id: str,
        user_id: str,
        *,
        title: str | None,
        transcript: str,
        audio_url: str,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Overwrite a memo owned by ``user_id``; None when no such memo exists."""
        try:
            with self.db.lock:
                cursor = self.db.conn.execute(
                    """
                    UPDATE memos
                    SET title = ?, transcript = ?, audio_url = ?, metadata = ?
                    WHERE id = ? AND user_id = ?
                    """,
                    (
                        title,
                        transcript,
                        audio_url,
                        json.dumps(metadata or {}, sort_keys=True),
                        memo_id,
                        user_id,
                    ),
                )
                self.db.conn.commit()
        except sqlite3.Error as exc:
            logger.exception("Memo update failed for %s", memo_id)
            raise PersistenceError("Failed to save memo", cause=exc) from exc

        if cursor.rowcount == 0:
            return None
        return self.get(memo_id)

    def get(self, memo_id: str) -> dict[str, Any] | None:
        try:
            row = self.db.conn.execute("SELECT * FROM memos WHERE id = ?", (memo_id,)).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError("Failed to read memo", cause=exc) from exc
        return self._to_memo(row) if row is not None else None

    def list_for_owner(
        self,
        user_id: str,
        *,
        search: str = "",
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        clauses = ["user_id = ?"]
        params: list[Any] = [user_id]
        if search:
            clauses.append("transcript LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(search)}%")
        where = " WHERE " + " AND ".join(clauses)

        limit = max(1, min(limit, MAX_LIST_LIMIT))
        offset = max(0, offset)

        try:
            total = self.db.conn.execute(f"SELECT COUNT(*) FROM memos{where}", tuple(params)).fetchone()[0]
            rows = self.db.conn.execute(
                f"SELECT * FROM memos{where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError("Failed to list memos", cause=exc) from exc
        return [self._to_memo(row) for row in rows], int(total)

    @staticmethod
    def _to_memo(row: sqlite3.Row) -> dict[str, Any]:
        memo = dict(row)
        try:
            memo["metadata"] = json.loads(memo.get("metadata") or "{}")
        except json.JSONDecodeError:
            memo["metadata"] = {}
        return memo
