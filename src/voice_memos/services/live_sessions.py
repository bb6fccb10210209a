from __future__ import annotations

import logging

from voice_memos.db.memos import MemosRepository
from voice_memos.errors import AuthError, PersistenceError
from voice_memos.types import LIVE_MEMO_TITLE, LiveMemo

logger = logging.getLogger(__name__)


class LiveSessionManager:
    """Hands out placeholder memo ids before recognition has finished.

    The placeholder is written once. Filling in the transcript is left to the
    upload that later references the id.
    """

    def __init__(self, memos: MemosRepository) -> None:
        self.memos = memos

    def create_session(self, owner_id: str | None) -> LiveMemo:
        if not owner_id or not owner_id.strip():
            raise AuthError()

        try:
            row = self.memos.insert(
                user_id=owner_id,
                title=LIVE_MEMO_TITLE,
                transcript="",
                audio_url="",
                metadata={},
            )
        except PersistenceError as exc:
            raise PersistenceError("Unable to create live memo", cause=exc.cause or exc) from exc

        memo_id = row.get("id")
        if not memo_id:
            raise PersistenceError("Unable to create live memo")

        logger.info("Created live memo %s for %s", memo_id, owner_id)
        return LiveMemo(id=str(memo_id), owner_id=owner_id)
