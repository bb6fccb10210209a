from __future__ import annotations

from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from voice_memos.db.memos import MemosRepository
from voice_memos.errors import MemoServiceError
from voice_memos.services.storage import to_markdown


class ToolRegistry:
    def __init__(self, memos: MemosRepository, owner_id: str | None) -> None:
        self.memos = memos
        self.owner_id = owner_id

    def register(self, mcp: FastMCP) -> None:
        _ro = ToolAnnotations(readOnlyHint=True)

        @mcp.tool(annotations=_ro)
        def list_memos(search: str = "", limit: int = 20, offset: int = 0) -> dict[str, Any]:
            if self.owner_id is None:
                return {"error": "owner_not_configured"}
            try:
                rows, total = self.memos.list_for_owner(self.owner_id, search=search, limit=limit, offset=offset)
            except MemoServiceError as exc:
                return {"error": "list_failed", "message": exc.message}
            return {
                "count": len(rows),
                "total": total,
                "items": [
                    {
                        "id": row["id"],
                        "title": row.get("title"),
                        "created_at": row.get("created_at"),
                        "word_count": len((row.get("transcript") or "").split()),
                    }
                    for row in rows
                ],
            }

        @mcp.tool(annotations=_ro)
        def read_memo(memo_id: str, format: str = "markdown") -> dict[str, Any]:
            """Read a memo by ID.

            Args:
                memo_id: The memo ID to read
                format: Output format - "markdown", "text", or "json" (default: "markdown")

            Returns:
                Memo content in the requested format.
            """
            memo = self.memos.get(memo_id)
            if memo is None or memo.get("user_id") != self.owner_id:
                return {"error": "memo_not_found", "memo_id": memo_id}

            if format == "markdown":
                return {"memo_id": memo_id, "format": format, "content": to_markdown(memo)}
            if format == "text":
                return {"memo_id": memo_id, "format": format, "content": memo.get("transcript") or ""}
            if format == "json":
                return {"memo_id": memo_id, "format": format, "content": memo}

            return {
                "error": "unsupported_format",
                "supported_formats": ["markdown", "json", "text"],
            }

        @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False))
        def save_memo(transcript: str, title: str | None = None) -> dict[str, Any]:
            if self.owner_id is None:
                return {"error": "owner_not_configured"}
            if not transcript.strip():
                return {"error": "transcript_required"}
            try:
                memo = self.memos.insert(
                    user_id=self.owner_id,
                    title=title or "Agent Voice Memo",
                    transcript=transcript,
                )
            except MemoServiceError as exc:
                return {"error": "save_failed", "message": exc.message}
            return {"id": memo["id"], "title": memo["title"], "created_at": memo["created_at"]}
