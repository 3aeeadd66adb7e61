"""TagsMixin: tag CRUD. Tag names are unique; deleting a tag detaches it from issues."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

from issues_tracker.db_base import DBMixinProtocol, _now_iso

if TYPE_CHECKING:
    from issues_tracker.core import Tag

DEFAULT_TAG_COLOR = "#6b7280"


class TagsMixin(DBMixinProtocol):
    @staticmethod
    def _row_to_tag(row: sqlite3.Row) -> Tag:
        from issues_tracker.core import Tag

        return Tag(id=row["id"], name=row["name"], color=row["color"], created_at=row["created_at"])

    def create_tag(self, name: str, color: str | None = None) -> Tag:
        if not name or not name.strip():
            msg = "Tag name cannot be empty"
            raise ValueError(msg)
        try:
            cursor = self.conn.execute(
                "INSERT INTO tags (name, color, created_at) VALUES (?, ?, ?)",
                (name.strip(), color or DEFAULT_TAG_COLOR, _now_iso()),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            msg = f"A tag named {name.strip()!r} already exists"
            raise ValueError(msg) from exc
        tag_id = cursor.lastrowid
        assert tag_id is not None
        return self.get_tag(tag_id)

    def get_tag(self, tag_id: int) -> Tag:
        row = self.conn.execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone()
        if row is None:
            msg = f"Tag not found: {tag_id}"
            raise KeyError(msg)
        return self._row_to_tag(row)

    def list_tags(self) -> list[Tag]:
        rows = self.conn.execute("SELECT * FROM tags ORDER BY name COLLATE NOCASE").fetchall()
        return [self._row_to_tag(r) for r in rows]

    def update_tag(self, tag_id: int, *, name: str | None = None, color: str | None = None) -> Tag:
        current = self.get_tag(tag_id)
        new_name = current.name if name is None else name.strip()
        new_color = current.color if color is None else color
        if not new_name:
            msg = "Tag name cannot be empty"
            raise ValueError(msg)
        try:
            self.conn.execute("UPDATE tags SET name = ?, color = ? WHERE id = ?", (new_name, new_color, tag_id))
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            msg = f"A tag named {new_name!r} already exists"
            raise ValueError(msg) from exc
        return self.get_tag(tag_id)

    def delete_tag(self, tag_id: int) -> None:
        cursor = self.conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        if cursor.rowcount == 0:
            self.conn.rollback()
            msg = f"Tag not found: {tag_id}"
            raise KeyError(msg)
        self.conn.commit()
