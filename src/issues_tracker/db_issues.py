"""IssuesMixin: issue CRUD, filtering, and tag attachment.

All methods access ``self.conn`` and the user/tag helpers via Python's MRO
when composed into ``TrackerDB``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Any, Final

from issues_tracker.db_base import VALID_PRIORITIES, VALID_STATUSES, DBMixinProtocol, _now_iso, _placeholders

if TYPE_CHECKING:
    from issues_tracker.core import Issue
    from issues_tracker.types.core import PaginatedResult

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = _Unset()


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class IssuesMixin(DBMixinProtocol):
    """Issue CRUD and queries.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    """

    if TYPE_CHECKING:
        # From UsersMixin
        def _user_exists(self, user_id: int) -> bool: ...

    # -- Validation helpers ----------------------------------------------------

    def _validate_user_ref(self, user_id: int | None, field: str) -> None:
        if user_id is not None and not self._user_exists(user_id):
            msg = f"Invalid {field}: user {user_id} not found"
            raise ValueError(msg)

    def _validate_tag_ids(self, tag_ids: list[int]) -> list[int]:
        unique = list(dict.fromkeys(tag_ids))
        if not unique:
            return []
        found = {r["id"] for r in self.conn.execute(f"SELECT id FROM tags WHERE id IN ({_placeholders(unique)})", unique).fetchall()}
        missing = [str(t) for t in unique if t not in found]
        if missing:
            msg = f"Invalid tag IDs (not found): {', '.join(missing)}"
            raise ValueError(msg)
        return unique

    @staticmethod
    def _check_enum(value: str, valid: tuple[str, ...], field: str) -> None:
        if value not in valid:
            msg = f"Invalid {field} '{value}'. Valid values: {', '.join(valid)}"
            raise ValueError(msg)

    # -- Issue CRUD ------------------------------------------------------------

    def create_issue(
        self,
        title: str,
        *,
        description: str = "",
        status: str = "not_started",
        priority: str = "medium",
        assigned_user_id: int | None = None,
        created_by_user_id: int | None = None,
        tag_ids: list[int] | None = None,
    ) -> Issue:
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        self._check_enum(status, VALID_STATUSES, "status")
        self._check_enum(priority, VALID_PRIORITIES, "priority")
        # Validate references BEFORE any writes to prevent partial commits
        self._validate_user_ref(assigned_user_id, "assigned_user_id")
        self._validate_user_ref(created_by_user_id, "created_by_user_id")
        tags = self._validate_tag_ids(tag_ids or [])

        now = _now_iso()
        try:
            cursor = self.conn.execute(
                "INSERT INTO issues (title, description, status, priority, assigned_user_id, "
                "created_by_user_id, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (title.strip(), description, status, priority, assigned_user_id, created_by_user_id, now, now),
            )
            issue_id = cursor.lastrowid
            assert issue_id is not None
            self.conn.executemany(
                "INSERT OR IGNORE INTO issue_tags (issue_id, tag_id) VALUES (?, ?)",
                [(issue_id, t) for t in tags],
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        return self.get_issue(issue_id)

    def get_issue(self, issue_id: int) -> Issue:
        issues = self._build_issues_batch([issue_id])
        if not issues:
            msg = f"Issue not found: {issue_id}"
            raise KeyError(msg)
        return issues[0]

    def _build_issues_batch(self, issue_ids: list[int]) -> list[Issue]:
        """Build multiple Issues with batched queries (no N+1). Preserves input order."""
        from issues_tracker.core import Issue, Tag

        if not issue_ids:
            return []

        ph = _placeholders(issue_ids)

        # 1. Issue rows joined with their users
        rows_by_id: dict[int, sqlite3.Row] = {}
        for r in self.conn.execute(
            "SELECT i.*, "
            "a.name AS assigned_name, a.email AS assigned_email, "
            "c.name AS creator_name, c.email AS creator_email "
            "FROM issues i "
            "LEFT JOIN users a ON a.id = i.assigned_user_id "
            "LEFT JOIN users c ON c.id = i.created_by_user_id "
            f"WHERE i.id IN ({ph})",
            issue_ids,
        ).fetchall():
            rows_by_id[r["id"]] = r

        # 2. Tags per issue
        tags_by_id: dict[int, list[Tag]] = {iid: [] for iid in issue_ids}
        for r in self.conn.execute(
            "SELECT it.issue_id, t.id, t.name, t.color, t.created_at FROM issue_tags it "
            f"JOIN tags t ON t.id = it.tag_id WHERE it.issue_id IN ({ph}) ORDER BY t.name COLLATE NOCASE",
            issue_ids,
        ).fetchall():
            tags_by_id[r["issue_id"]].append(Tag(id=r["id"], name=r["name"], color=r["color"], created_at=r["created_at"]))

        result: list[Issue] = []
        for iid in issue_ids:
            row = rows_by_id.get(iid)
            if row is None:
                continue
            assigned = None
            if row["assigned_user_id"] is not None:
                assigned = {"id": row["assigned_user_id"], "name": row["assigned_name"], "email": row["assigned_email"]}
            creator = None
            if row["created_by_user_id"] is not None:
                creator = {"id": row["created_by_user_id"], "name": row["creator_name"], "email": row["creator_email"]}
            result.append(
                Issue(
                    id=row["id"],
                    title=row["title"],
                    description=row["description"] or "",
                    status=row["status"],
                    priority=row["priority"],
                    assigned_user_id=row["assigned_user_id"],
                    created_by_user_id=row["created_by_user_id"],
                    created_at=row["created_at"],
                    updated_at=row["updated_at"],
                    assigned_user=assigned,
                    created_by_user=creator,
                    tags=tags_by_id[iid],
                )
            )
        return result

    def list_issues(
        self,
        *,
        status: str | None = None,
        priority: str | None = None,
        assigned_user_id: int | None = None,
        tag_id: int | None = None,
        search: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> PaginatedResult:
        """Filtered, newest-first page of issues wrapped in a pagination envelope."""
        clauses: list[str] = []
        params: list[Any] = []
        if status is not None:
            self._check_enum(status, VALID_STATUSES, "status")
            clauses.append("status = ?")
            params.append(status)
        if priority is not None:
            self._check_enum(priority, VALID_PRIORITIES, "priority")
            clauses.append("priority = ?")
            params.append(priority)
        if assigned_user_id is not None:
            clauses.append("assigned_user_id = ?")
            params.append(assigned_user_id)
        if tag_id is not None:
            clauses.append("id IN (SELECT issue_id FROM issue_tags WHERE tag_id = ?)")
            params.append(tag_id)
        if search:
            pattern = f"%{_escape_like(search.strip())}%"
            clauses.append("(title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\')")
            params.extend([pattern, pattern])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total: int = self.conn.execute(f"SELECT COUNT(*) FROM issues {where}", params).fetchone()[0]
        ids = [
            r["id"]
            for r in self.conn.execute(
                f"SELECT id FROM issues {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
        ]
        issues = self._build_issues_batch(ids)
        return {
            "results": [dict(i.to_dict()) for i in issues],
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(issues) < total,
        }

    def update_issue(
        self,
        issue_id: int,
        *,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assigned_user_id: int | None | _Unset = UNSET,
        tag_ids: list[int] | None = None,
    ) -> Issue:
        """Update the given fields. ``assigned_user_id=None`` unassigns; ``tag_ids`` replaces the tag set."""
        current = self.get_issue(issue_id)

        updates: dict[str, Any] = {}
        if title is not None:
            if not title.strip():
                msg = "Title cannot be empty"
                raise ValueError(msg)
            updates["title"] = title.strip()
        if description is not None:
            updates["description"] = description
        if status is not None:
            self._check_enum(status, VALID_STATUSES, "status")
            updates["status"] = status
        if priority is not None:
            self._check_enum(priority, VALID_PRIORITIES, "priority")
            updates["priority"] = priority
        if not isinstance(assigned_user_id, _Unset):
            self._validate_user_ref(assigned_user_id, "assigned_user_id")
            updates["assigned_user_id"] = assigned_user_id
        new_tags = self._validate_tag_ids(tag_ids) if tag_ids is not None else None

        changed = {k: v for k, v in updates.items() if getattr(current, k) != v}
        tags_changed = new_tags is not None and sorted(new_tags) != sorted(t.id for t in current.tags)
        if not changed and not tags_changed:
            return current

        try:
            changed["updated_at"] = _now_iso()
            assignments = ", ".join(f"{col} = ?" for col in changed)
            self.conn.execute(f"UPDATE issues SET {assignments} WHERE id = ?", [*changed.values(), issue_id])
            if tags_changed and new_tags is not None:
                self.conn.execute("DELETE FROM issue_tags WHERE issue_id = ?", (issue_id,))
                self.conn.executemany(
                    "INSERT INTO issue_tags (issue_id, tag_id) VALUES (?, ?)",
                    [(issue_id, t) for t in new_tags],
                )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_issue(issue_id)

    def delete_issue(self, issue_id: int) -> None:
        cursor = self.conn.execute("DELETE FROM issues WHERE id = ?", (issue_id,))
        if cursor.rowcount == 0:
            self.conn.rollback()
            msg = f"Issue not found: {issue_id}"
            raise KeyError(msg)
        self.conn.commit()
        logger.info("Deleted issue %s", issue_id)

    # -- Tag attachment --------------------------------------------------------

    def add_issue_tag(self, issue_id: int, tag_id: int) -> Issue:
        """Attach a tag. Attaching an already-attached tag is a no-op."""
        self.get_issue(issue_id)
        self._validate_tag_ids([tag_id])
        try:
            cursor = self.conn.execute("INSERT OR IGNORE INTO issue_tags (issue_id, tag_id) VALUES (?, ?)", (issue_id, tag_id))
            if cursor.rowcount:
                self.conn.execute("UPDATE issues SET updated_at = ? WHERE id = ?", (_now_iso(), issue_id))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_issue(issue_id)

    def remove_issue_tag(self, issue_id: int, tag_id: int) -> Issue:
        """Detach a tag. Raises KeyError if the tag was not attached."""
        self.get_issue(issue_id)
        try:
            cursor = self.conn.execute("DELETE FROM issue_tags WHERE issue_id = ? AND tag_id = ?", (issue_id, tag_id))
            if cursor.rowcount == 0:
                self.conn.rollback()
                msg = f"Tag {tag_id} is not attached to issue {issue_id}"
                raise KeyError(msg)
            self.conn.execute("UPDATE issues SET updated_at = ? WHERE id = ?", (_now_iso(), issue_id))
            self.conn.commit()
        except KeyError:
            raise
        except Exception:
            self.conn.rollback()
            raise
        return self.get_issue(issue_id)
