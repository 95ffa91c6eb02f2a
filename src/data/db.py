"""
HomeTasks — Household Database.

Families, members, tasks, assignments and completion records persist in
SQLite. Each store opens a short-lived connection per call; rows are turned
into the plain dataclasses from src.data.models.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, tzinfo
from pathlib import Path

from src.core.completion import record_day
from src.data.models import ActivityRecord, Family, FamilyMember, Frequency, Priority, Task

logger = logging.getLogger(__name__)


_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS families (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        name        TEXT    NOT NULL,
        created_by  INTEGER NOT NULL UNIQUE,
        created_at  TEXT    NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS family_members (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        family_id   INTEGER NOT NULL,
        name        TEXT    NOT NULL,
        role        TEXT    NOT NULL DEFAULT 'member'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        family_id   INTEGER NOT NULL,
        title       TEXT    NOT NULL,
        priority    TEXT    NOT NULL DEFAULT 'medium',
        frequency   TEXT    NOT NULL DEFAULT 'once',
        custom_days INTEGER,
        due_date    TEXT,
        start_date  TEXT,
        end_date    TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_assignments (
        task_id          INTEGER NOT NULL,
        family_member_id INTEGER NOT NULL,
        PRIMARY KEY (task_id, family_member_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_records (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id      INTEGER NOT NULL,
        completed_by INTEGER NOT NULL,
        completed_at TEXT    NOT NULL
    )
    """,
)

# Schedule columns, added in place to a tasks table created without them
_TASK_MIGRATIONS = {
    "frequency": "ALTER TABLE tasks ADD COLUMN frequency TEXT NOT NULL DEFAULT 'once'",
    "custom_days": "ALTER TABLE tasks ADD COLUMN custom_days INTEGER",
    "start_date": "ALTER TABLE tasks ADD COLUMN start_date TEXT",
    "end_date": "ALTER TABLE tasks ADD COLUMN end_date TEXT",
}


class _HouseholdStore:
    """Shared connection handling and schema setup for all stores."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create all household tables if missing, and migrate schema."""
        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()
            }
            for column, statement in _TASK_MIGRATIONS.items():
                if column not in existing_cols:
                    conn.execute(statement)
        logger.debug("Household tables initialized at %s", self._db_path)


class FamilyDB(_HouseholdStore):
    """SQLite-backed storage for families and their members."""

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> FamilyMember:
        return FamilyMember(
            id=row["id"],
            name=row["name"],
            role=row["role"],
            family_id=row["family_id"],
        )

    def _load_family(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Family:
        members = conn.execute(
            "SELECT * FROM family_members WHERE family_id = ? ORDER BY id",
            (row["id"],),
        ).fetchall()
        return Family(
            id=row["id"],
            name=row["name"],
            created_by=row["created_by"],
            created_at=row["created_at"],
            members=[self._row_to_member(m) for m in members],
        )

    def create_family(
        self,
        name: str,
        created_by: int,
        members: list[tuple[str, str]],
    ) -> Family:
        """Insert a family and its members in one transaction.

        Raises sqlite3.IntegrityError if the owner already has a family.
        """
        now = datetime.now().isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO families (name, created_by, created_at) VALUES (?, ?, ?)",
                (name, created_by, now),
            )
            family_id = cursor.lastrowid
            conn.executemany(
                "INSERT INTO family_members (family_id, name, role) VALUES (?, ?, ?)",
                [(family_id, m_name, role) for m_name, role in members],
            )
            row = conn.execute("SELECT * FROM families WHERE id = ?", (family_id,)).fetchone()
            family = self._load_family(conn, row)

        logger.info(
            "Family created: #%d '%s' with %d members", family_id, name, len(members),
        )
        return family

    def get_family(self, family_id: int) -> Family | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM families WHERE id = ?", (family_id,)).fetchone()
            if row is None:
                return None
            return self._load_family(conn, row)

    def get_family_for_owner(self, owner_id: int) -> Family | None:
        """Fetch the family created by a Telegram user, with its members."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM families WHERE created_by = ?", (owner_id,),
            ).fetchone()
            if row is None:
                return None
            return self._load_family(conn, row)

    def list_families(self) -> list[Family]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM families ORDER BY id").fetchall()
            return [self._load_family(conn, r) for r in rows]

    def rename_family(self, family_id: int, name: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE families SET name = ? WHERE id = ?", (name, family_id),
            )
        return cursor.rowcount > 0

    def add_member(self, family_id: int, name: str, role: str = "member") -> FamilyMember:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO family_members (family_id, name, role) VALUES (?, ?, ?)",
                (family_id, name, role),
            )
            member_id = cursor.lastrowid
        logger.info("Member added: #%d '%s' to family #%d", member_id, name, family_id)
        return FamilyMember(id=member_id, name=name, role=role, family_id=family_id)

    def rename_member(self, member_id: int, new_name: str) -> bool:
        """Rename a member. Assignments and records follow automatically (id keys)."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE family_members SET name = ? WHERE id = ?", (new_name, member_id),
            )
        renamed = cursor.rowcount > 0
        if renamed:
            logger.info("Member #%d renamed to '%s'", member_id, new_name)
        return renamed

    def remove_member(self, member_id: int) -> bool:
        """Delete a member and their assignments. Completion records are kept."""
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM task_assignments WHERE family_member_id = ?", (member_id,),
            )
            cursor = conn.execute("DELETE FROM family_members WHERE id = ?", (member_id,))
        removed = cursor.rowcount > 0
        if removed:
            logger.info("Member #%d removed", member_id)
        return removed


class TaskDB(_HouseholdStore):
    """SQLite-backed storage for tasks and their assignments."""

    @staticmethod
    def _row_to_task(row: sqlite3.Row, assigned_to: list[int]) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            priority=Priority(row["priority"]),
            frequency=Frequency(row["frequency"]),
            assigned_to=assigned_to,
            custom_days=row["custom_days"],
            due_date=row["due_date"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            family_id=row["family_id"],
        )

    @staticmethod
    def _assignments(conn: sqlite3.Connection, task_ids: list[int]) -> dict[int, list[int]]:
        if not task_ids:
            return {}
        placeholders = ", ".join("?" for _ in task_ids)
        rows = conn.execute(
            f"SELECT task_id, family_member_id FROM task_assignments "
            f"WHERE task_id IN ({placeholders}) ORDER BY rowid",
            task_ids,
        ).fetchall()
        result: dict[int, list[int]] = {}
        for r in rows:
            result.setdefault(r["task_id"], []).append(r["family_member_id"])
        return result

    def add_task(self, family_id: int, fields: dict, member_ids: list[int]) -> Task:
        """Insert a task and its assignments in one transaction.

        fields holds the tasks-table columns (see TaskDraft.storage_fields).
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tasks
                    (family_id, title, priority, frequency, custom_days,
                     due_date, start_date, end_date)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    family_id, fields["title"], fields["priority"], fields["frequency"],
                    fields.get("custom_days"), fields.get("due_date"),
                    fields.get("start_date"), fields.get("end_date"),
                ),
            )
            task_id = cursor.lastrowid
            conn.executemany(
                "INSERT INTO task_assignments (task_id, family_member_id) VALUES (?, ?)",
                [(task_id, mid) for mid in member_ids],
            )
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()

        task = self._row_to_task(row, list(member_ids))
        logger.info(
            "Task added: #%d '%s' (%s) for %d member(s)",
            task_id, task.title, task.frequency.value, len(member_ids),
        )
        return task

    def get_task(self, task_id: int) -> Task | None:
        """Fetch a single task by ID, with its assignments."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if row is None:
                return None
            assigned = self._assignments(conn, [task_id]).get(task_id, [])
        return self._row_to_task(row, assigned)

    def list_tasks(self, family_id: int) -> list[Task]:
        """All tasks of a family in creation order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE family_id = ? ORDER BY id", (family_id,),
            ).fetchall()
            assignments = self._assignments(conn, [r["id"] for r in rows])
        return [self._row_to_task(r, assignments.get(r["id"], [])) for r in rows]

    def update_task(self, task_id: int, fields: dict, member_ids: list[int]) -> Task:
        """Rewrite a task's columns and replace its assignments.

        Raises ValueError if the task doesn't exist.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE tasks
                   SET title = ?, priority = ?, frequency = ?, custom_days = ?,
                       due_date = ?, start_date = ?, end_date = ?
                 WHERE id = ?
                """,
                (
                    fields["title"], fields["priority"], fields["frequency"],
                    fields.get("custom_days"), fields.get("due_date"),
                    fields.get("start_date"), fields.get("end_date"), task_id,
                ),
            )
            if cursor.rowcount == 0:
                raise ValueError(f"Task {task_id} not found")
            conn.execute("DELETE FROM task_assignments WHERE task_id = ?", (task_id,))
            conn.executemany(
                "INSERT INTO task_assignments (task_id, family_member_id) VALUES (?, ?)",
                [(task_id, mid) for mid in member_ids],
            )
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()

        logger.info("Task #%d updated", task_id)
        return self._row_to_task(row, list(member_ids))

    def delete_task(self, task_id: int) -> bool:
        """Delete a task together with its assignments and records."""
        with self._connect() as conn:
            conn.execute("DELETE FROM task_records WHERE task_id = ?", (task_id,))
            conn.execute("DELETE FROM task_assignments WHERE task_id = ?", (task_id,))
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Task #%d deleted", task_id)
        return deleted

    def cleanup_orphaned_tasks(self, family_id: int) -> int:
        """Delete tasks of a family that have no assignments left.

        Returns the number of tasks removed.
        """
        orphan_query = (
            "SELECT id FROM tasks WHERE family_id = ? "
            "AND id NOT IN (SELECT task_id FROM task_assignments)"
        )
        with self._connect() as conn:
            orphan_ids = [r["id"] for r in conn.execute(orphan_query, (family_id,)).fetchall()]
            for task_id in orphan_ids:
                conn.execute("DELETE FROM task_records WHERE task_id = ?", (task_id,))
                conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        if orphan_ids:
            logger.info(
                "Cleaned up %d orphaned task(s) in family #%d", len(orphan_ids), family_id,
            )
        return len(orphan_ids)


class RecordDB(_HouseholdStore):
    """SQLite-backed storage for completion records."""

    def __init__(self, db_path: str | None = None, tz: tzinfo | None = None) -> None:
        self._tz = tz
        super().__init__(db_path)

    def _row_to_record(self, row: sqlite3.Row) -> ActivityRecord:
        raw = row["completed_at"]
        day = record_day(raw, self._tz)
        if day is None:
            logger.warning("Record #%d has unparseable completed_at %r", row["id"], raw)
        return ActivityRecord(
            id=row["id"],
            task_id=row["task_id"],
            date=day.isoformat() if day is not None else raw,
            completed_by=row["completed_by"],
        )

    def add_records(self, task_id: int, member_ids: list[int], day: str) -> list[ActivityRecord]:
        """Insert one record per completing member, all or nothing."""
        records: list[ActivityRecord] = []
        with self._connect() as conn:
            for member_id in member_ids:
                cursor = conn.execute(
                    "INSERT INTO task_records (task_id, completed_by, completed_at) "
                    "VALUES (?, ?, ?)",
                    (task_id, member_id, day),
                )
                records.append(ActivityRecord(
                    id=cursor.lastrowid, task_id=task_id, date=day, completed_by=member_id,
                ))
        logger.info("Recorded task #%d on %s by %d member(s)", task_id, day, len(member_ids))
        return records

    def get_record(self, record_id: int) -> ActivityRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM task_records WHERE id = ?", (record_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def list_records(self, family_id: int, limit: int | None = None) -> list[ActivityRecord]:
        """Records for all tasks of a family, newest first."""
        query = (
            "SELECT r.* FROM task_records r JOIN tasks t ON t.id = r.task_id "
            "WHERE t.family_id = ? ORDER BY r.completed_at DESC, r.id DESC"
        )
        params: list = [family_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(r) for r in rows]

    def update_completed_by(self, record_id: int, member_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE task_records SET completed_by = ? WHERE id = ?",
                (member_id, record_id),
            )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Record #%d now completed by member #%d", record_id, member_id)
        return updated

    def delete_record(self, record_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM task_records WHERE id = ?", (record_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Record #%d deleted", record_id)
        return deleted
