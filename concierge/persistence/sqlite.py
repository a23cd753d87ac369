"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..contracts import StepRecord, WorkflowInstance
from ..errors import ConcurrentModification, WorkflowNotFound
from .repository import WorkflowRepository

_ACTIVE_STATUSES = ("running", "paused")


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite.

    The full instance is stored as JSON in ``data``; ``owner_id``,
    ``status`` and ``version`` are duplicated into columns for lookups and
    the optimistic version check.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                workflow_type TEXT NOT NULL,
                owner_id TEXT NOT NULL,
                status TEXT NOT NULL,
                version INTEGER NOT NULL,
                data TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflows_owner ON workflows (owner_id, status)"
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                workflow_id TEXT NOT NULL,
                step_name TEXT NOT NULL,
                step_index INTEGER NOT NULL,
                status TEXT NOT NULL,
                input TEXT,
                output TEXT,
                error TEXT,
                started_at TEXT,
                completed_at TEXT
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    async def create_workflow(self, instance: WorkflowInstance) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO workflows (id, workflow_type, owner_id, status, version, data, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            instance.id,
            instance.type,
            instance.owner_id,
            instance.status,
            instance.version,
            instance.to_json(),
            instance.updated_at.isoformat(),
        )

    async def save_workflow(
        self, instance: WorkflowInstance, expected_version: int
    ) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflows
            SET status = ?, version = ?, data = ?, updated_at = ?
            WHERE id = ? AND version = ?
            """,
            instance.status,
            instance.version,
            instance.to_json(),
            instance.updated_at.isoformat(),
            instance.id,
            expected_version,
        )
        if updated:
            return
        row = await asyncio.to_thread(
            self._fetchone, "SELECT version FROM workflows WHERE id = ?", instance.id
        )
        if row is None:
            raise WorkflowNotFound(instance.id)
        raise ConcurrentModification(
            f"Workflow {instance.id} changed: expected version "
            f"{expected_version}, found {row['version']}",
            instance.id,
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowInstance | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT data FROM workflows WHERE id = ?", workflow_id
        )
        if not row:
            return None
        return WorkflowInstance.from_json(row["data"])

    async def find_active(self, owner_id: str) -> WorkflowInstance | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT data FROM workflows WHERE owner_id = ? AND status IN (?, ?) ORDER BY status = ? DESC, updated_at DESC LIMIT 1",
            owner_id,
            *_ACTIVE_STATUSES,
            "running",
        )
        if not row:
            return None
        return WorkflowInstance.from_json(row["data"])

    async def list_workflows(
        self, owner_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        if owner_id is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT data FROM workflows ORDER BY updated_at"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT data FROM workflows WHERE owner_id = ? ORDER BY updated_at",
                owner_id,
            )
        return [WorkflowInstance.from_json(row["data"]) for row in rows]

    async def record_step(self, record: StepRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO step_history
                (workflow_id, step_name, step_index, status, input, output, error, started_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            record.workflow_id,
            record.step_name,
            record.step_index,
            record.status,
            json.dumps(record.input, default=str),
            json.dumps(record.output, default=str) if record.output is not None else None,
            record.error,
            record.started_at.isoformat(),
            record.completed_at.isoformat() if record.completed_at else None,
        )

    async def list_steps(self, workflow_id: str) -> list[StepRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM step_history WHERE workflow_id = ? ORDER BY id",
            workflow_id,
        )
        return [
            StepRecord(
                id=r["id"],
                workflow_id=r["workflow_id"],
                step_name=r["step_name"],
                step_index=r["step_index"],
                status=r["status"],
                input=json.loads(r["input"]) if r["input"] else {},
                output=json.loads(r["output"]) if r["output"] else None,
                error=r["error"],
                started_at=datetime.fromisoformat(r["started_at"]),
                completed_at=datetime.fromisoformat(r["completed_at"]) if r["completed_at"] else None,
            )
            for r in rows
        ]
