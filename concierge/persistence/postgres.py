"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from typing import Optional

import asyncpg

from ..contracts import StepRecord, WorkflowInstance
from ..errors import ConcurrentModification, WorkflowNotFound
from .repository import WorkflowRepository


def _rowcount(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 1"
    return int(status.rsplit(" ", 1)[-1])


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                workflow_type TEXT NOT NULL,
                owner_id TEXT NOT NULL,
                status TEXT NOT NULL,
                version INTEGER NOT NULL,
                data JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflows_owner ON workflows (owner_id, status)"
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_history (
                id SERIAL PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                step_name TEXT NOT NULL,
                step_index INTEGER NOT NULL,
                status TEXT NOT NULL,
                input JSONB,
                output JSONB,
                error TEXT,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ
            )
            """
        )

    # ------------------------------------------------------------------
    async def create_workflow(self, instance: WorkflowInstance) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO workflows (id, workflow_type, owner_id, status, version, data, updated_at) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                instance.id,
                instance.type,
                instance.owner_id,
                instance.status,
                instance.version,
                instance.to_json(),
                instance.updated_at,
            )
        finally:
            await conn.close()

    async def save_workflow(
        self, instance: WorkflowInstance, expected_version: int
    ) -> None:
        conn = await self._connect()
        try:
            status = await conn.execute(
                """
                UPDATE workflows
                SET status = $1, version = $2, data = $3, updated_at = $4
                WHERE id = $5 AND version = $6
                """,
                instance.status,
                instance.version,
                instance.to_json(),
                instance.updated_at,
                instance.id,
                expected_version,
            )
            if _rowcount(status):
                return
            current = await conn.fetchval(
                "SELECT version FROM workflows WHERE id = $1", instance.id
            )
        finally:
            await conn.close()
        if current is None:
            raise WorkflowNotFound(instance.id)
        raise ConcurrentModification(
            f"Workflow {instance.id} changed: expected version "
            f"{expected_version}, found {current}",
            instance.id,
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowInstance | None:
        conn = await self._connect()
        try:
            data = await conn.fetchval(
                "SELECT data FROM workflows WHERE id = $1", workflow_id
            )
        finally:
            await conn.close()
        return WorkflowInstance.from_json(data) if data else None

    async def find_active(self, owner_id: str) -> WorkflowInstance | None:
        conn = await self._connect()
        try:
            data = await conn.fetchval(
                """
                SELECT data FROM workflows
                WHERE owner_id = $1 AND status IN ('running', 'paused')
                ORDER BY status = 'running' DESC, updated_at DESC LIMIT 1
                """,
                owner_id,
            )
        finally:
            await conn.close()
        return WorkflowInstance.from_json(data) if data else None

    async def list_workflows(
        self, owner_id: Optional[str] = None
    ) -> list[WorkflowInstance]:
        conn = await self._connect()
        try:
            if owner_id is None:
                rows = await conn.fetch("SELECT data FROM workflows ORDER BY updated_at")
            else:
                rows = await conn.fetch(
                    "SELECT data FROM workflows WHERE owner_id = $1 ORDER BY updated_at",
                    owner_id,
                )
        finally:
            await conn.close()
        return [WorkflowInstance.from_json(r["data"]) for r in rows]

    async def record_step(self, record: StepRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO step_history
                    (workflow_id, step_name, step_index, status, input, output, error, started_at, completed_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                record.workflow_id,
                record.step_name,
                record.step_index,
                record.status,
                json.dumps(record.input, default=str),
                json.dumps(record.output, default=str) if record.output is not None else None,
                record.error,
                record.started_at,
                record.completed_at,
            )
        finally:
            await conn.close()

    async def list_steps(self, workflow_id: str) -> list[StepRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT * FROM step_history WHERE workflow_id = $1 ORDER BY id",
                workflow_id,
            )
        finally:
            await conn.close()
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
                started_at=r["started_at"],
                completed_at=r["completed_at"],
            )
            for r in rows
        ]
