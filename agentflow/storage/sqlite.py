"""
SQLite Execution Log.

Persists execution records in an ``executions`` table, one row per run,
with the results mapping stored as JSON text.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import asyncio
import json
import logging

import aiosqlite

from agentflow.engine.state import ExecutionRecord, ExecutionStatus


logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS executions (
    id TEXT PRIMARY KEY,
    workflow_id TEXT NOT NULL,
    status TEXT NOT NULL,
    results TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
)
"""

INDEX = "CREATE INDEX IF NOT EXISTS idx_executions_workflow ON executions (workflow_id)"


def _row_to_record(row: aiosqlite.Row) -> ExecutionRecord:
    return ExecutionRecord(
        id=row["id"],
        workflow_id=row["workflow_id"],
        status=ExecutionStatus(row["status"]),
        results=json.loads(row["results"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SqliteExecutionLog:
    """
    Execution log backed by an SQLite database file.

    The connection is opened lazily on first use.

    Usage:
        log = SqliteExecutionLog("executions.db")
        await log.create(record)
        await log.close()
    """

    def __init__(self, path: str):
        self.path = path
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def _connection(self) -> aiosqlite.Connection:
        if self._db is None:
            self._db = await aiosqlite.connect(self.path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute(SCHEMA)
            await self._db.execute(INDEX)
            await self._db.commit()
            logger.info(f"Opened execution log at {self.path}")
        return self._db

    async def create(self, record: ExecutionRecord) -> ExecutionRecord:
        async with self._lock:
            db = await self._connection()
            await db.execute(
                "INSERT INTO executions (id, workflow_id, status, results, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.workflow_id,
                    record.status.value,
                    json.dumps(record.results, default=str),
                    record.created_at.isoformat(),
                ),
            )
            await db.commit()
            return record

    async def update(
        self,
        execution_id: str,
        status: ExecutionStatus,
        results: Dict[str, Any],
    ) -> Optional[ExecutionRecord]:
        async with self._lock:
            db = await self._connection()
            cursor = await db.execute(
                "UPDATE executions SET status = ?, results = ? WHERE id = ?",
                (status.value, json.dumps(results, default=str), execution_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                return None
        return await self.get(execution_id)

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        async with self._lock:
            db = await self._connection()
            async with db.execute(
                "SELECT * FROM executions WHERE id = ?", (execution_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def list_by_workflow(self, workflow_id: str) -> List[ExecutionRecord]:
        async with self._lock:
            db = await self._connection()
            async with db.execute(
                "SELECT * FROM executions WHERE workflow_id = ? ORDER BY created_at DESC",
                (workflow_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
