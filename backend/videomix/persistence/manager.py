"""
SQLite persistence manager.

Single-file SQLite database. Every call opens its own connection, so the
manager can be shared between worker threads.

Stores:
- Jobs (with plan task records) and Outputs
- Credit balances and the append-only credit transaction log
- The durable job queue used by the sqlite queue backend

Does NOT store:
- Mix plans or pipeline specs (recomputed from the job's settings snapshot)
- Clips, groups or project settings (owned by the catalog)
"""

import sqlite3
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime
from contextlib import contextmanager

from .errors import PersistenceError, SchemaError


# Database schema version for migrations
SCHEMA_VERSION = 2


class PersistenceManager:
    """
    Manages SQLite persistence for jobs, outputs and credits.

    Callers pass plain dicts; model conversion happens in the registries.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Args:
            db_path: Path to SQLite database file (defaults to ./videomix.db)
        """
        if db_path is None:
            db_path = str(Path.cwd() / "videomix.db")
        if db_path == ":memory:":
            raise SchemaError("In-memory databases are not supported: each call opens a new connection")

        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def _connect(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Database operation failed: {e}") from e
        finally:
            conn.close()

    def _ensure_schema(self):
        """Create or migrate schema."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
            """)
            cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
            row = cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version > SCHEMA_VERSION:
                raise SchemaError(
                    f"Database schema version {current_version} is newer than supported {SCHEMA_VERSION}"
                )
            if current_version < SCHEMA_VERSION:
                self._migrate_schema(conn, current_version)

    def _migrate_schema(self, conn, from_version: int):
        """Apply schema migrations."""
        cursor = conn.cursor()

        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    project_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    progress INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    started_at TEXT,
                    completed_at TEXT,
                    error_message TEXT,
                    settings TEXT NOT NULL,
                    requested_plans INTEGER NOT NULL,
                    plan_tasks TEXT NOT NULL,
                    output_ids TEXT NOT NULL,
                    credits_reserved INTEGER NOT NULL DEFAULT 0,
                    credits_refunded INTEGER NOT NULL DEFAULT 0,
                    settled_at TEXT
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs (status)")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS outputs (
                    id TEXT PRIMARY KEY,
                    job_id TEXT NOT NULL,
                    plan_index INTEGER NOT NULL,
                    path TEXT NOT NULL,
                    filename TEXT NOT NULL,
                    format TEXT NOT NULL,
                    media_type TEXT NOT NULL,
                    duration REAL,
                    size_bytes INTEGER,
                    metadata TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (job_id) REFERENCES jobs (id) ON DELETE CASCADE
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_outputs_job_id ON outputs (job_id)")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS balances (
                    user_id TEXT PRIMARY KEY,
                    credits INTEGER NOT NULL CHECK (credits >= 0),
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS credit_transactions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    description TEXT NOT NULL,
                    job_id TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_credit_transactions_user ON credit_transactions (user_id)"
            )

            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (1, datetime.now().isoformat())
            )

        if from_version < 2:
            # Durable queue for the sqlite queue backend
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS job_queue (
                    job_id TEXT PRIMARY KEY,
                    enqueued_at TEXT NOT NULL,
                    claimed_at TEXT,
                    claimed_by TEXT
                )
            """)
            cursor.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (2, datetime.now().isoformat())
            )

    # Job persistence

    @staticmethod
    def _job_params(job_data: Dict[str, Any]) -> tuple:
        return (
            job_data["id"],
            job_data["project_id"],
            job_data["user_id"],
            job_data["status"],
            job_data.get("progress", 0),
            job_data["created_at"],
            job_data.get("started_at"),
            job_data.get("completed_at"),
            job_data.get("error_message"),
            json.dumps(job_data.get("settings", {})),
            job_data["requested_plans"],
            json.dumps(job_data.get("plan_tasks", [])),
            json.dumps(job_data.get("output_ids", [])),
            job_data.get("credits_reserved", 0),
            job_data.get("credits_refunded", 0),
            job_data.get("settled_at"),
        )

    _UPSERT_JOB = """
        INSERT INTO jobs (
            id, project_id, user_id, status, progress, created_at, started_at,
            completed_at, error_message, settings, requested_plans, plan_tasks,
            output_ids, credits_reserved, credits_refunded, settled_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            status = excluded.status,
            progress = excluded.progress,
            started_at = excluded.started_at,
            completed_at = excluded.completed_at,
            error_message = excluded.error_message,
            plan_tasks = excluded.plan_tasks,
            output_ids = excluded.output_ids,
            credits_refunded = excluded.credits_refunded,
            settled_at = COALESCE(jobs.settled_at, excluded.settled_at)
    """

    def save_job(self, job_data: Dict[str, Any]):
        """
        Save or update a job.

        settled_at is write-once: an update never clears it.
        """
        with self._connect() as conn:
            conn.execute(self._UPSERT_JOB, self._job_params(job_data))

    @staticmethod
    def _job_from_row(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "project_id": row["project_id"],
            "user_id": row["user_id"],
            "status": row["status"],
            "progress": row["progress"],
            "created_at": row["created_at"],
            "started_at": row["started_at"],
            "completed_at": row["completed_at"],
            "error_message": row["error_message"],
            "settings": json.loads(row["settings"]),
            "requested_plans": row["requested_plans"],
            "plan_tasks": json.loads(row["plan_tasks"]),
            "output_ids": json.loads(row["output_ids"]),
            "credits_reserved": row["credits_reserved"],
            "credits_refunded": row["credits_refunded"],
            "settled_at": row["settled_at"],
        }

    def load_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """
        Returns:
            Dict with job data or None if not found
        """
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
            return self._job_from_row(row) if row else None

    def load_all_jobs(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM jobs ORDER BY created_at").fetchall()
            return [self._job_from_row(row) for row in rows]

    def load_jobs_by_status(self, status: str) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs WHERE status = ? ORDER BY created_at", (status,)
            ).fetchall()
            return [self._job_from_row(row) for row in rows]

    def count_jobs_by_status(self) -> Dict[str, int]:
        with self._connect() as conn:
            rows = conn.execute("SELECT status, COUNT(*) AS n FROM jobs GROUP BY status").fetchall()
            return {row["status"]: row["n"] for row in rows}

    # Output persistence

    def save_output(self, output_data: Dict[str, Any]):
        """Insert an output. Outputs are immutable; a second save of the same id is ignored."""
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO outputs (
                    id, job_id, plan_index, path, filename, format, media_type,
                    duration, size_bytes, metadata, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO NOTHING
            """, (
                output_data["id"],
                output_data["job_id"],
                output_data["plan_index"],
                output_data["path"],
                output_data["filename"],
                output_data["format"],
                output_data["media_type"],
                output_data.get("duration"),
                output_data.get("size_bytes"),
                json.dumps(output_data.get("metadata", {})),
                output_data["created_at"],
            ))

    @staticmethod
    def _output_from_row(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "job_id": row["job_id"],
            "plan_index": row["plan_index"],
            "path": row["path"],
            "filename": row["filename"],
            "format": row["format"],
            "media_type": row["media_type"],
            "duration": row["duration"],
            "size_bytes": row["size_bytes"],
            "metadata": json.loads(row["metadata"]),
            "created_at": row["created_at"],
        }

    def load_output(self, output_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM outputs WHERE id = ?", (output_id,)).fetchone()
            return self._output_from_row(row) if row else None

    def load_outputs_for_job(self, job_id: str) -> List[Dict[str, Any]]:
        """Outputs in registration order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM outputs WHERE job_id = ? ORDER BY created_at, rowid", (job_id,)
            ).fetchall()
            return [self._output_from_row(row) for row in rows]

    # Credits

    @staticmethod
    def _insert_transaction(conn, transaction: Dict[str, Any]):
        conn.execute("""
            INSERT INTO credit_transactions (id, user_id, amount, type, description, job_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            transaction["id"],
            transaction["user_id"],
            transaction["amount"],
            transaction["type"],
            transaction["description"],
            transaction.get("job_id"),
            transaction["created_at"],
        ))

    def get_balance(self, user_id: str) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT credits FROM balances WHERE user_id = ?", (user_id,)).fetchone()
            return row["credits"] if row else 0

    def credit(self, user_id: str, transaction: Dict[str, Any]):
        """Add transaction['amount'] (positive) to the balance and record it, atomically."""
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO balances (user_id, credits, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    credits = balances.credits + excluded.credits,
                    updated_at = excluded.updated_at
            """, (user_id, transaction["amount"], transaction["created_at"]))
            self._insert_transaction(conn, transaction)

    def reserve(
        self,
        user_id: str,
        cost: int,
        transaction: Dict[str, Any],
        job_data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Debit cost, record the USAGE transaction and optionally create the job.

        All three happen in one transaction. The debit only applies when the
        balance covers it, so the balance can never go negative.

        Returns:
            False (and nothing written) if the balance is insufficient
        """
        with self._connect() as conn:
            cursor = conn.execute("""
                UPDATE balances SET credits = credits - ?, updated_at = ?
                WHERE user_id = ? AND credits >= ?
            """, (cost, transaction["created_at"], user_id, cost))
            if cursor.rowcount != 1:
                return False
            self._insert_transaction(conn, transaction)
            if job_data is not None:
                conn.execute(self._UPSERT_JOB, self._job_params(job_data))
            return True

    def settle(
        self,
        job_id: str,
        user_id: str,
        refund: int,
        settled_at: str,
        transaction: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Mark a job settled and post its refund, at most once.

        Returns:
            False if the job was already settled (nothing written)
        """
        with self._connect() as conn:
            cursor = conn.execute("""
                UPDATE jobs SET settled_at = ?, credits_refunded = ?
                WHERE id = ? AND settled_at IS NULL
            """, (settled_at, refund, job_id))
            if cursor.rowcount != 1:
                return False
            if refund > 0 and transaction is not None:
                conn.execute("""
                    INSERT INTO balances (user_id, credits, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        credits = balances.credits + excluded.credits,
                        updated_at = excluded.updated_at
                """, (user_id, refund, settled_at))
                self._insert_transaction(conn, transaction)
            return True

    def load_transactions(self, user_id: str, job_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM credit_transactions WHERE user_id = ?"
        params: list = [user_id]
        if job_id is not None:
            query += " AND job_id = ?"
            params.append(job_id)
        query += " ORDER BY created_at, rowid"
        with self._connect() as conn:
            return [dict(row) for row in conn.execute(query, params).fetchall()]

    # Durable job queue

    def enqueue_job(self, job_id: str):
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO job_queue (job_id, enqueued_at) VALUES (?, ?)
                ON CONFLICT(job_id) DO NOTHING
            """, (job_id, datetime.now().isoformat()))

    def claim_next_job(self, worker_id: str) -> Optional[str]:
        """Atomically claim the oldest unclaimed queue entry."""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("""
                SELECT job_id FROM job_queue WHERE claimed_at IS NULL
                ORDER BY enqueued_at, rowid LIMIT 1
            """).fetchone()
            if row is None:
                return None
            conn.execute(
                "UPDATE job_queue SET claimed_at = ?, claimed_by = ? WHERE job_id = ?",
                (datetime.now().isoformat(), worker_id, row["job_id"]),
            )
            return row["job_id"]

    def complete_queue_entry(self, job_id: str):
        with self._connect() as conn:
            conn.execute("DELETE FROM job_queue WHERE job_id = ?", (job_id,))

    def release_claims(self) -> int:
        """Return claimed-but-unfinished entries to the queue (startup only)."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE job_queue SET claimed_at = NULL, claimed_by = NULL WHERE claimed_at IS NOT NULL"
            )
            return cursor.rowcount

    def queue_depth(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM job_queue WHERE claimed_at IS NULL").fetchone()
            return row["n"]
