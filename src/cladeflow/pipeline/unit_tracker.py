"""SQLite-based unit state tracker.

Tracks every unit of work (one chunk clustering, or one stage for one
group) by a deterministic unit id. Enables resumable runs: a re-invocation
skips units that completed with the same fingerprint and whose artifact
still exists, and re-executes everything else.
"""

import sqlite3
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, Dict, List
import threading

logger = logging.getLogger(__name__)


class UnitTracker:
    """Tracks unit execution state across runs.

    **Database Schema:**

    SQLite table `units`:

    - unit_id: Deterministic id (e.g., chunk_0003, cluster_c001_4/alignment)
    - tool: Tool name of the last execution
    - fingerprint: Hash of templates, inputs and non-resource context
    - status: running, completed, failed
    - failure_tag: timeout, tool-failure, missing-artifact (failed only)
    - artifact_path, log_path
    - attempts: Number of times the unit was started
    - Timestamps: started_at, finished_at, updated_at (ISO format)

    **Resumability:**

    `should_run()` returns False only for a completed unit with a matching
    fingerprint and a non-empty artifact on disk. Failed and interrupted
    ("running") units are always executed again.

    **Thread Safety:**

    All methods are thread-safe via internal locking. Worker threads record
    outcomes concurrently.

    **Typical Usage:**

    Called internally by BoundedJobRunner::

        tracker = UnitTracker(db_path)

        if tracker.should_run(unit_id, fingerprint):
            tracker.mark_started(unit_id, "poppunk", fingerprint)
            ...
            tracker.mark_completed(unit_id, artifact_path, duration_s)

        stats = tracker.get_statistics()
        tracker.close()
    """

    def __init__(self, db_path: Path | str):
        """Initialize tracker.

        Parameters
        ----------
        db_path : Path or str
            Path to SQLite database file. Created if doesn't exist.
            Typically: base_dir/state/unit_tracker.db
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = None
        self._lock = threading.Lock()

        self._init_database()
        logger.info(f"Unit tracker initialized: {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get shared database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_database(self):
        """Create database schema if it doesn't exist."""
        conn = self._get_connection()

        with self._lock:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS units (
                    unit_id TEXT PRIMARY KEY,
                    tool TEXT NOT NULL,
                    fingerprint TEXT NOT NULL,

                    status TEXT DEFAULT 'running',
                    failure_tag TEXT,
                    error_message TEXT,

                    artifact_path TEXT,
                    log_path TEXT,

                    attempts INTEGER DEFAULT 0,
                    duration_s REAL,

                    started_at TEXT,
                    finished_at TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_status ON units(status)")
            conn.commit()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def mark_started(self, unit_id: str, tool: str, fingerprint: str,
                     log_path: Optional[Path] = None):
        """Record that a unit is about to execute.

        Creates the record on first use; on later attempts resets outcome
        fields and increments ``attempts``.
        """
        conn = self._get_connection()
        now = self._now()

        with self._lock:
            conn.execute("""
                INSERT INTO units (unit_id, tool, fingerprint, status, log_path,
                                   attempts, started_at, updated_at)
                VALUES (?, ?, ?, 'running', ?, 1, ?, ?)
                ON CONFLICT(unit_id) DO UPDATE SET
                    tool = excluded.tool,
                    fingerprint = excluded.fingerprint,
                    status = 'running',
                    failure_tag = NULL,
                    error_message = NULL,
                    artifact_path = NULL,
                    log_path = excluded.log_path,
                    attempts = units.attempts + 1,
                    duration_s = NULL,
                    started_at = excluded.started_at,
                    finished_at = NULL,
                    updated_at = excluded.updated_at
            """, (unit_id, tool, fingerprint, str(log_path) if log_path else None, now, now))
            conn.commit()

        logger.debug(f"Started unit: {unit_id}")

    def mark_completed(self, unit_id: str, artifact_path: Path, duration_s: Optional[float] = None):
        """Record successful completion with the located artifact."""
        conn = self._get_connection()
        now = self._now()

        with self._lock:
            conn.execute("""
                UPDATE units
                SET status = 'completed',
                    artifact_path = ?,
                    duration_s = ?,
                    finished_at = ?,
                    updated_at = ?
                WHERE unit_id = ?
            """, (str(artifact_path), duration_s, now, now, unit_id))
            conn.commit()

        logger.debug(f"Completed unit: {unit_id}")

    def mark_failed(self, unit_id: str, failure_tag: str, error: str,
                    duration_s: Optional[float] = None):
        """Record a terminal failure. The unit will run again on the next invocation."""
        conn = self._get_connection()
        now = self._now()

        with self._lock:
            conn.execute("""
                UPDATE units
                SET status = 'failed',
                    failure_tag = ?,
                    error_message = ?,
                    duration_s = ?,
                    finished_at = ?,
                    updated_at = ?
                WHERE unit_id = ?
            """, (failure_tag, error, duration_s, now, now, unit_id))
            conn.commit()

        logger.debug(f"Failed unit: {unit_id} ({failure_tag})")

    def get_unit_status(self, unit_id: str) -> Optional[Dict]:
        """Get the stored record for a unit, or None if never started."""
        conn = self._get_connection()

        with self._lock:
            cursor = conn.execute("SELECT * FROM units WHERE unit_id = ?", (unit_id,))
            row = cursor.fetchone()

            if row:
                return dict(row)
            return None

    def should_run(self, unit_id: str, fingerprint: str) -> bool:
        """Check if a unit needs executing.

        Returns
        -------
        bool
            False only if the unit completed with the same fingerprint and its
            artifact still exists and is non-empty.
        """
        status = self.get_unit_status(unit_id)

        if not status:
            return True
        if status["status"] != "completed":
            return True
        if status["fingerprint"] != fingerprint:
            logger.info("Inputs changed for %s, re-running", unit_id)
            return True

        artifact = status.get("artifact_path")
        if not artifact:
            return True
        path = Path(artifact)
        if not path.is_file() or path.stat().st_size == 0:
            logger.info("Artifact for %s missing on disk, re-running", unit_id)
            return True
        return False

    def get_units(self, status: Optional[str] = None) -> List[Dict]:
        """List unit records in unit id order, optionally only those with ``status``."""
        conn = self._get_connection()

        query = "SELECT * FROM units"
        params = []
        if status:
            query += " WHERE status = ?"
            params.append(status)
        query += " ORDER BY unit_id"

        with self._lock:
            cursor = conn.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def get_statistics(self) -> Dict:
        """Get summary counts.

        Returns
        -------
        dict
            - `total`: Units ever started
            - `completed`, `failed`, `running`: Units per status
            - `timeouts`: Failed units tagged timeout
            - `total_duration_s`: Sum of recorded durations
        """
        conn = self._get_connection()

        with self._lock:
            cursor = conn.execute("""
                SELECT
                    COUNT(*) as total,
                    SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) as completed,
                    SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) as failed,
                    SUM(CASE WHEN status = 'running' THEN 1 ELSE 0 END) as running,
                    SUM(CASE WHEN failure_tag = 'timeout' THEN 1 ELSE 0 END) as timeouts,
                    SUM(duration_s) as total_duration_s
                FROM units
            """)
            row = cursor.fetchone()
            stats = dict(row) if row else {}

        return {k: (v if v is not None else 0) for k, v in stats.items()}

    def close(self):
        """Close database connection. Safe to call multiple times."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
