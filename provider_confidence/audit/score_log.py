"""
Score change logging for ProviderConfidence.

Keeps an audit trail of every confidence score the recalculation pipeline
changes, and of each recalculation run, in a SQLite database.
"""

import sqlite3
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from ..config import DEFAULT_CONFIG_PATH, load_confidence_config

logger = logging.getLogger(__name__)


class ScoreChangeLogger:
    """
    Records confidence score changes and recalculation runs.
    """

    def __init__(self, db_path: str = "data/score_changes.db"):
        """
        Initialize score change logger.

        Args:
            db_path: Path to the SQLite database
        """
        self.db_path = db_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

        logger.info("Initialized ScoreChangeLogger")

    def _init_database(self):
        """Initialize score change database with required tables."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS score_changes (
                change_id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                record_id TEXT NOT NULL,
                provider_npi TEXT,
                plan_id TEXT,
                old_score INTEGER,
                new_score INTEGER NOT NULL,
                changed_at TEXT NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS recalculation_runs (
                run_id TEXT PRIMARY KEY,
                started_at TEXT NOT NULL,
                dry_run INTEGER NOT NULL,
                processed INTEGER,
                updated INTEGER,
                unchanged INTEGER,
                errors INTEGER,
                duration_ms REAL
            )
        ''')

        conn.commit()
        conn.close()

    @staticmethod
    def new_run_id() -> str:
        return uuid.uuid4().hex

    def record_score_changes(self, changes: List[Dict], run_id: str, changed_at: datetime) -> int:
        """
        Record a batch of score changes.

        Args:
            changes: Dicts with record_id, provider_npi, plan_id, old_score, new_score
            run_id: Recalculation run the changes belong to
            changed_at: Time the changes were applied

        Returns:
            Number of changes recorded
        """
        if not changes:
            return 0

        conn = sqlite3.connect(self.db_path)
        try:
            conn.executemany('''
                INSERT INTO score_changes
                (run_id, record_id, provider_npi, plan_id, old_score, new_score, changed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', [
                (
                    run_id,
                    str(change["record_id"]),
                    None if change.get("provider_npi") is None else str(change["provider_npi"]),
                    None if change.get("plan_id") is None else str(change["plan_id"]),
                    change.get("old_score"),
                    int(change["new_score"]),
                    changed_at.isoformat(),
                )
                for change in changes
            ])
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Failed to record score changes for run {run_id}: {e}")
            raise
        finally:
            conn.close()

        logger.info(f"Recorded {len(changes)} score changes for run {run_id}")
        return len(changes)

    def record_run(self, run_id: str, started_at: datetime, stats: Dict, dry_run: bool = False):
        """
        Record the outcome of a recalculation run.

        Args:
            run_id: Run identifier
            started_at: Evaluation instant of the run
            stats: Run statistics (processed, updated, unchanged, errors, duration_ms)
            dry_run: Whether the run applied its changes
        """
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute('''
                INSERT OR REPLACE INTO recalculation_runs
                (run_id, started_at, dry_run, processed, updated, unchanged, errors, duration_ms)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', [
                run_id, started_at.isoformat(), int(dry_run),
                stats.get("processed", 0), stats.get("updated", 0),
                stats.get("unchanged", 0), stats.get("errors", 0),
                stats.get("duration_ms", 0.0),
            ])
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Recorded recalculation run {run_id}")

    def get_score_changes(self, provider_npi: Optional[str] = None,
                          start_date: Optional[datetime] = None,
                          end_date: Optional[datetime] = None) -> pd.DataFrame:
        """
        Get recorded score changes.

        Args:
            provider_npi: Provider filter
            start_date: Start date filter
            end_date: End date filter

        Returns:
            DataFrame with score changes, newest first
        """
        query = "SELECT * FROM score_changes WHERE 1=1"
        params = []

        if provider_npi is not None:
            query += " AND provider_npi = ?"
            params.append(str(provider_npi))

        if start_date:
            query += " AND changed_at >= ?"
            params.append(start_date.isoformat())

        if end_date:
            query += " AND changed_at <= ?"
            params.append(end_date.isoformat())

        query += " ORDER BY changed_at DESC, change_id DESC"

        conn = sqlite3.connect(self.db_path)
        try:
            return pd.read_sql_query(query, conn, params=params)
        finally:
            conn.close()

    def get_recalculation_runs(self, limit: int = 20) -> pd.DataFrame:
        """Get the most recent recalculation runs."""
        conn = sqlite3.connect(self.db_path)
        try:
            return pd.read_sql_query(
                "SELECT * FROM recalculation_runs ORDER BY started_at DESC LIMIT ?",
                conn, params=[limit]
            )
        finally:
            conn.close()

    def calculate_change_metrics(self, run_id: Optional[str] = None) -> Dict[str, float]:
        """
        Summarize score movements.

        Args:
            run_id: Restrict to one run (optional)

        Returns:
            Dictionary with change counts and average movement
        """
        changes_df = self.get_score_changes()
        if run_id is not None:
            changes_df = changes_df[changes_df["run_id"] == run_id]

        if changes_df.empty:
            return {"total_changes": 0, "increases": 0, "decreases": 0, "mean_delta": 0.0}

        deltas = changes_df["new_score"] - changes_df["old_score"].fillna(0)

        return {
            "total_changes": len(changes_df),
            "increases": int((deltas > 0).sum()),
            "decreases": int((deltas < 0).sum()),
            "mean_delta": float(deltas.mean()),
        }


def create_score_logger(config_path: str = DEFAULT_CONFIG_PATH) -> ScoreChangeLogger:
    """
    Convenience function to create a score change logger from configuration.

    Args:
        config_path: Path to configuration file

    Returns:
        Initialized score change logger
    """
    config = load_confidence_config(config_path)
    return ScoreChangeLogger(config.get("audit", {}).get("db_path", "data/score_changes.db"))
