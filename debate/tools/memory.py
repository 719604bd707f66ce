"""
Flow context persistence
"""

import json
import sqlite3
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)

# current context plus ContextManager's ten history entries
DEFAULT_KEEP_PER_SESSION = 11

NEWEST_FIRST = "ORDER BY created_at DESC, iteration DESC"


class ContextStore:
    """Per-session flow context history backed by SQLite."""

    def __init__(self, db_path: str = "storage/data/context.db", keep_per_session: int = DEFAULT_KEEP_PER_SESSION):
        self.db_path = Path(db_path)
        self.keep_per_session = keep_per_session
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"Context store initialized: {db_path}")

    def _init_db(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS flow_context (
                    context_id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    iteration INTEGER,
                    context TEXT NOT NULL,
                    created_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_flow_context_session
                    ON flow_context (session_id, created_at);
            """)

    def save_context(self, session_id: str, context: Dict[str, Any]) -> None:
        """Store a context and drop the session's rows beyond keep_per_session."""
        now = datetime.now(timezone.utc).isoformat()
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO flow_context VALUES (?, ?, ?, ?, ?)",
                (context['id'], session_id, context.get('iterationCount', 0), json.dumps(context), now)
            )
            pruned = conn.execute(
                "DELETE FROM flow_context WHERE session_id = ? AND context_id NOT IN ("
                f"SELECT context_id FROM flow_context WHERE session_id = ? {NEWEST_FIRST} LIMIT ?)",
                (session_id, session_id, self.keep_per_session)
            ).rowcount
        if pruned > 0:
            logger.debug(f"Pruned {pruned} old contexts for session {session_id}")

    def get_history(self, session_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Contexts for a session, newest first."""
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                f"SELECT context FROM flow_context WHERE session_id = ? {NEWEST_FIRST} LIMIT ?",
                (session_id, limit)
            ).fetchall()
            return [json.loads(row[0]) for row in rows]

    def count(self, session_id: str) -> int:
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM flow_context WHERE session_id = ?", (session_id,)
            ).fetchone()[0]

    def get_latest(self, session_id: str) -> Optional[Dict[str, Any]]:
        history = self.get_history(session_id, limit=1)
        return history[0] if history else None

    def clear(self, session_id: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM flow_context WHERE session_id = ?", (session_id,))
