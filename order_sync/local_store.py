# Local Store - SQLite storage for the order sync agent
# Durable key/value state and the pending action queue

import sqlite3
import json
import logging
import threading
from datetime import datetime
from typing import List, Optional, Dict, Any

logger = logging.getLogger(__name__)


class LocalStore:
    """SQLite-backed persisted storage that survives restarts"""

    DB_PATH = "order_sync.db"

    def __init__(self, db_path: str = None):
        self.db_path = db_path or self.DB_PATH
        self.lock = threading.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema"""
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()

            # JSON blobs keyed by name (overlay map, print ledger, recovery info)
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TEXT
                )
            ''')

            # Mutations not yet confirmed by the order service; seq keeps FIFO order
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS action_queue (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    type TEXT NOT NULL,
                    order_id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    retry_count INTEGER DEFAULT 0
                )
            ''')

            conn.commit()
            conn.close()

    def save_state(self, key: str, value: Any):
        """Save state key-value"""
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()

            cursor.execute('''
                INSERT OR REPLACE INTO state (key, value, updated_at)
                VALUES (?, ?, ?)
            ''', (key, json.dumps(value), datetime.now().isoformat()))

            conn.commit()
            conn.close()

    def load_state(self, key: str, default: Any = None) -> Any:
        """Load state value"""
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()

            cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = cursor.fetchone()
            conn.close()

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError):
            logger.warning(f"Corrupt state for key {key!r}, using default")
            return default

    def insert_action(self, action: Dict[str, Any]):
        """Append an action row to the queue"""
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()

            cursor.execute('''
                INSERT INTO action_queue (id, type, order_id, payload, created_at, retry_count)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (action['id'], action['type'], action['order_id'],
                  json.dumps(action.get('payload') or {}), action['created_at'],
                  action.get('retry_count', 0)))

            conn.commit()
            conn.close()

    def list_actions(self) -> List[Dict[str, Any]]:
        """All queued actions, oldest first"""
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM action_queue ORDER BY seq ASC')
            rows = cursor.fetchall()
            conn.close()

        actions = []
        for row in rows:
            action = dict(row)
            action.pop('seq', None)
            action['payload'] = json.loads(action['payload'] or '{}')
            actions.append(action)
        return actions

    def get_action(self, action_id: str) -> Optional[Dict[str, Any]]:
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM action_queue WHERE id = ?', (action_id,))
            row = cursor.fetchone()
            conn.close()

        if row is None:
            return None
        action = dict(row)
        action.pop('seq', None)
        action['payload'] = json.loads(action['payload'] or '{}')
        return action

    def increment_action_retry(self, action_id: str) -> Optional[int]:
        """Increment retry_count in place; returns the new count, or None if gone."""
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute('''
                UPDATE action_queue SET retry_count = retry_count + 1 WHERE id = ?
            ''', (action_id,))
            cursor.execute('SELECT retry_count FROM action_queue WHERE id = ?', (action_id,))
            row = cursor.fetchone()
            conn.commit()
            conn.close()

        return row[0] if row else None

    def delete_action(self, action_id: str) -> bool:
        """Remove an action from the queue; False if it was already gone."""
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute('DELETE FROM action_queue WHERE id = ?', (action_id,))
            removed = cursor.rowcount > 0
            conn.commit()
            conn.close()
        return removed

    def get_stats(self) -> Dict:
        """Get storage statistics"""
        with self.lock:
            conn = self._connect()
            cursor = conn.cursor()

            stats = {}

            cursor.execute('SELECT COUNT(*) FROM action_queue')
            stats['queued_actions'] = cursor.fetchone()[0]

            cursor.execute('SELECT COUNT(*) FROM action_queue WHERE retry_count > 0')
            stats['retrying_actions'] = cursor.fetchone()[0]

            cursor.execute('SELECT MIN(created_at) FROM action_queue')
            stats['oldest_queued_at'] = cursor.fetchone()[0]

            cursor.execute('SELECT COUNT(*) FROM state')
            stats['state_keys'] = cursor.fetchone()[0]

            conn.close()
            return stats
