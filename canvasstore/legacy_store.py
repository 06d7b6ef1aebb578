"""
Legacy document store using SQLite.

Holds the pre-blob data as normalized collections: every record belongs to
one user and one collection (``workspaces``, ``canvases``, ``settings``) and
carries its document as JSON. There is no per-user profile record; a user
exists only through the documents filed under it.

The migration reads from here and never writes back.
"""

import json
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Optional

LEGACY_COLLECTIONS = ("workspaces", "canvases", "settings")


class LegacyStore:
    """
    SQLite-backed store of per-user document collections.
    """

    def __init__(self, store_path: Path, *, read_only: bool = False):
        """
        Args:
            store_path: Path to SQLite database file
            read_only: Open without write access (the file must exist)
        """
        self._db_path = Path(store_path)
        self._read_only = read_only
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Open the database, creating the schema unless read-only."""
        if self._read_only:
            if not self._db_path.exists():
                raise FileNotFoundError(f"Legacy store not found: {self._db_path}")
            uri = f"{self._db_path.resolve().as_uri()}?mode=ro"
            self._conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                user_id TEXT NOT NULL,
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                data_json TEXT NOT NULL DEFAULT '{}',
                PRIMARY KEY (user_id, collection, id)
            )
        """)

        # Index for cross-user collection scans (user discovery)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_collection
            ON documents(collection, user_id)
        """)

        self._conn.commit()

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, user_id: str, collection: str, id: str, data: dict[str, Any]) -> None:
        """Insert or replace one document."""
        self._conn.execute("""
            INSERT OR REPLACE INTO documents (user_id, collection, id, data_json)
            VALUES (?, ?, ?, ?)
        """, (user_id, collection, id, json.dumps(data, ensure_ascii=False)))
        self._conn.commit()

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, user_id: str, collection: str, id: str) -> Optional[dict[str, Any]]:
        """Get a document by ID, or None."""
        row = self._conn.execute("""
            SELECT data_json FROM documents
            WHERE user_id = ? AND collection = ? AND id = ?
        """, (user_id, collection, id)).fetchone()
        if row is None:
            return None
        return json.loads(row["data_json"])

    def list_documents(self, user_id: str, collection: str) -> list[tuple[str, dict[str, Any]]]:
        """
        All documents of one user's collection.

        Returns:
            List of (document id, document) ordered by id
        """
        cursor = self._conn.execute("""
            SELECT id, data_json FROM documents
            WHERE user_id = ? AND collection = ?
            ORDER BY id
        """, (user_id, collection))
        return [(row["id"], json.loads(row["data_json"])) for row in cursor]

    def discover_users(self, collections: Iterable[str] = LEGACY_COLLECTIONS) -> list[str]:
        """
        Every user owning at least one document in any of the collections.

        Scans the collections themselves since there is no user table.
        """
        collections = list(collections)
        if not collections:
            return []
        placeholders = ",".join("?" * len(collections))
        cursor = self._conn.execute(f"""
            SELECT DISTINCT user_id FROM documents
            WHERE collection IN ({placeholders})
            ORDER BY user_id
        """, collections)
        return [row["user_id"] for row in cursor]

    def count(self, collection: str) -> int:
        """Count documents in a collection across all users."""
        cursor = self._conn.execute("""
            SELECT COUNT(*) FROM documents
            WHERE collection = ?
        """, (collection,))
        return cursor.fetchone()[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
