"""
Document store using SQLite.

Holds the nodes of one outline document in a directory (``documents.db``
inside it). The directory is what a workspace extracts a container into,
and what an import creates for a freshly imported document.

The store is the source of truth for:
- Node identity and content
- Tree shape (parent + position among siblings)
- Timestamps

Its native serialization is a line-oriented dump: a header line, batches of
node records, and a final sequence line. ``dump`` and ``load`` stream it so
large documents never have to be held in memory as one JSON value.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, TextIO

logger = logging.getLogger(__name__)

DB_FILENAME = "documents.db"
# Database file plus SQLite journal files
DB_SIDE_SUFFIXES = ("", "-journal", "-wal", "-shm")
DUMP_VERSION = "1"
DUMP_BATCH_SIZE = 50

ROOT_ID = "0"


@dataclass
class NodeRecord:
    """A single outline node."""
    id: str
    content: str
    parent_id: Optional[str]
    position: int
    created_at: str
    updated_at: str
    children: list[str] = field(default_factory=list)


class DocumentStore:
    """
    SQLite-backed store for the nodes of one document.

    Constructed by directory path; the directory is created if missing.
    The directory name doubles as the database name recorded in dumps.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Directory holding the database file
        """
        self._path = Path(store_path)
        self._db_path = self._path / DB_FILENAME
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._path.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS nodes (
                id TEXT PRIMARY KEY,
                content TEXT NOT NULL DEFAULT '',
                parent_id TEXT,
                position INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # Index for sibling queries
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_nodes_parent
            ON nodes(parent_id, position)
        """)

        self._conn.commit()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def name(self) -> str:
        """Database name recorded in dump headers."""
        return self._path.name

    def _now(self) -> str:
        """Current timestamp in ISO format."""
        return datetime.now(timezone.utc).isoformat()

    def _require_open(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError(f"Document store is closed: {self._path}")
        return self._conn

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def upsert(
        self,
        id: str,
        content: str,
        parent_id: Optional[str] = None,
        position: int = 0,
    ) -> NodeRecord:
        """
        Insert or update a node.

        Preserves created_at on update. Updates updated_at always.
        """
        conn = self._require_open()
        now = self._now()

        existing = self.get(id)
        created_at = existing.created_at if existing else now

        conn.execute("""
            INSERT OR REPLACE INTO nodes
            (id, content, parent_id, position, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (id, content, parent_id, position, created_at, now))
        conn.commit()

        return NodeRecord(
            id=id,
            content=content,
            parent_id=parent_id,
            position=position,
            created_at=created_at,
            updated_at=now,
            children=self.children_of(id),
        )

    def delete(self, id: str) -> bool:
        """
        Delete a node and everything below it.

        Returns:
            True if the node existed and was deleted
        """
        conn = self._require_open()
        doomed = [id]
        frontier = [id]
        while frontier:
            frontier = [c for parent in frontier for c in self.children_of(parent)]
            doomed.extend(frontier)

        placeholders = ",".join("?" * len(doomed))
        cursor = conn.execute(
            f"DELETE FROM nodes WHERE id IN ({placeholders})", doomed
        )
        conn.commit()
        return cursor.rowcount > 0

    def seed(self, document: dict[str, Any]) -> int:
        """
        Write a canonical document tree into the store.

        The tree is ``{"id", "content", "children": [...]}`` nested to any
        depth. All nodes are written in a single transaction.

        Returns:
            Number of nodes written
        """
        conn = self._require_open()
        now = self._now()
        rows = []

        stack = [(document, None, 0)]
        while stack:
            node, parent_id, position = stack.pop()
            node_id = str(node["id"])
            rows.append((node_id, node.get("content", ""), parent_id, position, now, now))
            children = node.get("children") or []
            for pos, child in reversed(list(enumerate(children))):
                stack.append((child, node_id, pos))

        with conn:
            conn.executemany("""
                INSERT OR REPLACE INTO nodes
                (id, content, parent_id, position, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, rows)

        logger.debug("Seeded %d nodes into %s", len(rows), self.name)
        return len(rows)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> Optional[NodeRecord]:
        """Get a node by ID, or None."""
        conn = self._require_open()
        row = conn.execute("""
            SELECT id, content, parent_id, position, created_at, updated_at
            FROM nodes WHERE id = ?
        """, (id,)).fetchone()
        if row is None:
            return None
        return self._row_to_record(row, children=self.children_of(row["id"]))

    def children_of(self, parent_id: str) -> list[str]:
        """Child IDs in sibling order."""
        conn = self._require_open()
        cursor = conn.execute("""
            SELECT id FROM nodes
            WHERE parent_id = ?
            ORDER BY position, id
        """, (parent_id,))
        return [row["id"] for row in cursor]

    def list_ids(self) -> list[str]:
        """All node IDs in dump order."""
        conn = self._require_open()
        return [row["id"] for row in conn.execute("SELECT id FROM nodes ORDER BY id")]

    def count(self) -> int:
        """Count nodes in the store."""
        conn = self._require_open()
        return conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0]

    def to_tree(self, root_id: str = ROOT_ID) -> Optional[dict[str, Any]]:
        """
        Rebuild the canonical tree below ``root_id``.

        Nodes without children carry no ``children`` key, matching the
        plain tree format.
        """
        record = self.get(root_id)
        if record is None:
            return None
        node: dict[str, Any] = {"id": record.id, "content": record.content}
        if record.children:
            node["children"] = [self.to_tree(child) for child in record.children]
        return node

    @staticmethod
    def _row_to_record(row: sqlite3.Row, children: Optional[list[str]] = None) -> NodeRecord:
        return NodeRecord(
            id=row["id"],
            content=row["content"],
            parent_id=row["parent_id"],
            position=row["position"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            children=children or [],
        )

    # -------------------------------------------------------------------------
    # Dump / Load
    # -------------------------------------------------------------------------

    def _iter_docs(self) -> Iterator[dict[str, Any]]:
        conn = self._require_open()
        cursor = conn.execute("""
            SELECT id, content, parent_id, position, created_at, updated_at
            FROM nodes ORDER BY id
        """)
        for row in cursor:
            yield {
                "_id": row["id"],
                "content": row["content"],
                "parent_id": row["parent_id"],
                "position": row["position"],
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
            }

    def dump(self, stream: TextIO) -> int:
        """
        Write the whole store to a text stream in native dump format.

        First line is the header. ``start_time`` is written immediately
        before ``db_info``; it is the only field that differs between two
        dumps of the same state.

        Returns:
            Number of node records written
        """
        header = {
            "version": DUMP_VERSION,
            "db_type": "sqlite",
            "start_time": self._now(),
            "db_info": {"db_name": self.name, "doc_count": self.count()},
        }
        stream.write(_dumps(header) + "\n")

        written = 0
        batch: list[dict[str, Any]] = []
        for doc in self._iter_docs():
            batch.append(doc)
            if len(batch) >= DUMP_BATCH_SIZE:
                stream.write(_dumps({"docs": batch}) + "\n")
                written += len(batch)
                batch = []
        if batch:
            stream.write(_dumps({"docs": batch}) + "\n")
            written += len(batch)

        stream.write(_dumps({"seq": written}) + "\n")
        return written

    def load(self, stream: TextIO) -> int:
        """
        Read a native dump from a text stream into this store.

        Existing nodes with the same ID are replaced. All records are
        written in a single transaction.

        Raises:
            ValueError: If the header or a record line is malformed

        Returns:
            Number of node records loaded
        """
        conn = self._require_open()

        header = _parse_line(stream.readline(), 1)
        db_info = header.get("db_info")
        if not isinstance(db_info, dict) or not isinstance(db_info.get("db_name"), str):
            raise ValueError("Dump header has no db_info.db_name")

        rows = []
        for lineno, line in enumerate(stream, start=2):
            if not line.strip():
                continue
            entry = _parse_line(line, lineno)
            if "seq" in entry:
                continue
            docs = entry.get("docs")
            if not isinstance(docs, list):
                raise ValueError(f"Malformed dump line {lineno}: expected docs or seq")
            for doc in docs:
                try:
                    rows.append((
                        str(doc["_id"]),
                        doc.get("content", ""),
                        doc.get("parent_id"),
                        int(doc.get("position", 0)),
                        doc["created_at"],
                        doc["updated_at"],
                    ))
                except (KeyError, TypeError) as e:
                    raise ValueError(f"Malformed record on dump line {lineno}: {e}") from e

        with conn:
            conn.executemany("""
                INSERT OR REPLACE INTO nodes
                (id, content, parent_id, position, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, rows)

        logger.debug("Loaded %d nodes from dump of %s", len(rows), db_info["db_name"])
        return len(rows)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def destroy(self) -> None:
        """
        Close the store and delete its database files.

        The directory itself is removed only if nothing else is left in it.
        """
        self.close()
        for suffix in DB_SIDE_SUFFIXES:
            self._db_path.with_name(DB_FILENAME + suffix).unlink(missing_ok=True)
        if self._path.is_dir() and not any(self._path.iterdir()):
            self._path.rmdir()
        logger.debug("Destroyed store %s", self._path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()


def _dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def _parse_line(line: str, lineno: int) -> dict[str, Any]:
    try:
        entry = json.loads(line)
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed dump line {lineno}: {e}") from e
    if not isinstance(entry, dict):
        raise ValueError(f"Malformed dump line {lineno}: expected an object")
    return entry
