"""Index store contract and its SQLite implementation."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol

import numpy as np

from indexsync.models import IndexDocument
from indexsync.utils.text import normalize_term


class IndexStore(Protocol):
    """Operations the sync engine performs against a search index."""

    def save(self, document: IndexDocument) -> bool: ...

    def remove(self, id: Any, title: str, type: str) -> bool: ...

    def complete(
        self,
        type: str,
        query: str,
        *,
        limit: int = 10,
        conditions: Optional[Mapping[str, Any]] = None,
    ) -> List[dict]: ...


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, default=str)


def _doc_key(value: Any) -> str:
    return str(value)


class SQLiteIndexStore:
    """Prefix-completion index persisted in SQLite.

    One connection is shared across threads; every statement runs under a
    re-entrant lock, so `save` and `remove` may be called concurrently.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    type TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    raw_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    aliases TEXT NOT NULL,
                    exts TEXT NOT NULL,
                    condition_fields TEXT NOT NULL,
                    score INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (type, doc_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS terms (
                    type TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    term TEXT NOT NULL,
                    normalized TEXT NOT NULL,
                    score INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (type, doc_id, term)
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_terms_prefix
                    ON terms(type, normalized)
                """
            )

    def save(self, document: IndexDocument) -> bool:
        """Replace the stored document for ``(id, type)`` and all its terms."""
        doc_id = _doc_key(document.id)
        with self.transaction() as conn:
            conn.execute(
                "DELETE FROM terms WHERE type = ? AND doc_id = ?",
                (document.type, doc_id),
            )
            conn.execute(
                """
                INSERT OR REPLACE INTO documents(
                    type, doc_id, raw_id, title, aliases, exts, condition_fields, score
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.type,
                    doc_id,
                    _dumps(document.id),
                    "" if document.title is None else str(document.title),
                    _dumps(document.aliases),
                    _dumps(document.exts),
                    _dumps(document.condition_fields),
                    document.score,
                ),
            )
            for term in document.terms():
                if term is None or not str(term).strip():
                    continue
                conn.execute(
                    """
                    INSERT OR REPLACE INTO terms(type, doc_id, term, normalized, score)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (document.type, doc_id, str(term), normalize_term(str(term)), document.score),
                )
        return True

    def remove(self, id: Any, title: str, type: str) -> bool:
        """Remove one search term; drop the document once no terms remain.

        Missing entries are ignored.
        """
        doc_id = _doc_key(id)
        with self.transaction() as conn:
            removed = conn.execute(
                "DELETE FROM terms WHERE type = ? AND doc_id = ? AND term = ?",
                (type, doc_id, str(title)),
            ).rowcount
            remaining = conn.execute(
                "SELECT COUNT(*) FROM terms WHERE type = ? AND doc_id = ?",
                (type, doc_id),
            ).fetchone()[0]
            if not remaining:
                removed += conn.execute(
                    "DELETE FROM documents WHERE type = ? AND doc_id = ?",
                    (type, doc_id),
                ).rowcount
        return removed > 0

    def _fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _row_to_document(self, row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": json.loads(row["raw_id"]),
            "title": row["title"],
            "aliases": json.loads(row["aliases"]),
            "type": row["type"],
            "exts": json.loads(row["exts"]),
            "condition_fields": json.loads(row["condition_fields"]),
            "score": row["score"],
        }

    def get_document(self, id: Any, type: str) -> Optional[Dict[str, Any]]:
        rows = self._fetchall(
            "SELECT * FROM documents WHERE type = ? AND doc_id = ?",
            (type, _doc_key(id)),
        )
        return self._row_to_document(rows[0]) if rows else None

    def list_terms(self, id: Any, type: str) -> List[str]:
        rows = self._fetchall(
            "SELECT term FROM terms WHERE type = ? AND doc_id = ? ORDER BY term",
            (type, _doc_key(id)),
        )
        return [row["term"] for row in rows]

    def complete(
        self,
        type: str,
        query: str,
        *,
        limit: int = 10,
        conditions: Optional[Mapping[str, Any]] = None,
    ) -> List[dict]:
        """Documents of ``type`` with a term starting with ``query``, best score first."""
        prefix = normalize_term(query or "")
        if not prefix or limit < 1:
            return []

        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self._fetchall(
            """
            SELECT DISTINCT d.*
            FROM terms t
            JOIN documents d ON d.type = t.type AND d.doc_id = t.doc_id
            WHERE t.type = ? AND t.normalized LIKE ? ESCAPE '\\'
            """,
            (type, escaped + "%"),
        )

        documents = [self._row_to_document(row) for row in rows]
        if conditions:
            documents = [doc for doc in documents if _matches_conditions(doc, conditions)]
        if not documents:
            return []

        scores = np.asarray([doc["score"] for doc in documents], dtype="int64")
        if limit < len(scores):
            top_indices = np.argpartition(scores, -limit)[-limit:]
            top_indices = top_indices[np.argsort(scores[top_indices], kind="stable")[::-1]]
        else:
            top_indices = np.argsort(scores, kind="stable")[::-1]
        return [documents[idx] for idx in top_indices]

    def count_documents(self, type: Optional[str] = None) -> int:
        if type is None:
            return self._fetchall("SELECT COUNT(*) FROM documents")[0][0]
        return self._fetchall("SELECT COUNT(*) FROM documents WHERE type = ?", (type,))[0][0]

    def get_stats(self) -> Dict[str, Any]:
        rows = self._fetchall(
            """
            SELECT d.type AS type,
                   COUNT(DISTINCT d.doc_id) AS document_count,
                   (SELECT COUNT(*) FROM terms t WHERE t.type = d.type) AS term_count
            FROM documents d
            GROUP BY d.type
            ORDER BY d.type
            """
        )
        types = {
            row["type"]: {"document_count": row["document_count"], "term_count": row["term_count"]}
            for row in rows
        }
        return {
            "document_count": sum(item["document_count"] for item in types.values()),
            "term_count": sum(item["term_count"] for item in types.values()),
            "types": types,
        }

    def clear(self, type: str) -> int:
        """Drop every document and term of ``type``."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM terms WHERE type = ?", (type,))
            removed = conn.execute("DELETE FROM documents WHERE type = ?", (type,)).rowcount
        return removed


def _matches_conditions(document: Mapping[str, Any], conditions: Mapping[str, Any]) -> bool:
    exts = document["exts"]
    allowed = set(document["condition_fields"])
    for name, expected in conditions.items():
        if name not in allowed:
            continue
        if exts.get(name) != expected:
            return False
    return True
