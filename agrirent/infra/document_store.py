"""Generic document persistence with optimistic concurrency."""

from __future__ import annotations

import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from .config import get_config


@dataclass(frozen=True)
class Document:
    key: str
    data: dict
    version: int


def _matches(data: dict, filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(data.get(field) == value for field, value in filters.items())


class DocumentStore:
    """
    Collections of JSON documents keyed by id.

    ``put_if_match`` is the compare-and-swap primitive: ``expected_version``
    None means the document must not exist yet.
    """

    def get(self, collection: str, key: str) -> Optional[Document]:
        raise NotImplementedError

    def put(self, collection: str, key: str, data: dict) -> int:
        raise NotImplementedError

    def put_if_match(
        self,
        collection: str,
        key: str,
        data: dict,
        expected_version: Optional[int],
    ) -> Optional[int]:
        """Write and return the new version, or None when the version check fails."""
        raise NotImplementedError

    def query(
        self, collection: str, filters: Optional[Dict[str, Any]] = None
    ) -> List[Document]:
        raise NotImplementedError


class MemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self._items: Dict[Tuple[str, str], Tuple[dict, int]] = {}
        self._lock = Lock()

    def get(self, collection: str, key: str) -> Optional[Document]:
        with self._lock:
            item = self._items.get((collection, key))
            if not item:
                return None
            data, version = item
            return Document(key=key, data=json.loads(json.dumps(data)), version=version)

    def put(self, collection: str, key: str, data: dict) -> int:
        payload = json.loads(json.dumps(data, default=str))
        with self._lock:
            current = self._items.get((collection, key))
            version = (current[1] if current else 0) + 1
            self._items[(collection, key)] = (payload, version)
            return version

    def put_if_match(
        self,
        collection: str,
        key: str,
        data: dict,
        expected_version: Optional[int],
    ) -> Optional[int]:
        payload = json.loads(json.dumps(data, default=str))
        with self._lock:
            current = self._items.get((collection, key))
            current_version = current[1] if current else None
            if current_version != expected_version:
                return None
            version = (current_version or 0) + 1
            self._items[(collection, key)] = (payload, version)
            return version

    def query(
        self, collection: str, filters: Optional[Dict[str, Any]] = None
    ) -> List[Document]:
        with self._lock:
            rows = [
                (key, data, version)
                for (name, key), (data, version) in self._items.items()
                if name == collection
            ]
        rows.sort(key=lambda row: row[0])
        return [
            Document(key=key, data=json.loads(json.dumps(data)), version=version)
            for key, data, version in rows
            if _matches(data, filters)
        ]


class SqliteDocumentStore(DocumentStore):
    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._path)

    def _init_db(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS documents ("
                "collection TEXT NOT NULL, "
                "doc_id TEXT NOT NULL, "
                "payload TEXT NOT NULL, "
                "version INTEGER NOT NULL, "
                "updated_at INTEGER NOT NULL, "
                "PRIMARY KEY (collection, doc_id))"
            )

    def get(self, collection: str, key: str) -> Optional[Document]:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT payload, version FROM documents "
                "WHERE collection = ? AND doc_id = ?",
                (collection, key),
            ).fetchone()
        if not row:
            return None
        payload_json, version = row
        try:
            payload = json.loads(payload_json)
        except json.JSONDecodeError:
            return None
        if not isinstance(payload, dict):
            return None
        return Document(key=key, data=payload, version=int(version))

    def put(self, collection: str, key: str, data: dict) -> int:
        payload_json = json.dumps(data, ensure_ascii=True, default=str)
        now = int(time.time())
        with self._lock, self._connect() as conn:
            conn.execute(
                "INSERT INTO documents (collection, doc_id, payload, version, updated_at) "
                "VALUES (?, ?, ?, 1, ?) "
                "ON CONFLICT(collection, doc_id) DO UPDATE SET "
                "payload = excluded.payload, "
                "version = documents.version + 1, "
                "updated_at = excluded.updated_at",
                (collection, key, payload_json, now),
            )
            row = conn.execute(
                "SELECT version FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, key),
            ).fetchone()
        return int(row[0])

    def put_if_match(
        self,
        collection: str,
        key: str,
        data: dict,
        expected_version: Optional[int],
    ) -> Optional[int]:
        payload_json = json.dumps(data, ensure_ascii=True, default=str)
        now = int(time.time())
        with self._lock, self._connect() as conn:
            if expected_version is None:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO documents "
                    "(collection, doc_id, payload, version, updated_at) "
                    "VALUES (?, ?, ?, 1, ?)",
                    (collection, key, payload_json, now),
                )
                return 1 if cursor.rowcount == 1 else None
            cursor = conn.execute(
                "UPDATE documents SET payload = ?, version = version + 1, updated_at = ? "
                "WHERE collection = ? AND doc_id = ? AND version = ?",
                (payload_json, now, collection, key, expected_version),
            )
            if cursor.rowcount != 1:
                return None
            return expected_version + 1

    def query(
        self, collection: str, filters: Optional[Dict[str, Any]] = None
    ) -> List[Document]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT doc_id, payload, version FROM documents "
                "WHERE collection = ? ORDER BY doc_id",
                (collection,),
            ).fetchall()
        documents = []
        for doc_id, payload_json, version in rows:
            try:
                payload = json.loads(payload_json)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict) and _matches(payload, filters):
                documents.append(Document(key=doc_id, data=payload, version=int(version)))
        return documents


def build_document_store() -> DocumentStore:
    cfg = get_config()
    store = (cfg.document_store or "memory").lower()
    if store == "sqlite":
        if cfg.document_store_path:
            path = Path(cfg.document_store_path)
        else:
            root = Path(__file__).resolve().parents[2]
            path = root / ".cache" / "agrirent.sqlite3"
        return SqliteDocumentStore(path=path)
    return MemoryDocumentStore()
