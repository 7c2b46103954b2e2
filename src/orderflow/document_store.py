"""File-backed document store for orderflow.

Every collection lives in a single JSON file, so a transaction that touches
several documents is committed by one atomic rename. Writers are serialized
with an exclusive ``flock`` on a sibling lock file; acquiring it is retried a
bounded number of times before ``StoreBusyError`` is raised.
"""

import copy
import fcntl
import json
import operator
import os
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

import structlog

from .errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    InvalidFieldError,
    InvalidSchemaVersionError,
    StoreBusyError,
)
from .models import _generate_id
from .settings import LOCK_FILE, STORE_FILE, Settings

SCHEMA_VERSION = 1
_MAX_BACKOFF = 0.1

logger = structlog.get_logger(__name__)

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, options: value in options,
}


def get_path(doc: dict[str, Any], path: str) -> Any:
    """Resolve a dotted field path ("product.seller_id") inside a document."""
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


@dataclass(frozen=True)
class Filter:
    """A field condition: ``Filter("status", "==", "pending")``."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise InvalidFieldError("op", f"unsupported operator {self.op!r}")

    def matches(self, doc: dict[str, Any]) -> bool:
        actual = get_path(doc, self.field)
        if actual is None and self.op not in ("==", "!="):
            return False
        try:
            return _OPERATORS[self.op](actual, self.value)
        except TypeError:
            return False


@dataclass
class QueryPage:
    documents: list[dict[str, Any]]
    next_cursor: str | None
    has_more: bool


def run_query(
    collection: str,
    docs: dict[str, dict[str, Any]],
    filters: list[Filter] | None = None,
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
    start_after: str | None = None,
) -> QueryPage:
    """
    Filter, sort and page a collection's documents.

    Ties on ``order_by`` are broken by document ID so paging is stable.

    Raises:
        DocumentNotFoundError: If ``start_after`` isn't in the result set.
    """
    matched = [d for d in docs.values() if all(f.matches(d) for f in filters or [])]

    def sort_key(doc: dict[str, Any]) -> tuple:
        value = get_path(doc, order_by) if order_by else None
        return (value is not None, value if value is not None else 0, doc["id"])

    matched.sort(key=sort_key, reverse=descending)

    if start_after is not None:
        ids = [d["id"] for d in matched]
        if start_after not in ids:
            raise DocumentNotFoundError(collection, start_after)
        matched = matched[ids.index(start_after) + 1 :]

    has_more = False
    if limit is not None and len(matched) > limit:
        has_more = True
        matched = matched[:limit]

    next_cursor = matched[-1]["id"] if has_more and matched else None
    return QueryPage(
        documents=[copy.deepcopy(d) for d in matched],
        next_cursor=next_cursor,
        has_more=has_more,
    )


class Transaction:
    """Staged reads and writes against a freshly loaded copy of the store.

    Obtained from ``DocumentStore.transaction()``; nothing is persisted unless
    the ``with`` block exits normally.
    """

    def __init__(self, collections: dict[str, dict[str, dict[str, Any]]]):
        self._collections = collections
        self.dirty = False

    def _docs(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def require(self, collection: str, doc_id: str) -> dict[str, Any]:
        """Get a document or raise DocumentNotFoundError."""
        doc = self.get(collection, doc_id)
        if doc is None:
            raise DocumentNotFoundError(collection, doc_id)
        return doc

    def insert(self, collection: str, doc: dict[str, Any], doc_id: str | None = None) -> str:
        """
        Insert a new document and return its ID.

        The ID is taken from ``doc_id``, then ``doc["id"]``, then generated.

        Raises:
            DocumentExistsError: If the ID is already taken.
        """
        doc_id = doc_id or doc.get("id") or _generate_id()
        docs = self._docs(collection)
        if doc_id in docs:
            raise DocumentExistsError(collection, doc_id)
        stored = copy.deepcopy(doc)
        stored["id"] = doc_id
        docs[doc_id] = stored
        self.dirty = True
        return doc_id

    def put(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        """Create or fully replace a document."""
        stored = copy.deepcopy(doc)
        stored["id"] = doc_id
        self._docs(collection)[doc_id] = stored
        self.dirty = True

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge top-level fields into an existing document and return the result."""
        docs = self._docs(collection)
        if doc_id not in docs:
            raise DocumentNotFoundError(collection, doc_id)
        docs[doc_id].update(copy.deepcopy(fields))
        docs[doc_id]["id"] = doc_id
        self.dirty = True
        return copy.deepcopy(docs[doc_id])

    def delete(self, collection: str, doc_id: str) -> bool:
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            return False
        del docs[doc_id]
        self.dirty = True
        return True

    def increment(self, collection: str, doc_id: str, field: str, delta: int | float) -> int | float:
        """Add ``delta`` to a numeric top-level field and return the new value."""
        docs = self._docs(collection)
        if doc_id not in docs:
            raise DocumentNotFoundError(collection, doc_id)
        new_value = docs[doc_id].get(field, 0) + delta
        docs[doc_id][field] = new_value
        self.dirty = True
        return new_value

    def query(self, collection: str, filters: list[Filter] | None = None, **kwargs: Any) -> QueryPage:
        return run_query(collection, self._collections.get(collection, {}), filters, **kwargs)


class DocumentStore:
    """Manages the store file and serializes writers."""

    def __init__(
        self,
        data_dir: Path,
        lock_attempts: int = 50,
        lock_backoff: float = 0.01,
    ):
        """
        Initialize DocumentStore.

        Args:
            data_dir: Directory holding the store and lock files.
            lock_attempts: How many times to try the lock before giving up.
            lock_backoff: Base sleep between attempts (grows linearly, capped).
        """
        self.data_dir = Path(data_dir)
        self.store_path = self.data_dir / STORE_FILE
        self.lock_path = self.data_dir / LOCK_FILE
        self.lock_attempts = lock_attempts
        self.lock_backoff = lock_backoff

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentStore":
        return cls(
            settings.data_dir,
            lock_attempts=settings.lock_attempts,
            lock_backoff=settings.lock_backoff,
        )

    def _ensure_dir(self) -> None:
        """Ensure data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire the exclusive store lock, retrying with backoff."""
        self._ensure_dir()
        with open(self.lock_path, "w") as lock_file:
            for attempt in range(1, self.lock_attempts + 1):
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if attempt == self.lock_attempts:
                        logger.warning("store_lock_exhausted", attempts=attempt)
                        raise StoreBusyError(attempt) from None
                    time.sleep(min(self.lock_backoff * attempt, _MAX_BACKOFF))
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load_data(self) -> dict[str, Any]:
        """Load the store from disk."""
        if not self.store_path.exists():
            return {"schema_version": SCHEMA_VERSION, "collections": {}}

        with open(self.store_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)
        data.setdefault("collections", {})
        return data

    def _save_data(self, data: dict[str, Any]) -> None:
        """Save the store to disk atomically."""
        self._ensure_dir()

        fd, temp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".store_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.store_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run a read-modify-write unit under the store lock.

        State is loaded after the lock is held, so reads inside the block see
        every previously committed write. Staged writes are persisted only if
        the block exits without an exception.

        Raises:
            StoreBusyError: If the lock can't be acquired.
        """
        with self._lock():
            data = self._load_data()
            tx = Transaction(data["collections"])
            yield tx
            if tx.dirty:
                self._save_data(data)

    # Single-operation helpers

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._load_data()["collections"].get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def query(self, collection: str, filters: list[Filter] | None = None, **kwargs: Any) -> QueryPage:
        docs = self._load_data()["collections"].get(collection, {})
        return run_query(collection, docs, filters, **kwargs)

    def insert(self, collection: str, doc: dict[str, Any], doc_id: str | None = None) -> str:
        with self.transaction() as tx:
            return tx.insert(collection, doc, doc_id)

    def put(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        with self.transaction() as tx:
            tx.put(collection, doc_id, doc)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        with self.transaction() as tx:
            return tx.update(collection, doc_id, fields)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self.transaction() as tx:
            return tx.delete(collection, doc_id)

    def increment(self, collection: str, doc_id: str, field: str, delta: int | float) -> int | float:
        with self.transaction() as tx:
            return tx.increment(collection, doc_id, field, delta)
