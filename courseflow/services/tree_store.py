# courseflow/services/tree_store.py
"""Keyed-tree store on SQLite.

Models the realtime database the application was built around: a JSON tree
addressed by ``/``-separated paths, with get/set/update/push primitives plus a
conditional write and an atomic read-modify-write. Every leaf is a row in the
``nodes`` table holding its JSON-encoded value.
"""
# pylint: disable=broad-exception-caught

import json
import os
import random
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from courseflow.logger import logger

FORBIDDEN_KEY_CHARS = set(".$#[]")

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"

SCHEMA = """
CREATE TABLE IF NOT EXISTS nodes (
    path TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class PushIdGenerator:
    """
    Generates 20-character, time-ordered keys.

    The first 8 characters encode the millisecond timestamp, the remaining 12
    are random. Ids generated within the same millisecond increment the random
    part, so ids from one generator sort strictly in generation order.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last_ts = 0
        self._last_rand: List[int] = [0] * 12
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            now = int(self._clock() * 1000)
            if now <= self._last_ts:
                # Same (or earlier) millisecond: keep the timestamp, bump the suffix
                now = self._last_ts
                i = 11
                while i >= 0 and self._last_rand[i] == 63:
                    self._last_rand[i] = 0
                    i -= 1
                if i < 0:
                    # Suffix space exhausted, move to the next millisecond
                    now += 1
                    self._last_rand = [random.randrange(64) for _ in range(12)]
                else:
                    self._last_rand[i] += 1
            else:
                self._last_rand = [random.randrange(64) for _ in range(12)]
            self._last_ts = now

            ts_chars = []
            for _ in range(8):
                ts_chars.append(PUSH_CHARS[now % 64])
                now //= 64
            return "".join(reversed(ts_chars)) + "".join(
                PUSH_CHARS[r] for r in self._last_rand
            )


def is_valid_key(segment: str) -> bool:
    """True if ``segment`` can be used as a single key in a tree path."""
    return bool(segment) and "/" not in segment and not FORBIDDEN_KEY_CHARS & set(segment)


def split_path(path: str) -> List[str]:
    """
    Splits a tree path into its segments.

    Raises:
        ValueError: If the path is empty or a segment is empty or contains a
            forbidden character.
    """
    segments = path.strip("/").split("/")
    if segments == [""]:
        raise ValueError("Path must contain at least one segment")
    for segment in segments:
        if not segment:
            raise ValueError(f"Empty segment in path: {path!r}")
        if FORBIDDEN_KEY_CHARS & set(segment):
            raise ValueError(f"Invalid character in path segment {segment!r}")
    return segments


def _flatten(prefix: str, value: Any) -> Iterable[Tuple[str, Any]]:
    """Yields (path, leaf) pairs for a value. Empty dicts and None yield nothing."""
    if value is None:
        return
    if isinstance(value, dict):
        for key, child in value.items():
            key = str(key)
            if not key or FORBIDDEN_KEY_CHARS & set(key) or "/" in key:
                raise ValueError(f"Invalid key {key!r} under {prefix!r}")
            yield from _flatten(f"{prefix}/{key}", child)
        return
    yield prefix, value


class SQLiteTreeStore:
    """
    Keyed JSON tree persisted in SQLite.

    Writes are last-write-wins except for ``set_if_absent`` and ``transaction``,
    which run under ``BEGIN IMMEDIATE`` and so are atomic across connections.
    """

    def __init__(self, db_path: str = "courseflow.db") -> None:
        """
        Initializes the store, connecting to the SQLite database and creating the schema.

        Args:
            db_path: File name relative to the project root, an absolute path,
                or ":memory:".
        """
        self.conn: sqlite3.Connection
        self._lock = threading.RLock()
        self.generate_push_id = PushIdGenerator()
        try:
            if db_path == ":memory:":
                abs_path = db_path
            else:
                root_dir = os.path.dirname(
                    os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
                )
                abs_path = os.path.join(root_dir, db_path)
                Path(os.path.dirname(abs_path)).mkdir(parents=True, exist_ok=True)
                if not os.path.exists(abs_path):
                    logger.warning(
                        f"Database file does not exist, will be created at: {abs_path}"
                    )

            self.conn = sqlite3.connect(
                abs_path,
                check_same_thread=False,
                timeout=30.0,
                isolation_level=None,  # Transactions are managed explicitly
            )
            if abs_path != ":memory:":
                self.conn.execute("PRAGMA journal_mode = WAL")
            self.conn.executescript(SCHEMA)
            logger.info(f"Tree store initialized at: {abs_path}")
        except Exception as e:
            logger.error(f"Error initializing tree store: {str(e)}", exc_info=True)
            raise

    def close(self) -> None:
        """
        Closes the database connection.
        """
        if hasattr(self, "conn") and self.conn:
            self.conn.close()
            logger.info("Tree store connection closed")

    # --- Internal helpers (everything below _transaction runs inside it) ---

    def _transaction(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Executes a function inside an immediate (write-locked) transaction.

        Returns:
            The result of the function.
        """
        with self._lock:
            try:
                self.conn.execute("BEGIN IMMEDIATE")
                result = func(*args, **kwargs)
                self.conn.execute("COMMIT")
                return result
            except Exception as e:
                self.conn.execute("ROLLBACK")
                logger.error(f"Transaction error: {str(e)}", exc_info=True)
                raise

    def _read(self, path: str) -> Any:
        row = self.conn.execute(
            "SELECT value FROM nodes WHERE path = ?", (path,)
        ).fetchone()
        if row is not None:
            return json.loads(row[0])

        # Children sort between "path/" and "path0" ('0' follows '/')
        rows = self.conn.execute(
            "SELECT path, value FROM nodes WHERE path >= ? AND path < ? ORDER BY path",
            (f"{path}/", f"{path}0"),
        ).fetchall()
        if not rows:
            return None

        tree: Dict[str, Any] = {}
        prefix_len = len(path) + 1
        for row_path, raw in rows:
            parts = row_path[prefix_len:].split("/")
            node = tree
            for part in parts[:-1]:
                node = node.setdefault(part, {})
            node[parts[-1]] = json.loads(raw)
        return tree

    def _delete(self, path: str) -> None:
        self.conn.execute(
            "DELETE FROM nodes WHERE path = ? OR (path >= ? AND path < ?)",
            (path, f"{path}/", f"{path}0"),
        )

    def _write(self, path: str, value: Any) -> None:
        segments = path.split("/")
        # A leaf on an ancestor path would shadow the new subtree
        for i in range(1, len(segments)):
            self.conn.execute(
                "DELETE FROM nodes WHERE path = ?", ("/".join(segments[:i]),)
            )
        self._delete(path)
        self.conn.executemany(
            "INSERT INTO nodes (path, value) VALUES (?, ?)",
            [(leaf_path, json.dumps(leaf)) for leaf_path, leaf in _flatten(path, value)],
        )

    # --- Public API ---

    def get(self, path: str) -> Any:
        """
        Reads the value at a path.

        Returns:
            The leaf value, the nested dict subtree, or None if nothing is stored.
        """
        key = "/".join(split_path(path))
        with self._lock:
            return self._read(key)

    def set(self, path: str, value: Any) -> None:
        """Replaces the subtree at a path. None or an empty dict deletes it."""
        key = "/".join(split_path(path))
        self._transaction(self._write, key, value)

    def delete(self, path: str) -> None:
        """Removes the subtree at a path."""
        self.set(path, None)

    def update(self, path: str, values: Dict[str, Any]) -> None:
        """
        Sets several children of a path in one transaction.

        Keys may themselves be relative paths ("a/b").
        """
        base = "/".join(split_path(path))

        def _update() -> None:
            for child, value in values.items():
                self._write("/".join([base] + split_path(child)), value)

        self._transaction(_update)

    def push(self, path: str, value: Any) -> str:
        """
        Stores a value under a newly generated, time-ordered key.

        Returns:
            The generated key.
        """
        key = self.generate_push_id()
        base = "/".join(split_path(path))
        self._transaction(self._write, f"{base}/{key}", value)
        return key

    def set_if_absent(self, path: str, value: Any) -> Tuple[bool, Any]:
        """
        Conditional write: stores the value only if nothing exists at the path.

        Returns:
            (True, value) if the value was written, (False, existing) otherwise.
        """
        key = "/".join(split_path(path))

        def _conditional() -> Tuple[bool, Any]:
            existing = self._read(key)
            if existing is not None:
                return False, existing
            self._write(key, value)
            return True, value

        return self._transaction(_conditional)

    def transaction(self, path: str, update_fn: Callable[[Any], Any]) -> Any:
        """
        Atomic read-modify-write of the value at a path.

        Args:
            path: The path to update.
            update_fn: Receives the current value (or None) and returns the new one.

        Returns:
            The value written.
        """
        key = "/".join(split_path(path))

        def _read_modify_write() -> Any:
            new_value = update_fn(self._read(key))
            self._write(key, new_value)
            return new_value

        return self._transaction(_read_modify_write)

    def transaction_update(
        self, path: str, update_fn: Callable[[Any], Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Atomic read-then-update of selected children of a path.

        Unlike ``transaction`` only the children named by ``update_fn`` are
        rewritten, so large sibling subtrees are left alone.

        Args:
            path: The parent path.
            update_fn: Receives the current value at ``path`` (or None) and
                returns a mapping of relative child paths to new values.

        Returns:
            The mapping that was applied.
        """
        base = "/".join(split_path(path))

        def _read_update() -> Dict[str, Any]:
            changes = update_fn(self._read(base))
            for child, value in changes.items():
                self._write("/".join([base] + split_path(child)), value)
            return changes

        return self._transaction(_read_update)

    def child_keys(self, path: str) -> List[str]:
        """Returns the sorted keys directly below a path."""
        value = self.get(path)
        if not isinstance(value, dict):
            return []
        return sorted(value.keys())

    def dump(self) -> Optional[Dict[str, Any]]:
        """Returns the whole tree. Intended for debugging and tests."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT path, value FROM nodes ORDER BY path"
            ).fetchall()
        if not rows:
            return None
        tree: Dict[str, Any] = {}
        for row_path, raw in rows:
            parts = row_path.split("/")
            node = tree
            for part in parts[:-1]:
                node = node.setdefault(part, {})
            node[parts[-1]] = json.loads(raw)
        return tree
