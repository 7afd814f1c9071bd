import sqlite3
import threading
import logging
from contextlib import contextmanager
from importlib import resources
from pathlib import Path
from typing import List, Optional, Iterator
from .config import env
from .errors import StoreUnavailable
from ..utils.vectors import now

logger = logging.getLogger("db")
logger.setLevel(logging.INFO)

class DB:
    def __init__(self, url: Optional[str] = None):
        self.url = url
        self.conn: Optional[sqlite3.Connection] = None
        # re-entrant so a transaction can call execute/fetch* on the same thread
        self.lock = threading.RLock()
        self._tx_depth = 0

    def connect(self):
        with self.lock:
            if self.conn: return

            url = self.url or env.database_url
            if not url.startswith("sqlite:///"):
                raise ValueError(f"Unsupported database URL schema: {url}. Only sqlite:/// is supported currently.")
            target = url.replace("sqlite:///", "", 1)
            try:
                if target == ":memory:":
                    logger.info("[DB] Connecting to in-memory database")
                    self.conn = sqlite3.connect(":memory:", check_same_thread=False, isolation_level=None)
                else:
                    path = Path(target)
                    if not path.parent.exists():
                        path.parent.mkdir(parents=True, exist_ok=True)
                    logger.info(f"[DB] Connecting to {path}")
                    self.conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
                    self.conn.execute("PRAGMA journal_mode=WAL")
                    self.conn.execute("PRAGMA synchronous=NORMAL")
                self.conn.row_factory = sqlite3.Row
                self.conn.execute("PRAGMA cache_size=-8000")
                self.run_migrations()
            except sqlite3.Error as e:
                self.conn = None
                raise StoreUnavailable(f"cannot open {url}: {e}") from e

    def run_migrations(self):
        c = self.conn
        c.execute("CREATE TABLE IF NOT EXISTS _migrations (name TEXT PRIMARY KEY, applied_at INTEGER)")

        mig_dir = resources.files("cortexmem").joinpath("migrations")
        files = sorted(p.name for p in mig_dir.iterdir() if p.name.endswith(".sql"))

        for f in files:
            if c.execute("SELECT 1 FROM _migrations WHERE name=?", (f,)).fetchone():
                continue
            logger.info(f"[DB] Applying migration {f}")
            sql = mig_dir.joinpath(f).read_text(encoding="utf-8")
            try:
                c.executescript(f"BEGIN;\n{sql}\nINSERT INTO _migrations (name, applied_at) VALUES ('{f}', {now()});\nCOMMIT;")
            except sqlite3.Error as e:
                if c.in_transaction: c.execute("ROLLBACK")
                logger.error(f"[DB] Migration {f} failed: {e}")
                raise

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        self.connect()
        with self.lock:
            try:
                return self.conn.execute(sql, params)
            except sqlite3.Error as e:
                raise StoreUnavailable(str(e)) from e

    def executemany(self, sql: str, rows: List[tuple]) -> sqlite3.Cursor:
        self.connect()
        with self.lock:
            try:
                return self.conn.executemany(sql, rows)
            except sqlite3.Error as e:
                raise StoreUnavailable(str(e)) from e

    def fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        self.connect()
        with self.lock:
            try:
                return self.conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StoreUnavailable(str(e)) from e

    def fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        self.connect()
        with self.lock:
            try:
                return self.conn.execute(sql, params).fetchone()
            except sqlite3.Error as e:
                raise StoreUnavailable(str(e)) from e

    @contextmanager
    def transaction(self) -> Iterator["DB"]:
        """Holds the lock for the whole block; nested blocks join the outer transaction."""
        self.connect()
        with self.lock:
            outer = self._tx_depth == 0
            if outer: self.execute("BEGIN IMMEDIATE")
            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                self._tx_depth -= 1
                if outer: self.conn.execute("ROLLBACK")
                raise
            self._tx_depth -= 1
            if outer: self.execute("COMMIT")

    def close(self):
        with self.lock:
            if self.conn:
                self.conn.close()
                self.conn = None
