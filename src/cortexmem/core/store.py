import asyncio
import functools
import json
import logging
import sqlite3
from typing import Dict, List, Optional, Tuple, Iterable

import numpy as np

from .config import env
from .constants import SIMHASH_THRESHOLD
from .db import DB
from .errors import StoreError
from .types import ExtractedMemory, MemoryType, Sector, Waypoint
from ..memory.simhash import compute_simhash, hamming_dist
from ..utils.vectors import buf_to_vec, vec_to_buf, cos_scan, now, rid, j

logger = logging.getLogger("store")

COLS = ("id", "created_at", "content", "type", "confidence", "tags", "source_memory_id", "source_app",
        "is_active", "expires_at", "related_memory_ids", "embedding", "embedding_model", "salience",
        "sector", "simhash", "last_seen_at", "decay_lambda", "segment")

# created_at and source_memory_id are write-once
UPSERT_SQL = f"""
INSERT INTO extracted_memories({", ".join(COLS)})
VALUES ({", ".join("?" for _ in COLS)})
ON CONFLICT(id) DO UPDATE SET
{", ".join(f"{c}=excluded.{c}" for c in COLS if c not in ("id", "created_at", "source_memory_id"))}
"""

def _off_loop(fn):
    """Run a blocking store method in a worker thread."""
    @functools.wraps(fn)
    async def wrapper(self, *a, **k):
        return await asyncio.to_thread(fn, self, *a, **k)
    return wrapper

def _json_list(v) -> List[str]:
    if not v: return []
    try:
        out = json.loads(v)
    except (TypeError, ValueError):
        return []
    return [str(x) for x in out] if isinstance(out, list) else []

def _embedding(v) -> Optional[List[float]]:
    if v is None: return None
    if isinstance(v, (bytes, bytearray, memoryview)):
        return buf_to_vec(bytes(v)) or None
    # early rows kept embeddings as JSON text
    try:
        out = json.loads(v)
    except (TypeError, ValueError):
        return None
    return [float(x) for x in out] if isinstance(out, list) and out else None

def row_to_mem(r: sqlite3.Row) -> ExtractedMemory:
    emb = _embedding(r["embedding"])
    model = r["embedding_model"]
    if emb is None or not model:
        emb, model = None, None
    try:
        sec = Sector(r["sector"])
    except ValueError:
        sec = Sector.semantic
    return ExtractedMemory(
        id=r["id"],
        created_at=r["created_at"],
        content=r["content"],
        type=MemoryType.parse(r["type"]),
        confidence=max(0.0, min(1.0, r["confidence"])),
        tags=_json_list(r["tags"]),
        source_memory_id=r["source_memory_id"],
        source_app=r["source_app"],
        is_active=bool(r["is_active"]),
        expires_at=r["expires_at"],
        related_memory_ids=_json_list(r["related_memory_ids"]),
        embedding=emb,
        embedding_model=model,
        simhash=r["simhash"] or compute_simhash(r["content"]),
        sector=sec,
        salience=r["salience"] if r["salience"] is not None else 0.5,
        last_seen_at=r["last_seen_at"] or r["created_at"],
        decay_lambda=r["decay_lambda"] if r["decay_lambda"] is not None else 0.02,
        segment=r["segment"] or 0,
    )

def _mem_vals(m: ExtractedMemory) -> tuple:
    return (
        m.id, m.created_at, m.content, m.type.value, m.confidence, j(m.tags), m.source_memory_id, m.source_app,
        1 if m.is_active else 0, m.expires_at, j(m.related_memory_ids),
        vec_to_buf(m.embedding) if m.embedding else None, m.embedding_model if m.embedding else None,
        m.salience, m.sector.value, m.simhash or compute_simhash(m.content), m.last_seen_at or m.created_at,
        m.decay_lambda, m.segment,
    )

def row_to_waypoint(r: sqlite3.Row) -> Waypoint:
    return Waypoint(source_id=r["source_id"], target_id=r["target_id"], weight=r["weight"],
                    created_at=r["created_at"], updated_at=r["updated_at"])

class MemoryStore:
    """SQLite-backed persistence for extracted memories, waypoints and the processing log.

    All public methods are coroutines; the blocking sqlite work runs on a worker
    thread and is serialised by the DB lock.
    """

    def __init__(self, db: Optional[DB] = None, seg_size: Optional[int] = None):
        self.db = db or DB()
        self.seg_size = seg_size or env.seg_size

    def close(self):
        self.db.close()

    # -- memories ---------------------------------------------------------

    def _check_provenance(self, m: ExtractedMemory):
        cur = self.db.fetchone("SELECT source_memory_id FROM extracted_memories WHERE id=?", (m.id,))
        if cur and cur["source_memory_id"] != m.source_memory_id:
            raise StoreError(f"memory {m.id} already belongs to source {cur['source_memory_id']}")
        return cur

    def _save(self, m: ExtractedMemory) -> ExtractedMemory:
        if not m.simhash:
            m = m.model_copy(update={"simhash": compute_simhash(m.content)})
        self._check_provenance(m)
        self.db.execute(UPSERT_SQL, _mem_vals(m))
        return m

    @_off_loop
    def save_memory(self, m: ExtractedMemory) -> ExtractedMemory:
        with self.db.transaction():
            return self._save(m)

    @_off_loop
    def save_memories(self, ms: Iterable[ExtractedMemory]) -> List[ExtractedMemory]:
        with self.db.transaction():
            return [self._save(m) for m in ms]

    @_off_loop
    def replace_memory(self, m: ExtractedMemory) -> ExtractedMemory:
        """Overwrite an existing memory in one transaction; readers see old or new, never neither."""
        with self.db.transaction():
            if not self.db.fetchone("SELECT 1 FROM extracted_memories WHERE id=?", (m.id,)):
                raise StoreError(f"cannot replace missing memory {m.id}")
            return self._save(m)

    def _active(self, where: str = "", params: tuple = (), order: str = "created_at DESC") -> List[ExtractedMemory]:
        sql = "SELECT * FROM extracted_memories WHERE is_active=1"
        if where: sql += f" AND {where}"
        rows = self.db.fetchall(f"{sql} ORDER BY {order}", params)
        return [row_to_mem(r) for r in rows]

    @_off_loop
    def fetch_all_memories(self) -> List[ExtractedMemory]:
        return self._active()

    @_off_loop
    def fetch_recent(self, limit: int = 20, offset: int = 0) -> List[ExtractedMemory]:
        rows = self.db.fetchall("SELECT * FROM extracted_memories ORDER BY created_at DESC LIMIT ? OFFSET ?", (limit, offset))
        return [row_to_mem(r) for r in rows]

    @_off_loop
    def fetch_by_type(self, t: MemoryType) -> List[ExtractedMemory]:
        return self._active("type=?", (t.value,))

    @_off_loop
    def fetch_by_sector(self, sec: Sector) -> List[ExtractedMemory]:
        return self._active("sector=?", (sec.value,))

    @_off_loop
    def get_memory(self, mid: str) -> Optional[ExtractedMemory]:
        r = self.db.fetchone("SELECT * FROM extracted_memories WHERE id=?", (mid,))
        return row_to_mem(r) if r else None

    @_off_loop
    def get_memories(self, ids: List[str]) -> Dict[str, ExtractedMemory]:
        if not ids: return {}
        marks = ",".join("?" for _ in ids)
        rows = self.db.fetchall(f"SELECT * FROM extracted_memories WHERE is_active=1 AND id IN ({marks})", tuple(ids))
        return {r["id"]: row_to_mem(r) for r in rows}

    @_off_loop
    def search_memories(self, query: str, limit: Optional[int] = None) -> List[ExtractedMemory]:
        # sqlite LIKE only folds ASCII
        needle = query.casefold()
        if not needle: return []
        out = [m for m in self._active() if needle in m.content.casefold()]
        return out[:limit] if limit is not None else out

    @_off_loop
    def has_memory_with_content(self, content: str) -> bool:
        return self.db.fetchone("SELECT 1 FROM extracted_memories WHERE is_active=1 AND content=? LIMIT 1", (content,)) is not None

    @_off_loop
    def search_by_embedding(self, query: List[float], top_k: int = 10, min_score: float = 0.0) -> List[Tuple[ExtractedMemory, float]]:
        mems = [m for m in self._active("embedding IS NOT NULL") if m.embedding]
        if not mems or not query or top_k <= 0: return []
        sims = cos_scan(query, [m.embedding for m in mems])
        order = np.argsort(-sims, kind="stable")
        out = []
        for i in order:
            s = float(sims[i])
            if s < min_score: break
            out.append((mems[i], s))
            if len(out) >= top_k: break
        return out

    @_off_loop
    def find_by_simhash(self, simhash: str) -> List[ExtractedMemory]:
        return self._active("simhash=?", (simhash,), order="salience DESC")

    @_off_loop
    def find_near_duplicates(self, simhash: str, max_distance: int = SIMHASH_THRESHOLD) -> List[Tuple[ExtractedMemory, int]]:
        out = []
        for m in self._active(order="salience DESC"):
            d = hamming_dist(simhash, m.simhash or "")
            if d <= max_distance: out.append((m, d))
        out.sort(key=lambda x: x[1])
        return out

    @_off_loop
    def boost_salience(self, mid: str, boost: float) -> Optional[float]:
        """Atomic add-then-clamp; also touches last_seen_at. Returns the new salience."""
        with self.db.transaction():
            self.db.execute(
                "UPDATE extracted_memories SET salience=MIN(1.0, MAX(0.0, salience + ?)), last_seen_at=? WHERE id=?",
                (boost, now(), mid))
            r = self.db.fetchone("SELECT salience FROM extracted_memories WHERE id=?", (mid,))
        return float(r["salience"]) if r else None

    @_off_loop
    def apply_reinforcement(self, boosts: Dict[str, float], edge_boosts: Optional[Dict[Tuple[str, str], float]] = None):
        """Salience deltas and edge-weight deltas as one transaction. Missing edges are not created."""
        ts = now()
        with self.db.transaction():
            if boosts:
                self.db.executemany(
                    "UPDATE extracted_memories SET salience=MIN(1.0, MAX(0.0, salience + ?)), last_seen_at=? WHERE id=?",
                    [(d, ts, mid) for mid, d in boosts.items()])
            if edge_boosts:
                self.db.executemany(
                    "UPDATE waypoints SET weight=MIN(1.0, weight + ?), updated_at=? WHERE source_id=? AND target_id=?",
                    [(d, ts, s, t) for (s, t), d in edge_boosts.items()])

    @_off_loop
    def forget_memory(self, mid: str) -> bool:
        cur = self.db.execute("UPDATE extracted_memories SET is_active=0 WHERE id=?", (mid,))
        return cur.rowcount > 0

    @_off_loop
    def delete_memory(self, mid: str) -> bool:
        with self.db.transaction():
            cur = self.db.execute("DELETE FROM extracted_memories WHERE id=?", (mid,))
            self.db.execute("DELETE FROM waypoints WHERE source_id=? OR target_id=?", (mid, mid))
        return cur.rowcount > 0

    @_off_loop
    def clear_all(self):
        with self.db.transaction():
            self.db.execute("DELETE FROM waypoints")
            self.db.execute("DELETE FROM extracted_memories")
            self.db.execute("DELETE FROM processing_log")
        logger.info("[STORE] Cleared all memories")

    @_off_loop
    def count_active(self) -> int:
        return self.db.fetchone("SELECT COUNT(*) AS c FROM extracted_memories WHERE is_active=1")["c"]

    @_off_loop
    def max_segment(self) -> int:
        return self.db.fetchone("SELECT COALESCE(MAX(segment), 0) AS s FROM extracted_memories")["s"]

    @_off_loop
    def segment_size(self, seg: int) -> int:
        return self.db.fetchone("SELECT COUNT(*) AS c FROM extracted_memories WHERE segment=?", (seg,))["c"]

    # -- waypoints --------------------------------------------------------

    @_off_loop
    def save_waypoint(self, wp: Waypoint):
        self.db.execute(
            """INSERT INTO waypoints(source_id, target_id, weight, created_at, updated_at) VALUES (?,?,?,?,?)
               ON CONFLICT(source_id, target_id) DO UPDATE SET weight=excluded.weight, updated_at=excluded.updated_at""",
            (wp.source_id, wp.target_id, wp.weight, wp.created_at, wp.updated_at))

    @_off_loop
    def get_waypoint(self, source_id: str, target_id: str) -> Optional[Waypoint]:
        r = self.db.fetchone("SELECT * FROM waypoints WHERE source_id=? AND target_id=?", (source_id, target_id))
        return row_to_waypoint(r) if r else None

    @_off_loop
    def fetch_waypoints(self, source_id: str) -> List[Waypoint]:
        return [row_to_waypoint(r) for r in self.db.fetchall("SELECT * FROM waypoints WHERE source_id=?", (source_id,))]

    @_off_loop
    def fetch_all_waypoints(self) -> List[Waypoint]:
        return [row_to_waypoint(r) for r in self.db.fetchall("SELECT * FROM waypoints")]

    # -- processing log ---------------------------------------------------

    @_off_loop
    def log_processing(self, raw_memory_id: str, was_worth_remembering: bool, reason: Optional[str] = None, extracted_count: int = 0):
        self.db.execute(
            "INSERT INTO processing_log(id, raw_memory_id, processed_at, was_worth_remembering, reason, extracted_count) VALUES (?,?,?,?,?,?)",
            (rid(), raw_memory_id, now(), 1 if was_worth_remembering else 0, reason, extracted_count))

    @_off_loop
    def has_been_processed(self, raw_memory_id: str) -> bool:
        return self.db.fetchone("SELECT 1 FROM processing_log WHERE raw_memory_id=? LIMIT 1", (raw_memory_id,)) is not None
