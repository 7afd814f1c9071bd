import time
import logging
from typing import List, NamedTuple, Optional

from ..core.constants import DAY_MS
from ..core.store import MemoryStore
from ..memory.salience import should_prune
from ..utils.vectors import now as _now

logger = logging.getLogger("prune")

class PruneCandidate(NamedTuple):
    id: str
    salience: float
    age_days: float

async def prune_sweep(store: MemoryStore, dry_run: bool = True, now: Optional[int] = None) -> List[PruneCandidate]:
    """Find weak, long-unseen memories and soft-delete them unless dry_run.

    Judged on stored salience, which retrieval keeps topping up. Memories
    unseen for less than a week are never candidates. Nothing is hard-deleted.
    """
    t0 = time.time()
    ts = _now() if now is None else now
    out = []
    for m in await store.fetch_all_memories():
        if should_prune(m.salience, m.last_seen_at, now=ts):
            out.append(PruneCandidate(m.id, m.salience, (ts - m.last_seen_at) / DAY_MS))

    if not dry_run:
        for c in out:
            await store.forget_memory(c.id)

    verb = "would forget" if dry_run else "forgot"
    logger.info(f"[PRUNE] {verb} {len(out)} memories in {(time.time() - t0) * 1000:.0f}ms")
    return out
