import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional

from ..core.config import env
from ..core.constants import TYPE_SECTORS, REINFORCEMENT, SIMHASH_THRESHOLD
from ..core.errors import EmbeddingUnavailable, LLMError
from ..core.store import MemoryStore
from ..core.types import ExtractedMemory, ExtractedMemoryData, IngestResult, MergeDecisionKind, SourceProvenance, Waypoint
from ..memory.classify import SectorClassifier, RegexSectorClassifier
from ..memory.consolidate import MemoryConsolidator
from ..memory.embed import EmbeddingService
from ..memory.salience import initial_salience, sector_lambda
from ..memory.simhash import compute_simhash
from ..memory.waypoints import find_best_waypoint_target
from ..utils.text import content_tokens

logger = logging.getLogger("ingest")

class Ingestor:
    """Turns capture-pipeline candidates into stored memories.

    Per candidate: near-duplicate pre-check, best-effort embedding, LLM
    consolidation against semantic neighbours, then a new row with sector,
    initial salience, decay rate and segment, linked to its closest neighbour.
    Work for one source capture is serialised.
    """

    def __init__(self, store: MemoryStore, embedder: EmbeddingService, consolidator: Optional[MemoryConsolidator] = None,
                 classifier: Optional[SectorClassifier] = None, on_change: Optional[Callable[[], None]] = None):
        self.store = store
        self.embedder = embedder
        self.consolidator = consolidator
        self.classifier = classifier or RegexSectorClassifier()
        self.on_change = on_change
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def _lock(self, source_id: str):
        lock = self._locks.setdefault(source_id, asyncio.Lock())
        self._users[source_id] = self._users.get(source_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # last holder or waiter drops the entry
            self._users[source_id] -= 1
            if not self._users[source_id]:
                del self._users[source_id]
                del self._locks[source_id]

    async def ingest_capture(self, candidates: List[ExtractedMemoryData], prov: SourceProvenance) -> List[IngestResult]:
        """All candidates extracted from one raw capture; a capture is only processed once."""
        async with self._lock(prov.source_memory_id):
            if await self.store.has_been_processed(prov.source_memory_id):
                logger.info(f"[INGEST] {prov.source_memory_id} already processed")
                return [IngestResult(action="skipped") for _ in candidates]
            res = [await self._ingest(c, prov) for c in candidates]
            kept = sum(1 for r in res if r.action == "created")
            await self.store.log_processing(prov.source_memory_id, bool(candidates), None if candidates else "nothing extracted", kept)
            return res

    async def ingest(self, data: ExtractedMemoryData, prov: SourceProvenance) -> IngestResult:
        async with self._lock(prov.source_memory_id):
            return await self._ingest(data, prov)

    async def _ingest(self, data: ExtractedMemoryData, prov: SourceProvenance) -> IngestResult:
        content = data.content.strip()
        if not content:
            return IngestResult(action="skipped")
        if content != data.content:
            data = data.model_copy(update={"content": content})

        dup = await self._near_duplicate(content)
        if dup:
            await self.store.boost_salience(dup, REINFORCEMENT["duplicate_boost"])
            self._changed()
            logger.info(f"[INGEST] near-duplicate of {dup}")
            return IngestResult(action="duplicate", memory_id=dup, decision=MergeDecisionKind.duplicate)

        emb, model = None, None
        try:
            emb, model = await self.embedder.embed(content)
        except EmbeddingUnavailable as e:
            logger.warning(f"[INGEST] storing without embedding: {e}")

        if emb is not None and self.consolidator is not None and env.consolidate_enabled:
            try:
                r = await self.consolidator.resolve(data, emb, prov)
            except LLMError as e:
                logger.warning(f"[INGEST] consolidation failed, keeping as separate: {e}")
            else:
                if r.handled:
                    self._changed()
                    return IngestResult(action="consolidated", memory_id=r.existing_id, decision=r.decision)

        mem = await self._persist(data, prov, emb, model)
        self._changed()
        return IngestResult(action="created", memory_id=mem.id)

    async def _near_duplicate(self, content: str) -> Optional[str]:
        # token-less text all hashes to zero, only exact matches count
        if not content_tokens(content):
            for m in await self.store.search_memories(content):
                if m.content == content: return m.id
            return None
        near = await self.store.find_near_duplicates(compute_simhash(content), SIMHASH_THRESHOLD)
        return near[0][0].id if near else None

    async def _segment(self) -> int:
        cur = await self.store.max_segment()
        if await self.store.segment_size(cur) >= self.store.seg_size:
            cur += 1
            logger.info(f"[INGEST] Rotated to segment {cur}")
        return cur

    async def _persist(self, data: ExtractedMemoryData, prov: SourceProvenance, emb: Optional[List[float]],
                       model: Optional[str]) -> ExtractedMemory:
        cls = self.classifier.classify(data.content)
        # no pattern hits: the declared type is a better hint than the default
        sector = cls.primary if cls.scores and max(cls.scores.values()) > 0 else TYPE_SECTORS[data.type]

        mem = ExtractedMemory(
            content=data.content,
            type=data.type,
            confidence=data.confidence,
            tags=data.tags,
            source_memory_id=prov.source_memory_id,
            source_app=prov.source_app,
            expires_at=data.expires_at,
            embedding=emb,
            embedding_model=model,
            simhash=compute_simhash(data.content),
            sector=sector,
            salience=initial_salience(cls),
            decay_lambda=sector_lambda(sector),
            segment=await self._segment(),
        )
        mem = await self.store.save_memory(mem)

        if emb is not None:
            near = await self.store.search_by_embedding(emb, top_k=2, min_score=0.0)
            best = find_best_waypoint_target(mem.id, emb, [m for m, _ in near])
            if best:
                await self.store.save_waypoint(Waypoint(source_id=mem.id, target_id=best[0], weight=best[1]))
                logger.debug(f"[INGEST] waypoint {mem.id} -> {best[0]} ({best[1]:.3f})")
        return mem

    def _changed(self):
        if self.on_change: self.on_change()
