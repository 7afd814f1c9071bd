import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ..core.config import env
from ..core.constants import SEARCH_PARAMS, SCORING_WEIGHTS, REINFORCEMENT, sector_relationship
from ..core.errors import EmbeddingUnavailable, ClassificationUnavailable
from ..core.store import MemoryStore
from ..core.types import (ExtractedMemory, HybridSearchResult, SearchDebugInfo, SearchFilters, ScoringWeights,
                          ClassificationResult, Sector, Waypoint, WaypointHop)
from ..utils.cache import TTLCache
from ..utils.keyword import strip_intent, query_keywords, keyword_bonus, tag_match_score, keyword_filter_memories
from ..utils.text import content_tokens
from ..utils.vectors import cos_sim, now
from .classify import SectorClassifier, RegexSectorClassifier
from .embed import EmbeddingService
from .salience import calc_decay, calc_recency_score, compute_hybrid_score, reinforce_on_retrieval
from .simhash import compute_token_overlap
from .waypoints import expand_via_waypoints, propagate_reinforcement

logger = logging.getLogger("hsg")

CacheKey = Tuple

def _passes(m: ExtractedMemory, f: Optional[SearchFilters], ts: int, max_seg: int = 0) -> bool:
    if not m.is_active or m.is_expired(ts): return False
    if f is None: return True
    if f.sectors and m.sector not in f.sectors: return False
    if f.min_salience is not None:
        sal = calc_decay(m.sector, m.salience, m.last_seen_at, m.segment, max_seg, now=ts, lam=m.decay_lambda)
        if sal < f.min_salience: return False
    if f.start_time is not None and m.created_at < f.start_time: return False
    if f.end_time is not None and m.created_at > f.end_time: return False
    return True

class HybridMemorySearch:
    """Multi-signal retrieval over a MemoryStore.

    Scoring blends vector similarity (weighted by how related the query's and
    memory's sectors are), token overlap, waypoint expansion weight, recency
    and tag matches, plus a small keyword bonus, squashed through a sigmoid.

    Searching is not read-only: every returned memory gets a salience boost,
    memories reached through waypoints pass some of it on to their neighbours,
    and edges between co-retrieved results are strengthened.
    """

    def __init__(self, store: MemoryStore, embedder: EmbeddingService, classifier: Optional[SectorClassifier] = None,
                 cache: Optional[TTLCache] = None, weights: ScoringWeights = SCORING_WEIGHTS):
        self.store = store
        self.embedder = embedder
        self.classifier = classifier or RegexSectorClassifier()
        self.cache: TTLCache[Tuple[HybridSearchResult, ...]] = cache or TTLCache(env.cache_ttl_ms, env.cache_max_entries)
        self.weights = weights

    def invalidate_cache(self):
        self.cache.clear()

    def _cache_key(self, q: str, limit: int, f: Optional[SearchFilters]) -> CacheKey:
        if f is None: return (q, limit, None)
        secs = tuple(sorted(s.value for s in f.sectors)) if f.sectors else None
        return (q, limit, secs, f.min_salience, f.start_time, f.end_time, f.debug)

    async def _max_segment(self, f: Optional[SearchFilters]) -> int:
        # only the decayed-salience filter needs it
        if f is None or f.min_salience is None: return 0
        return await self.store.max_segment()

    def _classify(self, text: str) -> ClassificationResult:
        try:
            return self.classifier.classify(text)
        except ClassificationUnavailable as e:
            logger.warning(f"[HSG] classifier unavailable, assuming semantic: {e}")
            return ClassificationResult(primary=Sector.semantic, confidence=0.2)

    async def search(self, query: str, limit: int = 10, filters: Optional[SearchFilters] = None) -> List[HybridSearchResult]:
        """Ranked memories for query, best first.

        Side effect: boosts the stored salience of everything returned (see class docs).
        Repeating the same search within the cache TTL returns the cached list unchanged.
        """
        qt = query.strip()
        if not qt or limit <= 0: return []

        key = self._cache_key(qt, limit, filters)
        hit = self.cache.get(key)
        if hit is not None:
            logger.debug(f"[HSG] cache hit for {qt!r}")
            return list(hit)

        core = strip_intent(qt) or qt.lower()
        keywords = query_keywords(core)
        qc = self._classify(core)

        try:
            q_vec, _ = await self.embedder.embed(core)
        except EmbeddingUnavailable as e:
            logger.warning(f"[HSG] embedding failed, falling back to keyword search: {e}")
            return await self._fallback(qt, core, keywords, limit, filters)

        ts = now()
        max_seg = await self._max_segment(filters)

        # vector candidates
        hits = await self.store.search_by_embedding(q_vec, top_k=SEARCH_PARAMS["candidate_factor"] * limit,
                                                    min_score=SEARCH_PARAMS["min_vector_score"])
        cands: Dict[str, ExtractedMemory] = {}
        sims: Dict[str, float] = {}
        for m, s in hits:
            cands[m.id] = m
            sims[m.id] = s

        # keyword candidates
        per_kw = max(1, limit // 2)
        for kw in keywords[:SEARCH_PARAMS["max_keywords"]]:
            for m in await self.store.search_memories(kw, limit=per_kw):
                cands.setdefault(m.id, m)

        # waypoint expansion when the vector hits are weak
        hops: Dict[str, WaypointHop] = {}
        all_wps: Optional[List[Waypoint]] = None
        avg_top = sum(sims.values()) / len(sims) if sims else 0.0
        if sims and avg_top < SEARCH_PARAMS["confidence_threshold"]:
            all_wps = await self.store.fetch_all_waypoints()
            exp = expand_via_waypoints(list(sims), all_wps, SEARCH_PARAMS["expansion_factor"] * limit)
            hops = {h.id: h for h in exp}
            missing = [h.id for h in exp if h.id not in cands]
            cands.update(await self.store.get_memories(missing))
            logger.debug(f"[HSG] avg sim {avg_top:.3f}, expanded {len(exp)} via waypoints")

        q_toks = content_tokens(core)
        q_words = set(keywords)
        results = []
        for mid, m in cands.items():
            if not _passes(m, filters, ts, max_seg): continue

            sim = sims.get(mid)
            if sim is None:
                sim = cos_sim(q_vec, m.embedding) if m.embedding else 0.0
            penalty = sector_relationship(qc.primary, m.sector)
            adj = sim * penalty

            hop = hops.get(mid)
            ww = min(1.0, max(0.0, hop.weight)) if hop else 0.0
            tok_ov = compute_token_overlap(q_toks, content_tokens(m.content))
            kw = keyword_bonus(qt, m.content, SEARCH_PARAMS["keyword_weight"])
            rec = calc_recency_score(m.last_seen_at, now=ts)
            tag = tag_match_score(q_words, m.tags)

            score = compute_hybrid_score(adj, tok_ov, ww, rec, tag, kw, self.weights)
            dbg = None
            if filters and filters.debug:
                dbg = SearchDebugInfo(similarity_adjusted=adj, token_overlap=tok_ov, recency_score=rec,
                                      waypoint_weight=ww, tag_match=tag, sector_penalty=penalty, keyword_boost=kw)
            results.append(HybridSearchResult(memory=m, score=score, path=list(hop.path) if hop else [mid], debug=dbg))

        results.sort(key=lambda r: r.score, reverse=True)
        top = results[:limit]

        if top:
            boosts, edge_boosts = await self._reinforcement_plan(top, all_wps)
            # once started the batch runs to completion even if the caller is cancelled
            await asyncio.shield(self.store.apply_reinforcement(boosts, edge_boosts))

        self.cache.set(key, tuple(top))
        return top

    async def _reinforcement_plan(self, top: List[HybridSearchResult], all_wps: Optional[List[Waypoint]]
                                  ) -> Tuple[Dict[str, float], Dict[Tuple[str, str], float]]:
        boost = REINFORCEMENT["salience_boost"]
        boosts: Dict[str, float] = {r.memory.id: boost for r in top}

        expanded = [r for r in top if len(r.path) > 1]
        ids = {r.memory.id for r in top}
        if all_wps is None:
            all_wps = await self.store.fetch_all_waypoints()

        if expanded:
            tgt_ids = list({wp.target_id for r in expanded for wp in all_wps if wp.source_id == r.memory.id})
            linked = await self.store.get_memories(tgt_ids)
            cur = {mid: m.salience for mid, m in linked.items()}
            for r in expanded:
                src_sal = reinforce_on_retrieval(r.memory.salience)
                for tid, new in propagate_reinforcement(r.memory.id, src_sal, all_wps, cur):
                    d = new - cur[tid]
                    if d > 0: boosts[tid] = boosts.get(tid, 0.0) + d

        edge_boosts = {(wp.source_id, wp.target_id): REINFORCEMENT["waypoint_boost"]
                       for wp in all_wps if wp.source_id in ids and wp.target_id in ids}
        return boosts, edge_boosts

    async def _fallback(self, qt: str, core: str, keywords: List[str], limit: int,
                        filters: Optional[SearchFilters]) -> List[HybridSearchResult]:
        ts = now()
        max_seg = await self._max_segment(filters)
        found: Dict[str, ExtractedMemory] = {}
        for m in await self.store.search_memories(qt):
            found.setdefault(m.id, m)
        for kw in keywords[:3]:
            for m in await self.store.search_memories(kw):
                found.setdefault(m.id, m)
        if len(found) < limit:
            rest = [m for m in await self.store.fetch_all_memories() if m.id not in found]
            scores = keyword_filter_memories(core, rest)
            for m in sorted((m for m in rest if m.id in scores), key=lambda m: scores[m.id], reverse=True):
                found[m.id] = m

        out = [HybridSearchResult(memory=m, score=SEARCH_PARAMS["fallback_score"], path=[m.id])
               for m in found.values() if _passes(m, filters, ts, max_seg)]
        return out[:limit]

    async def quick_search(self, query: str, limit: int = 5) -> List[ExtractedMemory]:
        return [r.memory for r in await self.search(query, limit)]

    async def get_context_for_prompt(self, query: str, limit: int = 3) -> Optional[str]:
        mems = await self.quick_search(query, limit)
        if not mems: return None
        return "\n".join(f"- {m.content}" for m in mems)
