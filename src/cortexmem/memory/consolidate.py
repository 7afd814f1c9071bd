import logging
from typing import List, NamedTuple, Optional

from ..core.constants import CONSOLIDATE_PARAMS, REINFORCEMENT
from ..core.store import MemoryStore
from ..core.types import ExtractedMemory, ExtractedMemoryData, MergeDecision, MergeDecisionKind, SourceProvenance
from ..ai.llm import LLMService
from .simhash import compute_simhash

logger = logging.getLogger("consolidate")

SYSTEM_PROMPT = "You are a memory consolidation system. Deduplicate while preserving details in the third person (e.g., 'User...')."

MERGE_PROMPT = """Compare these two memories about the same user:

EXISTING MEMORY:
Content: {existing.content}
Type: {existing.type.value}
Confidence: {existing.confidence}

NEW MEMORY:
Content: {new.content}
Type: {new.type.value}
Confidence: {new.confidence}

TASK: Determine the relationship.

OPTIONS:
1. duplicate: Same info, rephrased
2. update: New info is more current/accurate
3. enrich: Combine details naturally. ALWAYS use third person (e.g., "User...") even if inputs use "I".
4. strengthen: Same info, boosts confidence
5. separate: Different enough to keep both

Respond with JSON:
{{
    "decision": "duplicate|update|enrich|strengthen|separate",
    "reason": "Brief explanation",
    "mergedContent": "Natural combination in third person (starting with 'User...') if enrich",
    "newConfidence": 0.0-1.0
}}"""

class Resolution(NamedTuple):
    handled: bool
    decision: Optional[MergeDecisionKind]
    existing_id: Optional[str]

def _union(a: List[str], b: List[str]) -> List[str]:
    return list(dict.fromkeys(a + b))

class MemoryConsolidator:
    def __init__(self, store: MemoryStore, llm: LLMService):
        self.store = store
        self.llm = llm

    async def decide_merge_strategy(self, new: ExtractedMemoryData, existing: ExtractedMemory) -> MergeDecision:
        prompt = MERGE_PROMPT.format(existing=existing, new=new)
        return await self.llm.complete_json(prompt, SYSTEM_PROMPT, MergeDecision)

    async def find_similar_memories(self, embedding: List[float]) -> List[ExtractedMemory]:
        hits = await self.store.search_by_embedding(embedding, top_k=CONSOLIDATE_PARAMS["top_k"],
                                                    min_score=CONSOLIDATE_PARAMS["min_similarity"])
        return [m for m, _ in hits]

    async def consolidate(self, new: ExtractedMemoryData, embedding: List[float], provenance: SourceProvenance) -> bool:
        """Fold a candidate into an existing near-duplicate if the LLM says so.

        Returns True when the candidate has been absorbed (duplicate, enrich,
        strengthen) and must not be saved; False when the caller should persist
        it (no match, all separate, or update, which has already removed the
        outdated memory). LLM errors propagate.
        """
        return (await self.resolve(new, embedding, provenance)).handled

    async def resolve(self, new: ExtractedMemoryData, embedding: List[float], provenance: SourceProvenance) -> Resolution:
        for existing in await self.find_similar_memories(embedding):
            d = await self.decide_merge_strategy(new, existing)
            if d.decision == MergeDecisionKind.separate: continue
            handled = await self._apply(d, new, embedding, provenance, existing)
            return Resolution(handled, d.decision, existing.id)
        return Resolution(False, None, None)

    async def _apply(self, d: MergeDecision, new: ExtractedMemoryData, embedding: List[float],
                     provenance: SourceProvenance, existing: ExtractedMemory) -> bool:
        if d.decision == MergeDecisionKind.duplicate:
            logger.info(f"[CONSOLIDATE] Duplicate of {existing.id}, skipping: {new.content[:60]}")
            await self.store.boost_salience(existing.id, REINFORCEMENT["duplicate_boost"])
            return True

        if d.decision == MergeDecisionKind.update:
            logger.info(f"[CONSOLIDATE] Superseding {existing.id} (source {provenance.source_memory_id})")
            await self.store.delete_memory(existing.id)
            return False

        if d.decision == MergeDecisionKind.enrich:
            content = d.merged_content or new.content
            logger.info(f"[CONSOLIDATE] Enriching {existing.id}")
            await self.store.replace_memory(existing.model_copy(update={
                "content": content,
                "type": new.type,
                "confidence": d.new_confidence,
                "tags": _union(existing.tags, new.tags),
                "expires_at": new.expires_at,
                "related_memory_ids": existing.related_memory_ids + [existing.id],
                "embedding": list(embedding),
                "embedding_model": existing.embedding_model,
                "simhash": compute_simhash(content),
            }))
            return True

        # strengthen
        logger.info(f"[CONSOLIDATE] Strengthening {existing.id} to {d.new_confidence:.2f}")
        await self.store.replace_memory(existing.model_copy(update={"confidence": d.new_confidence}))
        return True
