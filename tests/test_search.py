import asyncio

import httpx
import pytest

from cortexmem.ai.ollama import OllamaAdapter
from cortexmem.core.constants import DAY_MS
from cortexmem.core.types import ClassificationResult, SearchFilters, Sector, Waypoint
from cortexmem.memory.embed import AdapterEmbeddingService
from cortexmem.memory.search import HybridMemorySearch
from cortexmem.utils.vectors import now
from conftest import BagEmbedder, DownEmbedder, make_memory

class SemanticOnly:
    def classify(self, text, metadata=None):
        return ClassificationResult(primary=Sector.semantic)

def searcher(store, embedder):
    return HybridMemorySearch(store, embedder, classifier=SemanticOnly())

async def seed(store, embedder, *texts, **kw):
    ms = [make_memory(t, embedder, **kw) for t in texts]
    await store.save_memories(ms)
    return ms

@pytest.mark.asyncio
async def test_blank_query_returns_nothing(store, embedder):
    s = searcher(store, embedder)
    await seed(store, embedder, "dark mode ui")
    assert await s.search("   ") == []
    assert await s.search("dark", limit=0) == []
    assert len(s.cache) == 0
    assert embedder.calls == []

@pytest.mark.asyncio
async def test_results_are_ranked_and_bounded(store, embedder):
    s = searcher(store, embedder)
    await seed(store, embedder, "dark mode ui", "user prefers dark mode", "coffee with tea", "python project meeting")

    res = await s.search("dark mode", limit=3)
    assert 0 < len(res) <= 3
    scores = [r.score for r in res]
    assert scores == sorted(scores, reverse=True)
    assert all(0.0 < x < 1.0 for x in scores)
    assert "dark" in res[0].memory.content
    assert all(r.path == [r.memory.id] for r in res)

@pytest.mark.asyncio
async def test_search_reinforces_returned_memories(store, embedder):
    s = searcher(store, embedder)
    m, other = await seed(store, embedder, "dark mode ui", "berlin tea", salience=0.5)

    res = await s.search("dark mode")
    assert [r.memory.id for r in res] == [m.id]
    assert (await store.get_memory(m.id)).salience == pytest.approx(0.6)
    assert (await store.get_memory(other.id)).salience == pytest.approx(0.5)

@pytest.mark.asyncio
async def test_repeat_search_hits_cache(store, embedder):
    s = searcher(store, embedder)
    m, = await seed(store, embedder, "dark mode ui", salience=0.5)

    first = await s.search("dark mode")
    second = await s.search("dark mode")
    assert second == first
    assert second is not first
    # callers own the list they get back
    second.clear()
    assert await s.search("dark mode") == first
    assert len(embedder.calls) == 1
    # the cached call does not reinforce again
    assert (await store.get_memory(m.id)).salience == pytest.approx(0.6)

    s.invalidate_cache()
    await s.search("dark mode")
    assert len(embedder.calls) == 2

@pytest.mark.asyncio
async def test_cached_result_survives_store_changes(store, embedder):
    s = searcher(store, embedder)
    m, = await seed(store, embedder, "dark mode ui", salience=0.5)

    first = await s.search("dark mode")
    await seed(store, embedder, "dark mode user")
    await store.boost_salience(m.id, 0.3)

    again = await s.search("dark mode")
    assert [r.memory.id for r in again] == [m.id]
    assert again == first
    assert len(embedder.calls) == 1

@pytest.mark.asyncio
async def test_cancelled_search_applies_no_reinforcement(store, embedder):
    s = searcher(store, embedder)
    m, = await seed(store, embedder, "dark mode ui", salience=0.5)
    planning = asyncio.Event()

    async def stalled(top, all_wps):
        planning.set()
        await asyncio.Event().wait()

    s._reinforcement_plan = stalled
    task = asyncio.create_task(s.search("dark mode"))
    await planning.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert (await store.get_memory(m.id)).salience == pytest.approx(0.5)
    assert len(s.cache) == 0

@pytest.mark.asyncio
async def test_different_filters_do_not_share_cache(store, embedder):
    s = searcher(store, embedder)
    await seed(store, embedder, "dark mode ui", sector=Sector.emotional)

    assert len(await s.search("dark mode")) == 1
    assert await s.search("dark mode", filters=SearchFilters(sectors=[Sector.procedural])) == []

@pytest.mark.asyncio
async def test_sector_filter(store, embedder):
    s = searcher(store, embedder)
    await seed(store, embedder, "dark mode ui", sector=Sector.semantic)
    emo, = await seed(store, embedder, "dark mode user", sector=Sector.emotional)

    res = await s.search("dark mode", filters=SearchFilters(sectors=[Sector.emotional]))
    assert [r.memory.id for r in res] == [emo.id]

@pytest.mark.asyncio
async def test_min_salience_filter(store, embedder):
    s = searcher(store, embedder)
    await seed(store, embedder, "dark mode ui", salience=0.1)
    strong, = await seed(store, embedder, "dark mode user", salience=0.9)

    res = await s.search("dark mode", filters=SearchFilters(min_salience=0.5))
    assert [r.memory.id for r in res] == [strong.id]

@pytest.mark.asyncio
async def test_min_salience_uses_each_memorys_decay_rate(store, embedder):
    s = searcher(store, embedder)
    old = now() - 200 * DAY_MS
    steady, = await seed(store, embedder, "dark mode ui", salience=0.9, last_seen_at=old, decay_lambda=0.0)
    await seed(store, embedder, "dark mode user", salience=0.9, last_seen_at=old, decay_lambda=0.05)
    # the newest segment does not decay
    frozen, = await seed(store, embedder, "dark mode", salience=0.9, last_seen_at=old, decay_lambda=0.05, segment=1)

    res = await s.search("dark mode", filters=SearchFilters(min_salience=0.5))
    assert {r.memory.id for r in res} == {steady.id, frozen.id}

@pytest.mark.asyncio
async def test_expired_and_forgotten_memories_are_excluded(store, embedder):
    s = searcher(store, embedder)
    gone, = await seed(store, embedder, "dark mode ui", expires_at=now() - 1000)
    forgotten, = await seed(store, embedder, "dark mode user")
    await store.forget_memory(forgotten.id)

    assert await s.search("dark mode") == []

@pytest.mark.asyncio
async def test_debug_breakdown(store, embedder):
    s = searcher(store, embedder)
    await seed(store, embedder, "dark mode ui", tags=["ui"])

    res = await s.search("dark mode ui", filters=SearchFilters(debug=True))
    d = res[0].debug
    assert d is not None
    assert d.sector_penalty == 1.0
    assert d.similarity_adjusted == pytest.approx(1.0)
    assert d.tag_match == 1.0
    assert (await s.search("dark mode ui"))[0].debug is None

@pytest.mark.asyncio
async def test_weak_hits_expand_through_waypoints(store, embedder):
    """A weak vector match pulls in its linked memories and passes salience on to their neighbours."""
    s = searcher(store, embedder)
    seed_m, = await seed(store, embedder, "dark mode")
    nbr, = await seed(store, embedder, "berlin tea", salience=0.5)
    far, = await seed(store, embedder, "python project", salience=0.1)
    await store.save_waypoint(Waypoint(source_id=seed_m.id, target_id=nbr.id, weight=0.5))
    await store.save_waypoint(Waypoint(source_id=nbr.id, target_id=far.id, weight=1.0))

    # cosine("dark coffee", "dark mode") = 0.5, below the expansion threshold
    res = await s.search("dark coffee")
    by_id = {r.memory.id: r for r in res}

    assert by_id[seed_m.id].path == [seed_m.id]
    assert by_id[nbr.id].path == [seed_m.id, nbr.id]
    assert by_id[far.id].path == [seed_m.id, nbr.id, far.id]

    # nbr: retrieval boost; far: retrieval boost plus 0.2 * (0.6 - 0.1) from nbr
    assert (await store.get_memory(nbr.id)).salience == pytest.approx(0.6)
    assert (await store.get_memory(far.id)).salience == pytest.approx(0.3)

    # co-retrieved edges strengthen
    assert (await store.get_waypoint(seed_m.id, nbr.id)).weight == pytest.approx(0.55)
    assert (await store.get_waypoint(nbr.id, far.id)).weight == pytest.approx(1.0)

@pytest.mark.asyncio
async def test_strong_hits_skip_expansion(store, embedder):
    s = searcher(store, embedder)
    seed_m, = await seed(store, embedder, "dark mode")
    nbr, = await seed(store, embedder, "berlin tea")
    await store.save_waypoint(Waypoint(source_id=seed_m.id, target_id=nbr.id, weight=1.0))

    res = await s.search("dark mode")
    assert [r.memory.id for r in res] == [seed_m.id]

@pytest.mark.asyncio
async def test_keyword_fallback_when_embedding_is_down(store, embedder):
    await seed(store, embedder, "User prefers dark mode", "User drinks coffee", salience=0.5)
    s = searcher(store, DownEmbedder())

    res = await s.search("dark mode")
    assert len(res) == 1
    r = res[0]
    assert r.memory.content == "User prefers dark mode"
    assert r.score == 0.5
    assert r.path == [r.memory.id]

    assert (await store.get_memory(r.memory.id)).salience == pytest.approx(0.5)
    assert len(s.cache) == 0

@pytest.mark.asyncio
async def test_keyword_fallback_when_provider_returns_garbage(store, embedder, monkeypatch):
    await seed(store, embedder, "User prefers dark mode", "User drinks coffee", salience=0.5)

    async def html_post(self, url, **kwargs):
        return httpx.Response(200, text="<html>gateway</html>", request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", html_post)
    ollama = AdapterEmbeddingService(OllamaAdapter(base_url="http://ollama.test"))
    s = HybridMemorySearch(store, ollama, classifier=SemanticOnly())

    res = await s.search("dark mode")
    assert [r.memory.content for r in res] == ["User prefers dark mode"]
    assert res[0].score == 0.5

@pytest.mark.asyncio
async def test_context_for_prompt(store, embedder):
    s = searcher(store, embedder)
    assert await s.get_context_for_prompt("dark mode") is None

    await seed(store, embedder, "dark mode ui", "user prefers dark mode")
    s.invalidate_cache()
    ctx = await s.get_context_for_prompt("dark mode", limit=2)
    lines = ctx.split("\n")
    assert len(lines) == 2
    assert all(line.startswith("- ") for line in lines)
