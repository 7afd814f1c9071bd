import pytest
import asyncio
import time
from unittest.mock import patch

from cortexmem import Memory
from cortexmem.core.types import ExtractedMemoryData, SourceProvenance
from conftest import BagEmbedder

# ==================================================================================
# OMNIBUS DEEP TEST
# ==================================================================================
# 1. Evolutionary Stability: Long-term simulation of popular vs unpopular memories.
# 2. Tag Preservation: tags survive storage and retrieval.
# 3. Format Robustness: HTML/JSON/Markdown integrity.
# ==================================================================================

PROV = SourceProvenance(source_memory_id="omnibus", source_app="tests")

def fresh(db_url) -> Memory:
    return Memory(db_url=db_url, embedder=BagEmbedder(), consolidate=False)

@pytest.mark.asyncio
async def test_evolutionary_stability(db_url):
    """
    Simulate 10 generations.
    Create 1 'Popular' and 1 'Unpopular' memory.
    Recall 'Popular' every other generation.
    Verify 'Popular' thrives while 'Unpopular' stands still.
    """
    mem = fresh(db_url)
    print("\n[Phase 1] Evolutionary Stability (10 Generations)")

    # 1. Genesis
    pop = await mem.add(ExtractedMemoryData(content="Popular python project notes"), PROV)
    unpop = await mem.add(ExtractedMemoryData(content="Unpopular berlin tea notes"), PROV)
    s0_pop = (await mem.get(pop.memory_id)).salience
    s0_unpop = (await mem.get(unpop.memory_id)).salience

    # 2. Evolution Loop
    for gen in range(10):
        # Time Travel: advance 1 day per generation, well past the cache TTL
        future = time.time() + ((gen + 1) * 24 * 3600)
        with patch('time.time', return_value=future):
            if gen % 2 == 0:
                hits = await mem.search("python project", limit=1)
                assert hits[0].memory.id == pop.memory_id

    # 3. Final Judgment
    s_pop = (await mem.get(pop.memory_id)).salience
    s_unpop = (await mem.get(unpop.memory_id)).salience

    print(" -> Generation 10 Results:")
    print(f"    Popular Salience: {s_pop:.4f}")
    print(f"    Unpopular Salience: {s_unpop:.4f}")

    assert s_pop > s_unpop, "Popular memory should have significantly higher salience."
    assert s_pop == pytest.approx(min(1.0, s0_pop + 0.5))
    assert s_unpop == pytest.approx(s0_unpop)
    print(" -> PASS: Survival of the fittest confirmed.")
    mem.close()

@pytest.mark.asyncio
async def test_tag_preservation(db_url):
    """
    Tags attached at ingest come back on search results.
    """
    mem = fresh(db_url)
    print("\n[Phase 2] Tag Preservation")

    await mem.add(ExtractedMemoryData(content="Finish the quarterly report", tags=["work", "urgent"]), PROV)
    await mem.add(ExtractedMemoryData(content="Clean the desk", tags=["work"]), PROV)
    await mem.add(ExtractedMemoryData(content="Pay the electricity bills", tags=["home", "urgent"]), PROV)

    hits = await mem.search("report", limit=10)
    found = any({"work", "urgent"} <= set(h.memory.tags) for h in hits)
    assert found, "Should find item with both tags."

    # a query word naming a tag lifts the tagged memory
    dbg = await mem.search("urgent report", limit=10, debug=True)
    top = next(h for h in dbg if h.memory.content == "Finish the quarterly report")
    assert top.debug.tag_match > 0

    print(" -> PASS: Tags preserved and matched.")
    mem.close()

@pytest.mark.asyncio
async def test_content_robustness(db_url):
    """
    Store and retrieve complex formats: HTML, JSON, Markdown.
    """
    mem = fresh(db_url)
    print("\n[Phase 3] Content Robustness")

    payloads = {
        "HTML": "<div><h1>Title</h1><p>Body</p></div>",
        "JSON": '{"key": "value", "list": [1, 2, 3]}',
        "Markdown": "| Col1 | Col2 |\n|---|---|\n| Val1 | Val2 |"
    }

    for fmt, content in payloads.items():
        res = await mem.add(ExtractedMemoryData(content=content), PROV)
        assert res.action == "created"

        got = await mem.get(res.memory_id)
        assert got.content == content, f"{fmt} was altered in storage"

        hits = await mem.search(content[:10], limit=3)
        assert res.memory_id in [h.memory.id for h in hits], f"{fmt} retrieval failed"
        print(f" -> {fmt}: Verified (Exact Match)")

    print(" -> PASS: Complex formats handled.")
    mem.close()

if __name__ == "__main__":
    import tempfile
    with tempfile.TemporaryDirectory() as d:
        url = f"sqlite:///{d}/omnibus.db"
        asyncio.run(test_evolutionary_stability(url))
