import unicodedata

import httpx
import pytest

from cortexmem.ai.adapter import AIAdapter
from cortexmem.ai.ollama import OllamaAdapter
from cortexmem.ai.synthetic import SyntheticAdapter
from cortexmem.core.config import env
from cortexmem.core.errors import EmbeddingUnavailable
from cortexmem.core.types import Sector
from cortexmem.memory.classify import RegexSectorClassifier, classify_content
from cortexmem.memory.embed import AdapterEmbeddingService, get_embedding_service
from cortexmem.memory.simhash import compute_simhash
from cortexmem.utils.cache import TTLCache
from cortexmem.utils.keyword import strip_intent, query_keywords, keyword_bonus, tag_match_score, keyword_filter_memories
from cortexmem.utils.text import content_tokens
from cortexmem.utils.vectors import cos_sim, vec_to_buf, buf_to_vec
from conftest import make_memory

class Clock:
    def __init__(self):
        self.t = 0

    def __call__(self):
        return self.t

def test_cache_expires_after_ttl():
    clk = Clock()
    c = TTLCache(ttl_ms=1000, max_entries=10, clock=clk)
    c.set("q", [1])
    clk.t = 999
    assert c.get("q") == [1]
    clk.t = 1000
    assert c.get("q") is None
    assert len(c) == 0

def test_cache_evicts_least_recently_used():
    c = TTLCache(ttl_ms=10_000, max_entries=2, clock=Clock())
    c.set("a", 1)
    c.set("b", 2)
    c.get("a")
    c.set("c", 3)
    assert "a" in c and "c" in c
    assert "b" not in c
    c.clear()
    assert len(c) == 0

def test_strip_intent_and_keywords():
    assert strip_intent("Can you tell me about   Berlin?") == "berlin?"
    assert query_keywords("what is the dark-mode setting in my editor") == ["dark", "mode", "setting", "editor"]
    assert query_keywords("a I") == []

def test_keyword_bonus():
    assert keyword_bonus("dark mode", "User prefers dark mode") == pytest.approx(0.15)
    assert keyword_bonus("dark mode", "coffee") == 0.0
    assert keyword_bonus("", "coffee") == 0.0

def test_tag_match_score():
    assert tag_match_score({"ui", "dark"}, ["ui"]) == 1.0
    assert tag_match_score({"editors"}, ["editor"]) == 0.5
    assert tag_match_score({"ui"}, []) == 0.0

def test_keyword_filter_prefers_phrase_hits():
    docs = [make_memory("User prefers dark mode", id="hit"), make_memory("Weekly budget spreadsheet", id="miss")]
    scores = keyword_filter_memories("dark mode", docs)
    assert "hit" in scores and "miss" not in scores

def test_content_tokens_handle_unicode():
    assert content_tokens("Café in München, the best!") == {"café", "münchen", "best"}

def test_decomposed_accents_tokenize_like_composed():
    nfc = "Café in München"
    nfd = unicodedata.normalize("NFD", nfc)
    assert nfd != nfc
    assert content_tokens(nfd) == content_tokens(nfc) == {"café", "münchen"}
    assert compute_simhash(nfd) == compute_simhash(nfc)
    # a mark with no precomposed form stays on its word
    assert content_tokens("xq\u0301z note") == {"xq\u0301z", "note"}

def test_vector_helpers():
    v = [0.25, -1.5, 3.0]
    assert buf_to_vec(vec_to_buf(v)) == pytest.approx(v)
    assert cos_sim([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0
    assert cos_sim([0.0, 0.0], [1.0, 0.0]) == 0.0

def test_classifier_metadata_override():
    r = RegexSectorClassifier().classify("anything at all", {"sector": "episodic"})
    assert r.primary == Sector.episodic and r.confidence == 1.0
    r = RegexSectorClassifier().classify("zzz", {"sector": "bogus"})
    assert r.primary == Sector.semantic

def test_classifier_patterns():
    r = classify_content("We met yesterday at the planning meeting")
    assert r.primary == Sector.episodic
    assert 0.0 < r.confidence <= 1.0
    none = classify_content("zzz qqq")
    assert none.primary == Sector.semantic and none.confidence == 0.2 and none.additional == []

@pytest.mark.asyncio
async def test_synthetic_embeddings_fold_synonyms():
    svc = AdapterEmbeddingService(SyntheticAdapter(dim=256))
    a, model = await svc.embed("User prefers dark mode")
    b, _ = await svc.embed("person likes night theme")
    c, _ = await svc.embed("quarterly tax filing deadline")

    assert model == "synthetic-256"
    assert len(a) == 256
    assert a == (await svc.embed("User prefers dark mode"))[0]
    assert cos_sim(a, b) > cos_sim(a, c)

class BrokenAdapter(AIAdapter):
    embed_model = "broken-1"

    def __init__(self, reply=None):
        self.reply = reply

    async def chat(self, messages, model=None, **kwargs):
        raise NotImplementedError

    async def embed(self, text, model=None):
        if self.reply is None: raise httpx.ConnectError("no route to host")
        return self.reply

    async def embed_batch(self, texts, model=None):
        return [await self.embed(t) for t in texts]

@pytest.mark.asyncio
async def test_embedding_failures_surface_as_unavailable():
    with pytest.raises(EmbeddingUnavailable):
        await AdapterEmbeddingService(BrokenAdapter()).embed("x")
    with pytest.raises(EmbeddingUnavailable):
        await AdapterEmbeddingService(BrokenAdapter(reply=[])).embed("x")

@pytest.mark.asyncio
async def test_non_json_embedding_body_is_unavailable(monkeypatch):
    async def html_post(self, url, **kwargs):
        return httpx.Response(200, text="<html>gateway</html>", request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", html_post)
    with pytest.raises(EmbeddingUnavailable):
        await AdapterEmbeddingService(OllamaAdapter(base_url="http://ollama.test")).embed("x")

def test_openai_without_key_falls_back_to_synthetic(monkeypatch):
    monkeypatch.setattr(env, "openai_key", "")
    svc = get_embedding_service("openai")
    assert isinstance(svc.adapter, SyntheticAdapter)
    assert isinstance(get_embedding_service("nonsense").adapter, SyntheticAdapter)
