import json
import math
import re
from typing import Dict, List, Optional

import pytest

from cortexmem.ai.adapter import AIAdapter
from cortexmem.ai.llm import LLMService
from cortexmem.core.db import DB
from cortexmem.core.errors import EmbeddingUnavailable
from cortexmem.core.store import MemoryStore
from cortexmem.core.types import ExtractedMemory, MemoryType, Sector

VOCAB = ["dark", "mode", "user", "python", "coffee", "meeting", "project", "ui", "tea", "berlin"]

class BagEmbedder:
    """Bag of words over a tiny fixed vocabulary; lets tests pick similarities by choosing words."""

    model = "bag-10"

    def __init__(self):
        self.calls: List[str] = []

    def vec(self, text: str) -> List[float]:
        words = re.findall(r"[a-z]+", text.lower())
        v = [float(sum(1 for w in words if w == t)) for t in VOCAB]
        n = math.sqrt(sum(x * x for x in v))
        if n == 0:
            return [1.0 / math.sqrt(len(VOCAB))] * len(VOCAB)
        return [x / n for x in v]

    async def embed(self, text: str):
        self.calls.append(text)
        return self.vec(text), self.model

class DownEmbedder:
    async def embed(self, text: str):
        raise EmbeddingUnavailable("provider offline")

class ScriptedAdapter(AIAdapter):
    """Chat adapter that replays canned replies and records what it was sent."""

    def __init__(self, replies: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls: List[List[Dict[str, str]]] = []

    async def chat(self, messages, model=None, **kwargs) -> str:
        self.calls.append(messages)
        if self.error: raise self.error
        return self.replies.pop(0)

    async def embed(self, text, model=None):
        raise NotImplementedError

    async def embed_batch(self, texts, model=None):
        raise NotImplementedError

def decision(kind: str, conf: float = 0.9, merged: Optional[str] = None) -> str:
    d = {"decision": kind, "reason": "test", "newConfidence": conf}
    if merged is not None: d["mergedContent"] = merged
    return json.dumps(d)

def llm_with(*replies: str) -> LLMService:
    return LLMService(ScriptedAdapter(list(replies)), model="test-model")

@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'mem.db'}"

@pytest.fixture
def store(db_url):
    s = MemoryStore(DB(db_url), seg_size=100)
    yield s
    s.close()

@pytest.fixture
def embedder():
    return BagEmbedder()

def make_memory(content: str, embedder: Optional[BagEmbedder] = None, **kw) -> ExtractedMemory:
    base = dict(content=content, type=MemoryType.fact, source_memory_id=kw.pop("source_memory_id", "raw-1"),
                source_app="tests")
    if embedder is not None:
        base["embedding"] = embedder.vec(content)
        base["embedding_model"] = embedder.model
    base.update(kw)
    return ExtractedMemory(**base)
