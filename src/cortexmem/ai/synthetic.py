import math
from collections import Counter
from typing import List, Dict, Optional
import numpy as np
from .adapter import AIAdapter
from ..utils.text import canonical_tokens_from_text, synonyms_for

def fnv1a(s: str) -> int:
    h = 0x811c9dc5
    for c in s:
        h = ((h ^ ord(c)) * 16777619) & 0xffffffff
    return h

def mix32(s: str, seed: int = 0xdeadbeef) -> int:
    h = seed
    for c in s:
        h = ((h ^ ord(c)) * 0x5bd1e995) & 0xffffffff
        h ^= h >> 13
    return h

class SyntheticAdapter(AIAdapter):
    """Deterministic, offline hashed-feature embeddings.

    Texts sharing canonical tokens (after stemming and synonym folding) land
    close together, which is enough for local use and tests. There is no chat
    model behind it.
    """

    def __init__(self, dim: int = 768, namespace: str = "semantic"):
        self.dim = dim
        self.namespace = namespace
        self.embed_model = f"synthetic-{dim}"

    async def chat(self, messages: List[Dict[str, str]], model: Optional[str] = None, **kwargs) -> str:
        raise NotImplementedError("synthetic adapter has no chat model")

    async def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        return self.vector(text)

    async def embed_batch(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        return [self.vector(t) for t in texts]

    def _feat(self, v: np.ndarray, key: str, w: float):
        k = f"{self.namespace}|{key}"
        h = fnv1a(k)
        sign = -1.0 if h & 1 else 1.0
        v[h % self.dim] += sign * w
        v[mix32(k) % self.dim] += sign * w * 0.5

    def vector(self, text: str) -> List[float]:
        toks = canonical_tokens_from_text(text)
        if not toks:
            return [1.0 / math.sqrt(self.dim)] * self.dim

        # each token also votes for its synonym group
        bag = Counter(s for t in toks for s in {t} | set(synonyms_for(t)))
        n = sum(bag.values())

        v = np.zeros(self.dim, dtype=np.float32)
        for tok, c in bag.items():
            w = (c / n) * math.log(1 + n / c) + 1
            self._feat(v, f"tok|{tok}", w)
            for i in range(len(tok) - 2):
                self._feat(v, f"c3|{tok[i:i+3]}", w * 0.4)

        for i, (a, b) in enumerate(zip(toks, toks[1:])):
            self._feat(v, f"bi|{a}_{b}", 1.4 / (1.0 + i * 0.1))

        norm = float(np.linalg.norm(v))
        if norm > 0: v /= norm
        return v.tolist()
