import logging
from typing import List, Optional, Protocol, Tuple

import httpx
import openai

from ..core.config import env
from ..core.models import get_model
from ..core.errors import EmbeddingUnavailable
from ..ai.adapter import AIAdapter
from ..ai.synthetic import SyntheticAdapter

logger = logging.getLogger("embed")

class EmbeddingService(Protocol):
    async def embed(self, text: str) -> Tuple[List[float], str]:
        """Vector for text plus the id of the model that produced it. Raises EmbeddingUnavailable."""
        ...

class AdapterEmbeddingService:
    def __init__(self, adapter: AIAdapter, model: Optional[str] = None):
        self.adapter = adapter
        self.model = model or adapter.embed_model

    async def embed(self, text: str) -> Tuple[List[float], str]:
        try:
            v = [float(x) for x in await self.adapter.embed(text, model=self.model)]
        except (openai.OpenAIError, httpx.HTTPError, KeyError, IndexError, ValueError, TypeError) as e:
            # a 200 with a non-JSON body surfaces as ValueError
            logger.warning(f"[EMBED] {self.model} failed: {e}")
            raise EmbeddingUnavailable(str(e)) from e
        if not v:
            raise EmbeddingUnavailable(f"{self.model} returned an empty vector")
        return v, self.model

def get_embedding_service(kind: Optional[str] = None) -> EmbeddingService:
    k = (kind or env.emb_kind or "synthetic").lower()
    if k == "openai":
        if env.openai_key:
            from ..ai.openai import OpenAIAdapter
            return AdapterEmbeddingService(OpenAIAdapter(embed_model=env.openai_embedding_model or get_model("openai")))
        logger.warning("[EMBED] CM_EMBED_KIND=openai but no API key, using synthetic embeddings")
    elif k == "ollama":
        from ..ai.ollama import OllamaAdapter
        return AdapterEmbeddingService(OllamaAdapter(embed_model=env.ollama_embedding_model or get_model("ollama")))
    elif k != "synthetic":
        logger.warning(f"[EMBED] unknown embedding provider {k!r}, using synthetic")
    return AdapterEmbeddingService(SyntheticAdapter(env.vec_dim or 768))
