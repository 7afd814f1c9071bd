import httpx
from typing import List, Dict, Optional
from ..core.config import env
from .adapter import AIAdapter

class OllamaAdapter(AIAdapter):
    def __init__(self, base_url: Optional[str] = None, embed_model: Optional[str] = None, timeout: float = 60.0):
        self.base_url = (base_url or env.ollama_url or "http://localhost:11434").rstrip("/")
        self.embed_model = embed_model or env.ollama_embedding_model or "nomic-embed-text"
        self.timeout = timeout

    async def chat(self, messages: List[Dict[str, str]], model: Optional[str] = None, **kwargs) -> str:
        m = model or env.llm_model or "llama3"
        opts = {}
        if "temperature" in kwargs: opts["temperature"] = kwargs.pop("temperature")
        if "max_tokens" in kwargs: opts["num_predict"] = kwargs.pop("max_tokens")
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            res = await client.post(f"{self.base_url}/api/chat", json={
                "model": m,
                "messages": messages,
                "stream": False,
                "options": opts,
                **kwargs
            })
            res.raise_for_status()
            return res.json()["message"]["content"]

    async def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        return (await self.embed_batch([text], model))[0]

    async def embed_batch(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        m = model or self.embed_model
        res = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for t in texts:
                r = await client.post(f"{self.base_url}/api/embeddings", json={"model": m, "prompt": t})
                r.raise_for_status()
                res.append(r.json()["embedding"])
        return res
