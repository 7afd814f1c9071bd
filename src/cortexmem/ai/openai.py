from typing import List, Dict, Optional
from openai import AsyncOpenAI
from ..core.config import env
from .adapter import AIAdapter

class OpenAIAdapter(AIAdapter):
    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, embed_model: Optional[str] = None):
        self.api_key = api_key or env.openai_key
        self.base_url = base_url or env.openai_base_url
        self.embed_model = embed_model or env.openai_embedding_model or "text-embedding-3-small"
        self.client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)

    async def chat(self, messages: List[Dict[str, str]], model: Optional[str] = None, **kwargs) -> str:
        m = model or env.llm_model or "gpt-4o-mini"
        res = await self.client.chat.completions.create(
            model=m,
            messages=messages,
            **kwargs
        )
        return res.choices[0].message.content or ""

    async def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        res = await self.client.embeddings.create(input=text, model=model or self.embed_model)
        return res.data[0].embedding

    async def embed_batch(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        res = await self.client.embeddings.create(input=texts, model=model or self.embed_model)
        # ensure order
        return [d.embedding for d in sorted(res.data, key=lambda d: d.index)]
