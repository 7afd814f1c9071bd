import logging
from typing import Optional, Type, TypeVar

import httpx
import openai
from pydantic import BaseModel, ValidationError

from ..core.config import env
from ..core.errors import LLMParseError, LLMUnavailable
from .adapter import AIAdapter

logger = logging.getLogger("llm")

T = TypeVar("T", bound=BaseModel)

JSON_SUFFIX = "\n\nRespond ONLY with valid JSON, no markdown or explanation."

def strip_fences(text: str) -> str:
    t = text.strip()
    if t.startswith("```"):
        t = t[3:]
        if t[:4].lower() == "json": t = t[4:]
        if t.rstrip().endswith("```"): t = t.rstrip()[:-3]
    return t.strip()

class LLMService:
    """Text and structured completions over a chat adapter."""

    def __init__(self, adapter: AIAdapter, model: Optional[str] = None, temperature: Optional[float] = None,
                 max_tokens: Optional[int] = None):
        self.adapter = adapter
        self.model = model or env.llm_model
        self.temperature = env.llm_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or env.llm_max_tokens

    async def complete(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        msgs = []
        if system_prompt: msgs.append({"role": "system", "content": system_prompt})
        msgs.append({"role": "user", "content": prompt})
        try:
            return await self.adapter.chat(msgs, model=self.model, temperature=self.temperature, max_tokens=self.max_tokens)
        except (openai.OpenAIError, httpx.HTTPError, NotImplementedError, KeyError, ValueError, TypeError) as e:
            logger.warning(f"[LLM] completion failed: {e}")
            raise LLMUnavailable(str(e)) from e

    async def complete_json(self, prompt: str, system_prompt: Optional[str], shape: Type[T]) -> T:
        """Ask for JSON and decode it strictly into `shape`; no coercion of malformed payloads."""
        raw = await self.complete(prompt, (system_prompt or "") + JSON_SUFFIX)
        body = strip_fences(raw)
        try:
            return shape.model_validate_json(body)
        except ValidationError as e:
            logger.warning(f"[LLM] JSON parsing error: {e.error_count()} problem(s) in response")
            raise LLMParseError(f"Failed to parse {shape.__name__}: {e}", raw=raw) from e

def get_llm_service(provider: Optional[str] = None) -> Optional[LLMService]:
    """LLMService for the configured provider, or None when none is usable."""
    p = (provider or env.llm_provider or "").lower()
    if p == "openai":
        if not env.openai_key:
            logger.info("[LLM] no OpenAI key configured, consolidation disabled")
            return None
        from .openai import OpenAIAdapter
        return LLMService(OpenAIAdapter())
    if p == "ollama":
        from .ollama import OllamaAdapter
        return LLMService(OllamaAdapter())
    return None
