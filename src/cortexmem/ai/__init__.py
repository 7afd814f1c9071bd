from .adapter import AIAdapter
from .openai import OpenAIAdapter
from .ollama import OllamaAdapter
from .synthetic import SyntheticAdapter
from .llm import LLMService, get_llm_service

__all__ = ["AIAdapter", "OpenAIAdapter", "OllamaAdapter", "SyntheticAdapter", "LLMService", "get_llm_service"]
