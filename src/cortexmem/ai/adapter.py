from abc import ABC, abstractmethod
from typing import List, Dict, Optional

class AIAdapter(ABC):
    # identifier stored next to every embedding this adapter produces
    embed_model: str = "unknown"

    @abstractmethod
    async def chat(self, messages: List[Dict[str, str]], model: Optional[str] = None, **kwargs) -> str:
        """Simple chat completion"""
        pass

    @abstractmethod
    async def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        """Generate single embedding"""
        pass

    @abstractmethod
    async def embed_batch(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        """Generate batch embeddings"""
        pass
