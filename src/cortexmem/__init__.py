from .main import Memory
from .trace import Tracer
from .core.types import (ExtractedMemory, ExtractedMemoryData, SourceProvenance, MemoryType, Sector, Waypoint,
                         HybridSearchResult, SearchFilters, MergeDecision, IngestResult)
from .core.errors import (CortexError, EmbeddingUnavailable, ClassificationUnavailable, LLMError, LLMParseError,
                          LLMUnavailable, StoreUnavailable, StoreError)

__all__ = ["Memory", "Tracer", "ExtractedMemory", "ExtractedMemoryData", "SourceProvenance", "MemoryType", "Sector",
           "Waypoint", "HybridSearchResult", "SearchFilters", "MergeDecision", "IngestResult", "CortexError",
           "EmbeddingUnavailable", "ClassificationUnavailable", "LLMError", "LLMParseError", "LLMUnavailable",
           "StoreUnavailable", "StoreError"]
