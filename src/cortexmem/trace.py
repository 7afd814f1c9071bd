from typing import List, Dict, Any, Optional
from .core.types import Sector
from .main import Memory

class Tracer:
    def __init__(self, mem: "Memory"):
        self.mem = mem

    async def trace(self, query: str, limit: Optional[int] = None, sectors: Optional[List[Sector]] = None) -> Dict[str, Any]:
        """
        Explainable retrieval: the ranked results with each score component.
        Like any search this reinforces what it returns.
        """
        results = await self.mem.search(query, limit=limit, sectors=sectors, debug=True)

        explanation = []
        for r in results:
            explanation.append({
                "id": r.memory.id,
                "content_preview": r.memory.content[:50],
                "sector": r.memory.sector.value,
                "score": r.score,
                "path": r.path,
                "score_breakdown": r.debug.model_dump() if r.debug else {},
            })

        return {
            "query": query,
            "results": explanation,
        }
