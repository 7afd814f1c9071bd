import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .core.db import DB
from .core.store import MemoryStore
from .core.types import (ExtractedMemory, ExtractedMemoryData, HybridSearchResult, IngestResult, MemoryType,
                         SearchFilters, Sector, SourceProvenance)
from .ai.llm import LLMService, get_llm_service
from .memory.classify import SectorClassifier
from .memory.consolidate import MemoryConsolidator
from .memory.embed import EmbeddingService, get_embedding_service
from .memory.search import HybridMemorySearch
from .core.config import env
from .ops.ingest import Ingestor
from .ops.prune import prune_sweep, PruneCandidate
from .utils.vectors import rid

logger = logging.getLogger("cortexmem")

class Memory:
    """Facade wiring store, embedder, classifier, LLM, search and ingestion together.

    Services default to what the environment configures; pass them in to override.
    Consolidation runs only when an LLM is available.
    """

    def __init__(self, db_url: Optional[str] = None, embedder: Optional[EmbeddingService] = None,
                 llm: Optional[LLMService] = None, classifier: Optional[SectorClassifier] = None,
                 consolidate: bool = True):
        self.store = MemoryStore(DB(db_url))
        self.embedder = embedder or get_embedding_service()
        if llm is None and consolidate:
            llm = get_llm_service()
        self.consolidator = MemoryConsolidator(self.store, llm) if (llm and consolidate) else None
        self.searcher = HybridMemorySearch(self.store, self.embedder, classifier)
        self.ingestor = Ingestor(self.store, self.embedder, self.consolidator, classifier,
                                 on_change=self.searcher.invalidate_cache)

    async def add(self, data: ExtractedMemoryData, provenance: SourceProvenance) -> IngestResult:
        return await self.ingestor.ingest(data, provenance)

    async def add_capture(self, candidates: List[ExtractedMemoryData], provenance: SourceProvenance) -> List[IngestResult]:
        return await self.ingestor.ingest_capture(candidates, provenance)

    async def search(self, query: str, limit: Optional[int] = None, sectors: Optional[List[Sector]] = None,
                     min_salience: Optional[float] = None, start_time: Optional[int] = None,
                     end_time: Optional[int] = None, debug: bool = False) -> List[HybridSearchResult]:
        """Hybrid search. Note: boosts the salience of whatever it returns."""
        f = None
        if sectors or min_salience is not None or start_time is not None or end_time is not None or debug:
            f = SearchFilters(sectors=sectors, min_salience=min_salience, start_time=start_time,
                              end_time=end_time, debug=debug)
        return await self.searcher.search(query, env.default_limit if limit is None else limit, f)

    async def quick_search(self, query: str, limit: int = 5) -> List[ExtractedMemory]:
        return await self.searcher.quick_search(query, limit)

    async def context(self, query: str, limit: Optional[int] = None) -> Optional[str]:
        return await self.searcher.get_context_for_prompt(query, env.context_limit if limit is None else limit)

    async def get(self, memory_id: str) -> Optional[ExtractedMemory]:
        return await self.store.get_memory(memory_id)

    async def forget(self, memory_id: str) -> bool:
        ok = await self.store.forget_memory(memory_id)
        self.searcher.invalidate_cache()
        return ok

    async def delete(self, memory_id: str) -> bool:
        ok = await self.store.delete_memory(memory_id)
        self.searcher.invalidate_cache()
        return ok

    async def delete_all(self):
        await self.store.clear_all()
        self.searcher.invalidate_cache()

    async def history(self, limit: int = 20, offset: int = 0) -> List[ExtractedMemory]:
        return await self.store.fetch_recent(limit, offset)

    async def prune(self, dry_run: bool = True) -> List[PruneCandidate]:
        res = await prune_sweep(self.store, dry_run=dry_run)
        if not dry_run and res: self.searcher.invalidate_cache()
        return res

    def close(self):
        self.store.close()

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cortexmem", description="Local semantic memory")
    sub = parser.add_subparsers(dest="cmd")

    p = sub.add_parser("add", help="Store a memory")
    p.add_argument("text", nargs="+")
    p.add_argument("--type", default="insight", help="Memory type (fact, preference, ...)")
    p.add_argument("--tags", default="", help="Comma separated tags")
    p.add_argument("--app", default="cli", help="Source app recorded as provenance")

    p = sub.add_parser("search", help="Hybrid search (reinforces what it returns)")
    p.add_argument("query", nargs="+")
    p.add_argument("--limit", type=int)
    p.add_argument("--debug", action="store_true", help="Print the score breakdown")

    p = sub.add_parser("context", help="Memories formatted for a prompt")
    p.add_argument("query", nargs="+")
    p.add_argument("--limit", type=int)

    p = sub.add_parser("history", help="Most recent memories")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--offset", type=int, default=0)

    p = sub.add_parser("forget", help="Soft-delete a memory")
    p.add_argument("id")

    p = sub.add_parser("prune", help="List low-salience memories")
    p.add_argument("--apply", action="store_true", help="Soft-delete them instead of listing")
    return parser

async def _run(argv: List[str]) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.cmd is None:
        parser.print_help()
        return 1

    mem = Memory()
    try:
        if args.cmd == "add":
            tags = [t for t in args.tags.split(",") if t]
            res = await mem.add(ExtractedMemoryData(content=" ".join(args.text), type=MemoryType.parse(args.type), tags=tags),
                                SourceProvenance(source_memory_id=rid(), source_app=args.app))
            print(f"{res.action} {res.memory_id or ''}".strip())
        elif args.cmd == "search":
            for r in await mem.search(" ".join(args.query), limit=args.limit, debug=args.debug):
                print(f"{r.score:.3f}  [{r.memory.sector.value}] {r.memory.preview}  ({r.memory.id})")
                if r.debug: print(f"       {r.debug.model_dump()}")
        elif args.cmd == "context":
            print(await mem.context(" ".join(args.query), args.limit) or "(no relevant memories)")
        elif args.cmd == "history":
            for m in await mem.history(args.limit, args.offset):
                state = "" if m.is_active else " (forgotten)"
                print(f"{m.id}  {m.type.value:<12} sal={m.salience:.2f}  {m.preview}{state}")
        elif args.cmd == "forget":
            print("forgotten" if await mem.forget(args.id) else "not found")
        elif args.cmd == "prune":
            for c in await mem.prune(dry_run=not args.apply):
                print(f"{c.id}  sal={c.salience:.3f}  age={c.age_days:.0f}d")
    finally:
        mem.close()
    return 0

def cli():
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(_run(sys.argv[1:])))

if __name__ == "__main__":
    cli()
