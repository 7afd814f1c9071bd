from typing import Any, Dict, Optional, Protocol

from ..core.constants import SECTOR_CONFIGS
from ..core.types import ClassificationResult, Sector

class SectorClassifier(Protocol):
    def classify(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> ClassificationResult: ...

class RegexSectorClassifier:
    """Scores each sector by weighted pattern hits; an explicit metadata sector wins outright."""

    def classify(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> ClassificationResult:
        meta_sec = metadata.get("sector") if isinstance(metadata, dict) else None
        if isinstance(meta_sec, str) and meta_sec in {s.value for s in Sector}:
            return ClassificationResult(primary=Sector(meta_sec), additional=[], confidence=1.0)

        scores: Dict[Sector, float] = {}
        for sec, cfg in SECTOR_CONFIGS.items():
            scores[sec] = sum(len(p.findall(text)) for p in cfg["patterns"]) * cfg["weight"]

        ranked = sorted(scores.items(), key=lambda x: x[1], reverse=True)
        primary, p_score = ranked[0]
        if p_score <= 0:
            return ClassificationResult(primary=Sector.semantic, additional=[], confidence=0.2, scores=scores)

        thresh = max(1.0, p_score * 0.3)
        additional = [s for s, sc in ranked[1:] if sc > 0 and sc >= thresh]
        second = ranked[1][1] if len(ranked) > 1 else 0.0
        return ClassificationResult(
            primary=primary,
            additional=additional,
            confidence=min(1.0, p_score / (p_score + second + 1)),
            scores=scores,
        )

def classify_content(text: str, metadata: Optional[Dict[str, Any]] = None) -> ClassificationResult:
    return RegexSectorClassifier().classify(text, metadata)
