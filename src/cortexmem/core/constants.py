from typing import Dict, List, Tuple, TypedDict, Pattern
import re

from .types import Sector, MemoryType, ScoringWeights

class SectorCfg(TypedDict):
    decay_lambda: float
    weight: float
    patterns: List[Pattern]

def _pats(*srcs: str) -> List[Pattern]:
    return [re.compile(s, re.I) for s in srcs]

SECTOR_CONFIGS: Dict[Sector, SectorCfg] = {
    Sector.semantic: {
        "decay_lambda": 0.01,
        "weight": 1.0,
        "patterns": _pats(
            r"\b(is|are|was|were)\s+(a|an|the)\b",
            r"\b(means|refers to|defined as|known as)\b",
            r"\b(fact|information|data|knowledge)\b",
            r"\b(name is|called|named)\b",
            r"\b(location|address|lives? in|from)\b",
            r"\b(works? (at|as|for)|job|profession|occupation)\b",
            r"\b(age|born|birthday)\b",
            r"\b(email|phone|contact)\b",
        ),
    },
    Sector.episodic: {
        "decay_lambda": 0.03,
        "weight": 1.2,
        "patterns": _pats(
            r"\b(yesterday|today|tomorrow|last week|this week)\b",
            r"\b(went to|visited|met|saw|attended)\b",
            r"\b(happened|occurred|event|experience)\b",
            r"\b(remember when|recall|the time when)\b",
            r"\b(meeting|appointment|scheduled|calendar)\b",
            r"\b(bought|purchased|ordered|received)\b",
            r"\b(trip|travel|vacation|visited)\b",
            r"\d{4}[-/]\d{2}[-/]\d{2}",
            r"\b(january|february|march|april|may|june|july|august|september|october|november|december)\s+\d+",
        ),
    },
    Sector.procedural: {
        "decay_lambda": 0.02,
        "weight": 1.1,
        "patterns": _pats(
            r"\b(how to|steps to|guide|tutorial)\b",
            r"\b(first|then|next|finally|step \d+)\b",
            r"\b(process|procedure|method|approach)\b",
            r"\b(install|setup|configure|implement)\b",
            r"\b(use|using|usage|run|execute)\b",
            r"\b(command|code|script|function)\b",
            r"\b(click|press|select|choose|enter)\b",
        ),
    },
    Sector.emotional: {
        "decay_lambda": 0.05,
        "weight": 0.9,
        "patterns": _pats(
            r"\b(feel|feeling|felt|emotion)\b",
            r"\b(happy|sad|angry|frustrated|excited|anxious|worried)\b",
            r"\b(love|hate|like|dislike|prefer)\b",
            r"\b(amazing|terrible|awful|wonderful|great)\b",
            r"\b(stressed|relieved|overwhelmed|calm)\b",
            r"\b(miss|regret|appreciate|grateful)\b",
        ),
    },
    Sector.reflective: {
        "decay_lambda": 0.015,
        "weight": 1.0,
        "patterns": _pats(
            r"\b(believe|think|opinion|view)\b",
            r"\b(realize|realized|insight|learned)\b",
            r"\b(should|could|would|might)\b",
            r"\b(goal|aspiration|dream|vision)\b",
            r"\b(value|important|priority|matter)\b",
            r"\b(reflect|consider|ponder|wonder)\b",
            r"\b(decision|choice|chose|decided)\b",
        ),
    },
}

DEFAULT_DECAY_LAMBDA = 0.02

TYPE_SECTORS: Dict[MemoryType, Sector] = {
    MemoryType.fact: Sector.semantic,
    MemoryType.question: Sector.semantic,
    MemoryType.event: Sector.episodic,
    MemoryType.relationship: Sector.episodic,
    MemoryType.instruction: Sector.procedural,
    MemoryType.skill: Sector.procedural,
    MemoryType.preference: Sector.emotional,
    MemoryType.belief: Sector.emotional,
    MemoryType.insight: Sector.reflective,
    MemoryType.goal: Sector.reflective,
    MemoryType.project: Sector.reflective,
}

# keyed by (query sector, memory sector); unlisted pairs fall back to DEFAULT_SECTOR_RELATIONSHIP
SECTOR_RELATIONSHIPS: Dict[Tuple[Sector, Sector], float] = {
    (Sector.semantic, Sector.procedural): 0.8,
    (Sector.semantic, Sector.episodic): 0.6,
    (Sector.semantic, Sector.reflective): 0.7,
    (Sector.semantic, Sector.emotional): 0.4,
    (Sector.procedural, Sector.semantic): 0.8,
    (Sector.procedural, Sector.episodic): 0.6,
    (Sector.procedural, Sector.reflective): 0.6,
    (Sector.procedural, Sector.emotional): 0.3,
    (Sector.episodic, Sector.reflective): 0.8,
    (Sector.episodic, Sector.semantic): 0.6,
    (Sector.episodic, Sector.procedural): 0.6,
    (Sector.episodic, Sector.emotional): 0.7,
    (Sector.reflective, Sector.episodic): 0.8,
    (Sector.reflective, Sector.semantic): 0.7,
    (Sector.reflective, Sector.procedural): 0.6,
    (Sector.reflective, Sector.emotional): 0.6,
    (Sector.emotional, Sector.episodic): 0.7,
    (Sector.emotional, Sector.reflective): 0.6,
    (Sector.emotional, Sector.semantic): 0.4,
    (Sector.emotional, Sector.procedural): 0.3,
}
DEFAULT_SECTOR_RELATIONSHIP = 0.3

def sector_relationship(query_sector: Sector, memory_sector: Sector) -> float:
    if query_sector == memory_sector: return 1.0
    return SECTOR_RELATIONSHIPS.get((query_sector, memory_sector), DEFAULT_SECTOR_RELATIONSHIP)

SCORING_WEIGHTS = ScoringWeights()

HYBRID_PARAMS = {
    "tau": 3.0,
    "gamma": 0.2,
    "alpha_reinforce": 0.08,
    "t_days": 7.0,
    "t_max_days": 60.0,
}

REINFORCEMENT = {
    "salience_boost": 0.1,
    "duplicate_boost": 0.15,
    "waypoint_boost": 0.05,
    "max_salience": 1.0,
    "max_waypoint_weight": 1.0,
    "prune_threshold": 0.05,
    "prune_min_age_days": 7.0,
    "prune_age_days": 30.0,
}

SEARCH_PARAMS = {
    "candidate_factor": 3,
    "min_vector_score": 0.3,
    "confidence_threshold": 0.55,
    "expansion_factor": 2,
    "keyword_weight": 0.15,
    "fallback_score": 0.5,
    "max_keywords": 5,
}

WAYPOINT_PARAMS = {
    "min_similarity": 0.5,
    "expansion_decay": 0.8,
    "min_expansion_weight": 0.1,
}

CONSOLIDATE_PARAMS = {
    "top_k": 5,
    "min_similarity": 0.8,
}

SIMHASH_THRESHOLD = 3
DAY_MS = 86_400_000
