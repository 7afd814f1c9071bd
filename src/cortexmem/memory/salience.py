import math
from typing import Optional

from ..core.constants import SECTOR_CONFIGS, DEFAULT_DECAY_LAMBDA, HYBRID_PARAMS, REINFORCEMENT, SCORING_WEIGHTS, DAY_MS
from ..core.types import Sector, ScoringWeights, ClassificationResult
from ..utils.vectors import now as _now

def _clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))

def _days_since(ts: int, now: Optional[int]) -> float:
    t = _now() if now is None else now
    return max(0.0, (t - ts) / DAY_MS)

def sector_lambda(sec: Sector) -> float:
    cfg = SECTOR_CONFIGS.get(sec)
    return cfg["decay_lambda"] if cfg else DEFAULT_DECAY_LAMBDA

def calc_decay(sec: Sector, init_sal: float, last_seen_at: int, seg_idx: Optional[int] = None,
               max_seg: Optional[int] = None, now: Optional[int] = None, lam: Optional[float] = None) -> float:
    """Salience after time off: exponential decay toward the alpha floor.

    `lam` overrides the sector's base rate. Damping grows with the segment
    index: segment 0 decays at the full rate, the newest segment (seg_idx == max_seg)
    is frozen.
    """
    days = _days_since(last_seen_at, now)
    if lam is None: lam = sector_lambda(sec)
    if seg_idx is not None and max_seg is not None and max_seg > 0:
        seg_ratio = math.sqrt(_clamp(seg_idx / max_seg))
        lam = lam * (1.0 - seg_ratio)

    decayed = init_sal * math.exp(-lam * days)
    reinf = HYBRID_PARAMS["alpha_reinforce"] * (1 - math.exp(-lam * days))
    return _clamp(decayed + reinf)

def calc_recency_score(last_seen_at: int, now: Optional[int] = None) -> float:
    days = _days_since(last_seen_at, now)
    t = HYBRID_PARAMS["t_days"]
    tmax = HYBRID_PARAMS["t_max_days"]
    return math.exp(-days / t) * (1 - min(1.0, days / tmax))

def reinforce_on_retrieval(sal: float) -> float:
    return min(REINFORCEMENT["max_salience"], sal + REINFORCEMENT["salience_boost"])

def reinforce_on_duplicate(sal: float) -> float:
    return min(REINFORCEMENT["max_salience"], sal + REINFORCEMENT["duplicate_boost"])

def initial_salience(cls: ClassificationResult) -> float:
    return _clamp(0.4 + 0.1 * len(cls.additional))

def should_prune(sal: float, last_seen_at: int, now: Optional[int] = None) -> bool:
    days = _days_since(last_seen_at, now)
    if days < REINFORCEMENT["prune_min_age_days"]: return False
    return sal < REINFORCEMENT["prune_threshold"] and days > REINFORCEMENT["prune_age_days"]

def boosted_sim(s: float, tau: float = HYBRID_PARAMS["tau"]) -> float:
    return 1 - math.exp(-tau * s)

# float64 epsilon keeps 1/(1+e^-x) strictly below 1
_EPS = 1e-12

def sigmoid(x: float) -> float:
    if math.isnan(x): x = 0.0
    if x >= 0:
        v = 1.0 / (1.0 + math.exp(-min(x, 700.0)))
    else:
        z = math.exp(max(x, -700.0))
        v = z / (1.0 + z)
    return _clamp(v, _EPS, 1.0 - _EPS)

def _finite(x: float) -> float:
    if math.isnan(x): return 0.0
    if math.isinf(x): return 1e6 if x > 0 else -1e6
    return x

def compute_hybrid_score(sim: float, tok_ov: float, wp_wt: float, rec_sc: float, tag_match: float = 0.0,
                         kw_score: float = 0.0, weights: ScoringWeights = SCORING_WEIGHTS) -> float:
    s_p = boosted_sim(_clamp(_finite(sim), -1.0, 1.0))
    raw = (weights.similarity * _finite(s_p) +
           weights.overlap * _finite(tok_ov) +
           weights.waypoint * _finite(wp_wt) +
           weights.recency * _finite(rec_sc) +
           weights.tag_match * _finite(tag_match) +
           _finite(kw_score))
    return sigmoid(_finite(raw))
