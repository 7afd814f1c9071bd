from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.constants import WAYPOINT_PARAMS, HYBRID_PARAMS, REINFORCEMENT
from ..core.types import ExtractedMemory, Waypoint, WaypointHop
from ..utils.vectors import cos_sim

def _by_source(waypoints: Iterable[Waypoint]) -> Dict[str, List[Waypoint]]:
    adj: Dict[str, List[Waypoint]] = {}
    for wp in waypoints:
        adj.setdefault(wp.source_id, []).append(wp)
    return adj

def expand_via_waypoints(seed_ids: Sequence[str], waypoints: Iterable[Waypoint], max_expansion: int = 10) -> List[WaypointHop]:
    """Associative expansion from the seeds, one graph level at a time.

    Each hop multiplies the parent weight by the edge weight and the expansion
    decay; hops under the minimum weight are dropped. Within a level stronger
    and shorter paths win. Seeds are never returned.
    """
    if max_expansion <= 0: return []
    adj = _by_source(waypoints)
    decay = WAYPOINT_PARAMS["expansion_decay"]
    min_w = WAYPOINT_PARAMS["min_expansion_weight"]

    seeds = list(dict.fromkeys(seed_ids))
    visited = set(seeds)
    frontier = [WaypointHop(s, 1.0, [s]) for s in seeds]
    out: List[WaypointHop] = []

    while frontier and len(out) < max_expansion:
        level: Dict[str, WaypointHop] = {}
        for cur in frontier:
            for wp in adj.get(cur.id, []):
                tgt = wp.target_id
                if tgt in visited: continue
                w = cur.weight * wp.weight * decay
                if w < min_w: continue
                hop = WaypointHop(tgt, w, cur.path + [tgt])
                prev = level.get(tgt)
                if prev is None or (hop.weight, -len(hop.path)) > (prev.weight, -len(prev.path)):
                    level[tgt] = hop

        nxt = []
        for hop in sorted(level.values(), key=lambda h: (-h.weight, len(h.path), h.id)):
            if len(out) >= max_expansion: break
            visited.add(hop.id)
            out.append(hop)
            nxt.append(hop)
        frontier = nxt

    return out

def propagate_reinforcement(source_id: str, source_salience: float, waypoints: Iterable[Waypoint],
                            current_saliences: Dict[str, float], gamma: float = HYBRID_PARAMS["gamma"]) -> List[Tuple[str, float]]:
    # single hop: only the source's own outgoing edges
    updates = []
    for wp in waypoints:
        if wp.source_id != source_id: continue
        cur = current_saliences.get(wp.target_id)
        if cur is None: continue
        delta = gamma * (source_salience - cur)
        new = max(cur, cur + wp.weight * delta)
        updates.append((wp.target_id, max(0.0, min(REINFORCEMENT["max_salience"], new))))
    return updates

def find_best_waypoint_target(new_id: str, new_embedding: Sequence[float],
                              existing: Iterable[ExtractedMemory]) -> Optional[Tuple[str, float]]:
    best, best_sim = None, -1.0
    for mem in existing:
        if mem.id == new_id or not mem.embedding: continue
        sim = cos_sim(list(new_embedding), mem.embedding)
        if sim > best_sim:
            best, best_sim = mem.id, sim
    if best is None or best_sim < WAYPOINT_PARAMS["min_similarity"]: return None
    return best, min(1.0, best_sim)

def reinforce_waypoint_weight(weight: float, boost: float = REINFORCEMENT["waypoint_boost"]) -> float:
    return min(REINFORCEMENT["max_waypoint_weight"], weight + boost)
