from typing import Set

from ..core.constants import SIMHASH_THRESHOLD
from ..utils.text import content_tokens

def _h32(tok: str) -> int:
    # signed 32-bit rolling hash, h*31 + c with wraparound
    h = 0
    for c in tok:
        val = ((h << 5) - h + ord(c)) & 0xffffffff
        h = val - 0x100000000 if val & 0x80000000 else val
    return h

def compute_simhash(text: str) -> str:
    """64-slot SimHash over the content token set, as 16 hex chars.

    The per-token hash is only 32 bits wide, so slot i tests bit i % 32 and the
    upper half of the digest mirrors the lower half.
    """
    vec = [0] * 64
    for tok in content_tokens(text):
        h = _h32(tok)
        for i in range(64):
            if h & (1 << (i % 32)): vec[i] += 1
            else: vec[i] -= 1

    res = []
    for i in range(0, 64, 4):
        nib = 0
        if vec[i] > 0: nib += 8
        if vec[i + 1] > 0: nib += 4
        if vec[i + 2] > 0: nib += 2
        if vec[i + 3] > 0: nib += 1
        res.append(format(nib, "x"))
    return "".join(res)

def _nib(c: str) -> int:
    try:
        return int(c, 16)
    except ValueError:
        return -1

def hamming_dist(h1: str, h2: str) -> int:
    if len(h1) != len(h2):
        # incomparable digests: every bit of the longer one differs
        return 4 * max(len(h1), len(h2))
    dist = 0
    for a, b in zip(h1, h2):
        x, y = _nib(a), _nib(b)
        if x < 0 or y < 0: continue
        dist += bin(x ^ y).count("1")
    return dist

def is_near_duplicate(h1: str, h2: str, threshold: int = SIMHASH_THRESHOLD) -> bool:
    return hamming_dist(h1, h2) <= threshold

def compute_token_overlap(q_toks: Set[str], mem_toks: Set[str]) -> float:
    if not q_toks: return 0.0
    return len(q_toks & mem_toks) / len(q_toks)

def token_overlap(query: str, content: str) -> float:
    return compute_token_overlap(content_tokens(query), content_tokens(content))
