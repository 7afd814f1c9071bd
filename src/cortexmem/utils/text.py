import re
import unicodedata
from typing import Dict, FrozenSet, List, Set, Tuple

STOPWORDS: Set[str] = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "from", "as", "is", "was", "are", "were", "been", "be", "have", "has", "had", "do", "does",
    "did", "will", "would", "could", "should", "may", "might", "must", "shall", "can", "need",
    "this", "that", "these", "those", "it", "its", "they", "them", "their", "we", "us", "our",
    "you", "your", "he", "him", "his", "she", "her", "hers", "who", "whom", "what", "which",
    "when", "where", "why", "how", "all", "each", "every", "both", "few", "more", "most",
    "other", "some", "such", "no", "not", "only", "same", "so", "than", "too", "very", "just", "also",
}

# letters and digits of any script plus the combining marks that follow them; "_" is a separator
WORD_PAT = re.compile(r"(?:[^\W_][\u0300-\u036f\u1ab0-\u1aff\u1dc0-\u1dff\u20d0-\u20ff\ufe20-\ufe2f]*)+")

def words(text: str) -> List[str]:
    """Lowercase words of the NFC form of text, so composed and decomposed accents agree."""
    return WORD_PAT.findall(unicodedata.normalize("NFC", text).lower())

def content_tokens(text: str) -> Set[str]:
    """Lowercase token set used by SimHash and token overlap: no short words, no stopwords."""
    return {t for t in words(text) if len(t) > 2 and t not in STOPWORDS}

def word_set(text: str) -> Set[str]:
    return set(text.lower().split())

# first word of each group is the canonical form
SYNONYMS: List[Tuple[str, ...]] = [
    ("prefer", "like", "love", "enjoy", "favor"),
    ("theme", "mode", "style", "appearance"),
    ("meeting", "meet", "session", "call", "sync"),
    ("dark", "night", "black"),
    ("light", "bright", "day"),
    ("user", "person", "people"),
    ("task", "todo", "job"),
    ("note", "memo", "reminder"),
    ("time", "schedule", "when", "date"),
    ("project", "initiative", "plan"),
    ("mail", "email", "message", "inbox"),
    ("code", "program", "script", "snippet"),
    ("issue", "problem", "bug"),
]

CANON: Dict[str, str] = {w: grp[0] for grp in SYNONYMS for w in grp}
GROUPS: Dict[str, FrozenSet[str]] = {grp[0]: frozenset(grp) for grp in SYNONYMS}

# (suffix, replacement), first match wins
SUFFIXES = (("ies", "y"), ("ing", ""), ("ers", "er"), ("ed", ""), ("s", ""))

def stem(tok: str) -> str:
    if len(tok) <= 3: return tok
    for suf, rep in SUFFIXES:
        if tok.endswith(suf):
            st = tok[: -len(suf)] + rep
            if len(st) >= 3: return st
    return tok

def canonicalize_token(tok: str) -> str:
    low = tok.lower()
    if low in CANON: return CANON[low]
    st = stem(low)
    return CANON.get(st, st)

def canonical_tokens_from_text(text: str) -> List[str]:
    """Ordered tokens after stemming and synonym folding; single characters dropped."""
    out = []
    for tok in words(text):
        can = canonicalize_token(tok)
        if len(can) > 1: out.append(can)
    return out

def synonyms_for(tok: str) -> FrozenSet[str]:
    can = canonicalize_token(tok)
    return GROUPS.get(can, frozenset((can,)))
