from typing import Set, List, Dict, Iterable
import math
from .text import canonical_tokens_from_text, word_set, words

INTENT_PHRASES = [
    "write a mail to",
    "send a mail to",
    "write an email to",
    "send an email to",
    "write mail to",
    "send mail to",
    "tell me about",
    "can you find",
    "help me with",
    "i need to",
    "i want to",
    "please help me",
    "please",
    "can you",
    "could you",
    "what do i know about",
    "what is",
    "who is",
    "where is",
    "remind me about",
    "find information about",
    "search for",
]

# broader than the content stopwords: queries are full of pronouns and prepositions
QUERY_STOPWORDS: Set[str] = {
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might", "must", "shall",
    "can", "need", "dare", "ought", "used", "to", "of", "in", "for", "on", "with", "at", "by",
    "from", "as", "into", "through", "during", "before", "after", "above", "below", "between",
    "under", "again", "further", "then", "once", "here", "there", "when", "where", "why", "how",
    "all", "each", "few", "more", "most", "other", "some", "such", "no", "nor", "not", "only",
    "own", "same", "so", "than", "too", "very", "just", "and", "but", "if", "or", "because",
    "until", "while", "about", "against", "this", "that", "these", "those", "i", "me", "my",
    "myself", "we", "our", "ours", "ourselves", "you", "your", "yours", "yourself", "yourselves",
    "he", "him", "his", "himself", "she", "her", "hers", "herself", "it", "its", "itself", "they",
    "them", "their", "theirs", "themselves", "what", "which", "who", "whom", "am",
}

def strip_intent(text: str) -> str:
    """Lowercase, drop request boilerplate ("tell me about", "can you", ...) and squeeze spaces."""
    res = text.lower()
    for phrase in INTENT_PHRASES:
        res = res.replace(phrase, " ")
    return " ".join(res.split())

def query_keywords(text: str) -> List[str]:
    seen = {}
    for w in words(text):
        if len(w) >= 2 and w not in QUERY_STOPWORDS:
            seen.setdefault(w, None)
    return list(seen)

def keyword_bonus(query: str, content: str, weight: float = 0.15) -> float:
    qw = word_set(query)
    if not qw: return 0.0
    return weight * len(qw & word_set(content)) / len(qw)

def tag_match_score(q_words: Set[str], tags: Iterable[str]) -> float:
    tags = list(tags)
    if not tags: return 0.0
    matches = 0
    for tag in tags:
        tl = str(tag).lower()
        if tl in q_words:
            matches += 2
        else:
            for w in q_words:
                if tl in w or w in tl: matches += 1
    return min(1.0, matches / (len(tags) * 2))

def extract_keywords(text: str, min_length: int = 3) -> Set[str]:
    tokens = canonical_tokens_from_text(text)
    keywords = set()

    for token in tokens:
        if len(token) >= min_length:
            keywords.add(token)
            for i in range(len(token) - 2):
                keywords.add(token[i : i+3])

    for i in range(len(tokens) - 1):
        bigram = f"{tokens[i]}_{tokens[i+1]}"
        if len(bigram) >= min_length:
            keywords.add(bigram)

    for i in range(len(tokens) - 2):
        keywords.add(f"{tokens[i]}_{tokens[i+1]}_{tokens[i+2]}")

    return keywords

def compute_keyword_overlap(query_keywords: Set[str], content_keywords: Set[str]) -> float:
    matches = 0.0
    total_weight = 0.0

    for qk in query_keywords:
        w = 2.0 if "_" in qk else 1.0
        if qk in content_keywords:
            matches += w
        total_weight += w

    return matches / total_weight if total_weight > 0 else 0.0

def exact_phrase_match(query: str, content: str) -> bool:
    return query.lower().strip() in content.lower()

def compute_bm25_score(query_terms: List[str], content_terms: List[str], corpus_size: int = 10000, avg_doc_length: int = 100) -> float:
    k1 = 1.5
    b = 0.75

    term_freq: Dict[str, int] = {}
    for t in content_terms:
        term_freq[t] = term_freq.get(t, 0) + 1

    doc_len = len(content_terms)
    score = 0.0

    for qt in query_terms:
        tf = term_freq.get(qt, 0)
        if tf == 0: continue
        idf = math.log((corpus_size + 1) / (tf + 0.5))
        score += idf * (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * (doc_len / avg_doc_length)))

    return score

def keyword_filter_memories(query: str, docs: Iterable, threshold: float = 0.1) -> Dict[str, float]:
    """Lexical relevance per doc id for anything with .id and .content; only scores above threshold are kept."""
    q_kw = extract_keywords(query)
    q_terms = canonical_tokens_from_text(query)
    scores = {}

    for d in docs:
        total = 0.0
        if exact_phrase_match(query, d.content):
            total += 1.0
        total += compute_keyword_overlap(q_kw, extract_keywords(d.content)) * 0.8
        bm25 = compute_bm25_score(q_terms, canonical_tokens_from_text(d.content))
        total += min(1.0, bm25 / 10.0) * 0.5
        if total > threshold:
            scores[d.id] = total

    return scores
