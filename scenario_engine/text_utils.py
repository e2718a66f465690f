"""
Text helpers shared by the resolver, explorer and generator.

All matching in the engine is lexical: tokens are lower-cased alphanumeric runs,
keywords are tokens with stop words removed.
"""

import re
from typing import Iterable, List, Optional, Sequence

STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "been", "by", "can", "could",
    "do", "does", "for", "from", "has", "have", "how", "i", "if", "in", "into",
    "is", "it", "its", "may", "must", "my", "of", "on", "or", "our", "should",
    "so", "that", "the", "their", "then", "there", "these", "this", "to",
    "was", "we", "were", "what", "when", "where", "which", "while", "who",
    "will", "with", "without", "would", "you", "your",
})

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")
_QUOTED_RE = re.compile(r'"([^"]+)"|“([^”]+)”')


def tokenize(text: str) -> List[str]:
    """Split text into lower-case alphanumeric tokens."""
    return _TOKEN_RE.findall(text.lower())


def keywords(text: str) -> List[str]:
    """
    Extract ordered, de-duplicated keywords from text.

    Args:
        text: Free text

    Returns:
        Tokens with stop words and single characters removed, first occurrence order
    """
    seen = set()
    result = []
    for token in tokenize(text):
        if token in STOP_WORDS or len(token) < 2 or token in seen:
            continue
        seen.add(token)
        result.append(token)
    return result


def normalize_name(text: str) -> str:
    """Case-fold and turn whitespace runs into hyphens."""
    return _WHITESPACE_RE.sub("-", text.strip().casefold())


def normalize_scenario_name(text: str) -> str:
    """Case-insensitive comparison key for scenario names."""
    return _WHITESPACE_RE.sub(" ", text.strip().casefold()).rstrip(".")


def slugify(text: str, max_words: Optional[int] = None) -> str:
    """
    Build a hyphenated slug from text.

    Args:
        text: Source text
        max_words: Keep at most this many tokens

    Returns:
        Lower-case slug, empty string when text has no tokens
    """
    tokens = tokenize(text)
    if max_words:
        tokens = tokens[:max_words]
    return "-".join(tokens)


def title_from_slug(slug: str) -> str:
    return " ".join(part.capitalize() for part in re.split(r"[-_\s]+", slug) if part)


def sentence_case(text: str) -> str:
    text = _WHITESPACE_RE.sub(" ", text.strip()).rstrip(".")
    if not text:
        return text
    return text[0].upper() + text[1:]


def first_sentence(text: str) -> str:
    text = _WHITESPACE_RE.sub(" ", text.strip())
    match = re.match(r"(.+?[.!?])(\s|$)", text)
    return match.group(1) if match else text


def quoted_values(text: str) -> List[str]:
    """Return every double-quoted substring, in order."""
    return [a or b for a, b in _QUOTED_RE.findall(text)]


def token_matches(keyword: str, token: str) -> bool:
    """Exact match, or a shared prefix for words of four letters or more (plurals, tenses)."""
    if keyword == token:
        return True
    if len(keyword) >= 4 and len(token) >= 4:
        return token.startswith(keyword) or keyword.startswith(token)
    return False


def keyword_score(search_keywords: Sequence[str], text: str) -> float:
    """
    Fraction of search keywords found in text.

    Args:
        search_keywords: Keywords extracted from the reference
        text: Text to score

    Returns:
        Score between 0.0 and 1.0
    """
    if not search_keywords:
        return 0.0
    tokens = set(tokenize(text))
    hits = sum(1 for kw in search_keywords if any(token_matches(kw, t) for t in tokens))
    return hits / len(search_keywords)


def jaccard(first: Iterable[str], second: Iterable[str]) -> float:
    a, b = set(first), set(second)
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def lexical_overlap(first: str, second: str) -> float:
    """Jaccard overlap of stop-word-filtered keywords."""
    return jaccard(keywords(first), keywords(second))
