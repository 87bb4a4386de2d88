"""Text normalization shared by anchor indexing and citation resolution.

The same tokenizer must be applied to chunk text when the index is built and
to conclusion statements when they are resolved; otherwise overlap scores are
meaningless.
"""

import re
from typing import List

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_APOSTROPHE_RE = re.compile(r"['’]")
_SLUG_RE = re.compile(r"[^a-z0-9]+")

MAX_SLUG_LENGTH = 60
MIN_STEM_LENGTH = 3

STOPWORDS = frozenset({
    "a", "an", "and", "any", "are", "as", "at", "be", "been", "being", "but",
    "by", "can", "could", "did", "do", "does", "each", "for", "from", "had",
    "has", "have", "he", "her", "his", "if", "in", "into", "is", "it", "its",
    "may", "might", "must", "no", "nor", "not", "of", "on", "or", "other",
    "our", "out", "per", "shall", "she", "should", "so", "such", "than",
    "that", "the", "their", "them", "then", "there", "these", "they", "this",
    "those", "to", "under", "upon", "us", "was", "we", "were", "what", "when",
    "where", "which", "who", "whom", "will", "with", "would", "you", "your",
})

# (suffix, replacement), first match wins
_SUFFIX_RULES = (
    ("ies", "y"),
    ("ing", ""),
    ("ed", ""),
    ("s", ""),
)


def stem(token: str) -> str:
    """Strip a common English inflection so that "buildings" matches "building"."""
    if token.endswith("ss"):
        return token
    for suffix, replacement in _SUFFIX_RULES:
        if token.endswith(suffix) and len(token) - len(suffix) >= MIN_STEM_LENGTH:
            return token[: -len(suffix)] + replacement
    return token


def tokenize(text: str) -> List[str]:
    """Lower-case, punctuation-stripped, stop-word-free, stemmed word tokens.

    Order and duplicates are preserved; callers that need a set build one.
    """
    if not text:
        return []
    lowered = _APOSTROPHE_RE.sub("", text.lower())
    return [
        stem(token)
        for token in _TOKEN_RE.findall(lowered)
        if len(token) > 1 and token not in STOPWORDS
    ]


def slugify_anchor(text: str) -> str:
    """Lower-kebab-case slug, e.g. "Section I — Coverage A" -> "section-i-coverage-a"."""
    if not text:
        return ""
    slug = _SLUG_RE.sub("-", text.lower()).strip("-")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def truncate_at_word_boundary(text: str, max_length: int) -> str:
    """Return a verbatim prefix of ``text`` no longer than ``max_length``.

    The cut never falls inside a token. Leading and trailing whitespace is
    dropped, so the result is always a substring of the input. When the first
    token alone is longer than ``max_length`` the whole token is returned.
    """
    stripped = text.strip()
    if len(stripped) <= max_length:
        return stripped

    start = len(text) - len(text.lstrip())
    window = text[start:start + max_length]
    if text[start + max_length].isspace():
        return window.rstrip()

    cut = max((i for i, ch in enumerate(window) if ch.isspace()), default=-1)
    if cut > 0:
        return window[:cut].rstrip()

    match = re.match(r"\S+", text[start:])
    return match.group(0)
