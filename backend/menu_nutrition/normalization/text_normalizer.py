"""
Deterministic cleanup of OCR / LLM-transcribed menu-item names. No network, no guessing.
One raw line may yield several candidate terms (menus list choices as "A / B" or "A or B").
"""
import re
import logging
from typing import List

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 4

# Regional / OCR-garbled token -> canonical English food name
MENU_ALIASES: dict[str, str] = {
    # Italian menu words
    "crostatine": "tart",
    "crostata": "tart",
    "bruschette": "bruschetta",
    "antipasti": "appetizer",
    "antipasto": "appetizer",
    # Menu shorthand
    "chx": "chicken",
    "chk": "chicken",
    "ckn": "chicken",
    # OCR misspellings
    "chickne": "chicken",
    "saiad": "salad",
    "burgre": "burger",
    "pizzza": "pizza",
}

# Multi-word aliases; applied before token aliases
PHRASE_ALIASES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\btiramisu tradizionale\b"), "tiramisu"),
    (re.compile(r"(?<!french )\bfries\b"), "french fries"),
]

# Leading descriptors that carry no food identity. Longest first so "served with" wins over "with".
DESCRIPTIVE_PREFIXES: List[str] = sorted([
    "with", "served with", "topped with", "includes", "comes with",
    "choice of", "side of", "add", "extra", "fresh", "hot", "cold",
    "new", "signature", "house", "chef's", "chefs",
], key=len, reverse=True)

# Truncated OCR tails ("Cheddar" split as "Chee ddar")
FILLER_SUFFIXES = (" ing", " ddar", " tion")

# Fragments made only of these tokens are OCR debris
GARBAGE_TOKENS = frozenset({"ddar", "ing", "tion", "xxx", "yyy", "zzz"})

_SHORTHAND_WITH = re.compile(r"\bw/\s*", re.IGNORECASE)
_COMPOSITE_SPLIT = re.compile(r"\s*(?:\||/|&|\bor\b|\band\b)\s*", re.IGNORECASE)
_PRICE = re.compile(r"\$\s*\d+(?:\.\d+)?")
_BARE_NUMBER = re.compile(r"\b\d+(?:\.\d{1,2})?\b")
_NON_ALPHA = re.compile(r"[^a-z\s\-']")
_WHITESPACE = re.compile(r"\s+")


def split_composite(text: str) -> List[str]:
    """Split a menu line on choice delimiters (|, /, &, or, and). Empty pieces dropped."""
    parts = _COMPOSITE_SPLIT.split(text or "")
    return [p.strip() for p in parts if p and p.strip()]


def _strip_prefixes(term: str) -> str:
    changed = True
    while changed:
        changed = False
        for prefix in DESCRIPTIVE_PREFIXES:
            if term.startswith(prefix + " "):
                term = term[len(prefix) + 1:].lstrip()
                changed = True
                break
    return term


def _strip_suffixes(term: str) -> str:
    for suffix in FILLER_SUFFIXES:
        if term.endswith(suffix):
            term = term[: -len(suffix)].rstrip()
    return term


def apply_aliases(term: str) -> str:
    """Phrase aliases first, then whole-token aliases."""
    for pattern, replacement in PHRASE_ALIASES:
        term = pattern.sub(replacement, term)
    tokens = [MENU_ALIASES.get(tok, tok) for tok in term.split()]
    return " ".join(tokens)


def clean_fragment(fragment: str) -> str:
    """Clean one already-split fragment. May return an invalid (short / garbage) term; see is_valid_term."""
    t = (fragment or "").lower().strip()
    t = _PRICE.sub(" ", t)
    t = _BARE_NUMBER.sub(" ", t)
    t = _NON_ALPHA.sub(" ", t)
    t = _WHITESPACE.sub(" ", t).strip()
    t = _strip_prefixes(t)
    t = _strip_suffixes(t)
    t = apply_aliases(t)
    t = _WHITESPACE.sub(" ", t).strip(" -'")
    return t


def is_valid_term(term: str) -> bool:
    """At least 4 chars, at least one letter, and not made only of OCR garbage tokens."""
    if not term or len(term) < MIN_TERM_LENGTH:
        return False
    if not any(c.isalpha() for c in term):
        return False
    tokens = term.split()
    if tokens and all(tok in GARBAGE_TOKENS for tok in tokens):
        return False
    return True


def normalize_menu_item(raw: str) -> List[str]:
    """
    Raw menu text -> candidate terms, longest (most specific) first.
    Empty list means nothing usable: the caller treats it as invalid input.
    """
    if not raw or not raw.strip():
        return []
    text = _SHORTHAND_WITH.sub("with ", raw)
    terms: List[str] = []
    for fragment in split_composite(text):
        term = clean_fragment(fragment)
        if is_valid_term(term) and term not in terms:
            terms.append(term)
    terms.sort(key=len, reverse=True)
    logger.debug("NORMALIZE raw=%s terms=%s", raw[:80], terms)
    return terms
