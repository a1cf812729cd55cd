from __future__ import annotations

import re
import unicodedata

_SPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"[^\W_]+")
_LATIN_RE = re.compile(r"[A-Za-z]")

# Ordered: first matching script wins
_SCRIPT_RANGES: list[tuple[str, re.Pattern[str]]] = [
    ("pa", re.compile(r"[਀-੿]")),  # Gurmukhi
    ("hi", re.compile(r"[ऀ-ॿ]")),  # Devanagari
    ("ar", re.compile(r"[؀-ۿ]")),  # Arabic
    ("ru", re.compile(r"[Ѐ-ӿ]")),  # Cyrillic
]

_ROMANIZED_PHRASES: list[tuple[str, list[str]]] = [
    ("pa", [
        "ki ha", "ki hai", "kee hai", "eh ki", "ki aa", "ki e",
        "ki hunda", "ki hega", "kithe", "kithon", "kinne",
        "menu dasso", "das", "dasso",
    ]),
    ("hi", [
        "kya hai", "kya he", "ye kya", "yeh kya", "batao", "bataiye",
        "kaisa hai", "kaise", "kitna", "kitne", "kahaan", "kahan",
    ]),
    ("sv", ["vad är", "vad ar", "finns det", "har ni", "visar"]),
]


def _keep_char(ch: str) -> bool:
    # Letters, numbers and combining marks (Devanagari/Gurmukhi vowel signs)
    return ch.isspace() or unicodedata.category(ch)[0] in ("L", "N", "M")


def normalize_text(text: str) -> str:
    """Lowercase, replace punctuation and emoji with spaces, collapse whitespace."""
    lowered = (text or "").lower()
    cleaned = "".join(ch if _keep_char(ch) else " " for ch in lowered)
    return _SPACE_RE.sub(" ", cleaned).strip()


def tokenize(text: str) -> list[str]:
    norm = normalize_text(text)
    return norm.split(" ") if norm else []


def contains_phrase(text: str, phrase: str) -> bool:
    """True when ``phrase`` occurs in ``text`` delimited by non-word characters."""
    if not phrase:
        return False
    pattern = rf"(^|\W){re.escape(phrase)}($|\W)"
    return re.search(pattern, text, re.IGNORECASE) is not None


def has_latin_letter(text: str) -> bool:
    return _LATIN_RE.search(text or "") is not None


def detect_script_language(text: str) -> str | None:
    for code, pattern in _SCRIPT_RANGES:
        if pattern.search(text or ""):
            return code
    return None


def detect_romanized_language(text: str) -> str | None:
    lower = (text or "").lower()
    for code, phrases in _ROMANIZED_PHRASES:
        if any(contains_phrase(lower, p) for p in phrases):
            return code
    return None


def detect_language(text: str) -> str | None:
    """Script detection first, then romanized phrases. None when undecided."""
    return detect_script_language(text) or detect_romanized_language(text)


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------


def _letters_only(text: str) -> str:
    return "".join(ch for ch in (text or "").lower() if ch.isalnum())


def _spelling_variant(word: str) -> str:
    word = word.replace("aa", "a").replace("ee", "i").replace("oo", "u").replace("ph", "f")
    word = re.sub(r"ani$", "ni", word)
    return re.sub(r"y$", "i", word)


def match_ratio(a: str, b: str) -> float:
    """Share of positions holding the same character, over the longer string."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    same = sum(1 for x, y in zip(a, b) if x == y)
    return same / longest


def is_similar(a: str, b: str) -> bool:
    """Spelling-tolerant word comparison (daal/dal, makhani/makhni, tandoor/tandur)."""
    left, right = _letters_only(a), _letters_only(b)
    if not left or not right:
        return False
    if left == right or left in right or right in left:
        return True

    var_left, var_right = _spelling_variant(left), _spelling_variant(right)
    if var_left == var_right or var_left in var_right or var_right in var_left:
        return True

    if abs(len(left) - len(right)) <= 2 and len(left) >= 3:
        return match_ratio(left, right) >= 0.7
    return False


def _trigrams(text: str) -> set[str]:
    grams: set[str] = set()
    for word in _WORD_RE.findall((text or "").lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i:i + 3])
    return grams


def trigram_similarity(a: str, b: str) -> float:
    """pg_trgm ``similarity()``: shared trigrams over the union of both sets."""
    left, right = _trigrams(a), _trigrams(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)
