from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .normalize import contains_phrase, has_latin_letter

logger = logging.getLogger(__name__)


def _variant_pattern(variant: str) -> str:
    escaped = re.escape(variant)
    # Latin variants need word boundaries ("veg" must not match "vegan").
    # Indic script words carry combining marks that \w does not cover.
    if has_latin_letter(variant):
        return rf"(?<!\w){escaped}(?!\w)"
    return escaped


@dataclass(frozen=True)
class DietaryRule:
    """One canonical dietary tag and the multilingual keywords that evidence it."""

    name: str
    canonical: str
    variants: tuple[str, ...]
    hard: bool = True
    pattern: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Longest first so "gluten free" wins over a shorter overlapping variant
        ordered = sorted(self.variants, key=len, reverse=True)
        compiled = re.compile("|".join(_variant_pattern(v) for v in ordered), re.IGNORECASE)
        object.__setattr__(self, "pattern", compiled)

    def matches(self, text: str) -> bool:
        return self.pattern.search(text or "") is not None

    def strip(self, text: str) -> str:
        return self.pattern.sub(" ", text or "")


# Evaluated top to bottom. Vegan precedes vegetarian: a vegan query must never
# inherit the weaker vegetarian constraint.
DIETARY_RULES: tuple[DietaryRule, ...] = (
    DietaryRule(
        "vegan", "vegan",
        ("vegan", "vegansk", "vegane", "vegaaninen", "vegaani", "plant-based", "växtbaserad",
         "वीगन", "ਵੀਗਨ"),
    ),
    DietaryRule(
        "vegetarian", "vegetarian",
        ("vegetarian", "vegetarisk", "vegetarisch", "vego", "veggie", "veg", "kasvis",
         "meat-free", "köttfri", "vegeterian", "vegatarian", "vegeratian",
         "शाकाहारी", "ਸ਼ਾਕਾਹਾਰੀ"),
    ),
    DietaryRule("halal", "halal", ("halal", "helal", "हलाल", "ਹਲਾਲ")),
    DietaryRule("satvik", "satvik", ("satvik", "sattvic", "सात्विक")),
    DietaryRule(
        "gluten_free", "gluten-free",
        ("gluten free", "gluten-free", "glutenfree", "glutenfri", "glutenfritt", "glutenfrei",
         "gluteeniton"),
    ),
    DietaryRule(
        "lactose_free", "lactose-free",
        ("lactose free", "lactose-free", "dairy free", "dairy-free", "laktosfri", "mjölkfri",
         "laktosefrei", "laktosefri", "laktoositon"),
    ),
    DietaryRule(
        "nut_free", "nut-free",
        ("nut free", "nut-free", "peanut free", "peanut-free", "tree nut free", "no nuts"),
    ),
    DietaryRule("kosher", "kosher", ("kosher",), hard=False),
    DietaryRule("jain", "jain", ("jain",), hard=False),
    DietaryRule("pescetarian", "pescetarian", ("pescetarian", "pescatarian"), hard=False),
)

RULES_BY_CANONICAL: dict[str, DietaryRule] = {r.canonical: r for r in DIETARY_RULES}

# Terms a completion may put in its dietary array, mapped to canonical tags
DIETARY_SYNONYMS: dict[str, str] = {
    # Swedish
    "vegansk": "vegan",
    "vegetarisk": "vegetarian",
    "glutenfri": "gluten-free",
    "laktosfri": "lactose-free",
    "mjölkfri": "lactose-free",
    # German
    "vegane": "vegan",
    "vegetarisch": "vegetarian",
    "glutenfrei": "gluten-free",
    "laktosefrei": "lactose-free",
    # Danish / Norwegian
    "laktosefri": "lactose-free",
    # Finnish
    "vegaaninen": "vegan",
    "vegaani": "vegan",
    "kasvis": "vegetarian",
    "gluteeniton": "gluten-free",
    "laktoositon": "lactose-free",
    # English shorthands
    "veg": "vegetarian",
    "veggie": "vegetarian",
    "vego": "vegetarian",
    "ve": "vegetarian",
    "helal": "halal",
    "sattvic": "satvik",
    "gluten free": "gluten-free",
    "lactose free": "lactose-free",
    "dairy free": "lactose-free",
    "dairy-free": "lactose-free",
    "nut free": "nut-free",
    "pescatarian": "pescetarian",
}

# Catalog tag names that satisfy each canonical requirement. A dish passes a
# requirement when it carries at least one of these tags.
TAG_NAME_VARIANTS: dict[str, tuple[str, ...]] = {
    "vegetarian": ("vegetarian", "vegan"),
    "vegan": ("vegan",),
    "halal": ("halal",),
    "satvik": ("satvik", "sattvic"),
    "kosher": ("kosher",),
    "jain": ("jain",),
    "pescetarian": ("pescetarian", "pescatarian"),
    "gluten-free": ("gluten free", "gluten-free"),
    "lactose-free": ("lactose free", "lactose-free", "dairy free"),
    "nut-free": ("nut free", "nut-free"),
}


def canonical_dietary(term: str) -> str:
    """Map a free-form dietary term to its canonical tag. Unknown terms pass through lowercased."""
    lowered = (term or "").lower().strip()
    if lowered in RULES_BY_CANONICAL:
        return lowered
    if lowered in DIETARY_SYNONYMS:
        return DIETARY_SYNONYMS[lowered]
    for rule in DIETARY_RULES:
        if rule.pattern.fullmatch(lowered):
            return rule.canonical
    return lowered


def detect_dietary(text: str) -> list[str]:
    """Canonical dietary tags evidenced by ``text``, in rule order."""
    return [rule.canonical for rule in DIETARY_RULES if rule.matches(text)]


def detect_hard_tags(text: str, dietary: list[str] | None = None) -> list[str]:
    """Strict constraints found in ``text`` or in already validated ``dietary`` terms."""
    found: list[str] = []
    for rule in DIETARY_RULES:
        if not rule.hard:
            continue
        if rule.matches(text) or rule.canonical in (dietary or []):
            found.append(rule.canonical)
    if "vegan" in found and "vegetarian" in found:
        found.remove("vegetarian")
    return found


def validate_dietary(proposed: list[str], query: str) -> list[str]:
    """Keep only proposed dietary terms that are evidenced in the current utterance."""
    kept: list[str] = []
    for term in proposed:
        if not isinstance(term, str) or not term.strip():
            continue
        canonical = canonical_dietary(term)
        rule = RULES_BY_CANONICAL.get(canonical)
        evidenced = (rule is not None and rule.matches(query)) or (
            contains_phrase(query, term.lower().strip()) or contains_phrase(query, canonical)
        )
        if not evidenced:
            logger.info("Cleared dietary=%r, not found in query %r", term, query)
            continue
        if canonical not in kept:
            kept.append(canonical)
    return kept


def strip_dietary_terms(text: str) -> str:
    """Remove every dietary keyword variant from ``text`` and collapse whitespace."""
    for rule in DIETARY_RULES:
        text = rule.strip(text)
    return re.sub(r"\s+", " ", text).strip()


def is_dietary_word(word: str) -> bool:
    return any(rule.pattern.fullmatch((word or "").lower()) for rule in DIETARY_RULES)
