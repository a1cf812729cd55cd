from __future__ import annotations

import logging
import re

from ..catalog.models import TagInfo
from ..catalog.store import DishStore
from ..text.dietary import RULES_BY_CANONICAL, TAG_NAME_VARIANTS, canonical_dietary, detect_dietary
from ..text.normalize import contains_phrase, normalize_text, tokenize
from .messages import t
from .models import FollowupKind, FollowupResolution, Intent, LastResultDish

logger = logging.getLogger(__name__)

ALL_ALLERGENS = "__allergens__"

ALLERGEN_SLUGS = {
    "peanuts", "tree-nuts", "crustaceans", "fish", "eggs", "milk", "sesame", "gluten",
    "soybeans", "celery", "mustard", "sulphites", "lupin", "molluscs", "wheat", "coconut",
}

_ALLERGEN_ALIASES: dict[str, list[str]] = {
    "nuts": ["peanuts", "tree-nuts"],
    "nut": ["peanuts", "tree-nuts"],
    "peanut": ["peanuts"],
    "egg": ["eggs"],
    "soy": ["soybeans"],
    "soya": ["soybeans"],
    "shellfish": ["crustaceans", "molluscs"],
    "sulfites": ["sulphites"],
    "dairy": ["milk"],
    "lactose": ["milk"],
}

_CLARIFY_LIMIT = 3

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_TRANSLATE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(in english|english please|translate (it )?(to|into) english|can you translate)\b"), "en"),
    (re.compile(r"på engelska"), "en"),
    (re.compile(r"(på svenska|in swedish|translate (it )?(to|into) swedish)"), "sv"),
    (re.compile(r"\b(in hindi|translate (it )?(to|into) hindi)\b"), "hi"),
    (re.compile(r"\b(in punjabi|translate (it )?(to|into) punjabi)\b"), "pa"),
]

# Attribute words only count inside a question; "spicy lamb vindaloo" is a search
_ATTRIBUTE_FRAME = r"\b(?:is it|is this|is that|is the|are they|how|är den|är det)\b.*"

_ATTRIBUTE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(_ATTRIBUTE_FRAME + r"\b(spicy|hot|stark)\b"), "spicy"),
    (re.compile(r"\bspice\s*level\b"), "spicy"),
    (re.compile(_ATTRIBUTE_FRAME + r"\b(creamy|krämig)\b"), "creamy"),
    (re.compile(_ATTRIBUTE_FRAME + r"\b(sweet|söt)\b"), "sweet"),
]

_ATTRIBUTE_EVIDENCE: dict[str, list[str]] = {
    "spicy": ["spicy", "hot", "chili", "chilli", "vindaloo", "jalfrezi", "madras", "peri peri", "pepper", "stark"],
    "creamy": ["creamy", "cream", "butter", "makhani", "korma", "malai", "coconut", "krämig"],
    "sweet": ["sweet", "honey", "sugar", "syrup", "dessert", "kulfi", "gulab", "halwa", "söt"],
}

_SHOW_MORE_FROM_PATTERNS = [
    re.compile(r"^(?:show|see|view)\s+(?:me\s+)?(?:more|all)(?:\s+dishes)?\s+(?:from|at)\s+(.+)$"),
    re.compile(r"^more\s+from\s+(.+)$"),
    re.compile(r"^(?:pull|get|view|show|see)\s+(?:me\s+)?(?:the\s+)?(?:menu|dishes)\s+(?:of|from|at)\s+(.+)$"),
    re.compile(r"^(?:show\s+(?:me\s+)?)?(?:the\s+)?full\s+menu\s+(?:of|from|at)\s+(.+)$"),
    re.compile(r"^visa\s+(?:fler|allt|mer)\s+från\s+(.+)$"),
]

_PAGINATE_PATTERNS = [
    re.compile(r"^(?:show\s+(?:me\s+)?)?more(?:\s+results)?(?:\s+please)?$"),
    re.compile(r"^(?:next\s+page|load\s+more|more\s+please)$"),
    re.compile(r"^(?:visa\s+fler|fler\s+resultat|visa\s+mer)$"),
]

_META_ALLERGEN_PATTERNS = [
    re.compile(r"\b(list|what|which|show)\b.*\ballergens?\b"),
    re.compile(r"\ballergens?\b.*\b(in it|in this|in that|does it have)\b"),
    re.compile(r"\ballergen info(rmation)?\b"),
]

_SINGLE_ALLERGEN_PATTERNS = [
    re.compile(r"\b(?:contains?|has|have|with|without)\s+(?:any\s+)?([a-z-]+)"),
    re.compile(r"\b(?:is there|are there|any)\s+([a-z-]+)\s+in\b"),
]

_IS_IT_PATTERN = re.compile(r"\bis\s+(?:it|this|that)\s+([a-z-]+)")

_ALLERGY_WORDS = ("allergen", "allergens", "allergy", "allergic", "allergies")

_PRONOUNS = ["it", "this", "that", "the dish", "the food", "these"]

_PLURAL_PATTERN = re.compile(r"\b(items|dishes|options|things|meals|foods)\b")


# ---------------------------------------------------------------------------
# Detection helpers
# ---------------------------------------------------------------------------


def _clean(query: str) -> str:
    return re.sub(r"[?!.,]+", " ", (query or "").lower()).strip()


def detect_translation_target(query: str) -> str | None:
    lower = _clean(query)
    for pattern, language in _TRANSLATE_PATTERNS:
        if pattern.search(lower):
            return language
    return None


def detect_attribute(query: str) -> str | None:
    lower = _clean(query)
    for pattern, attribute in _ATTRIBUTE_PATTERNS:
        if pattern.search(lower):
            return attribute
    return None


def extract_show_more_restaurant(query: str) -> str | None:
    lower = re.sub(r"\s+", " ", _clean(query))
    for pattern in _SHOW_MORE_FROM_PATTERNS:
        match = pattern.match(lower)
        if match:
            return match.group(1).strip() or None
    return None


def is_paginate_request(query: str) -> bool:
    lower = re.sub(r"\s+", " ", _clean(query))
    return any(p.match(lower) for p in _PAGINATE_PATTERNS)


def _allergen_slugs(word: str) -> list[str]:
    word = word.lower()
    if word in ALLERGEN_SLUGS:
        return [word]
    return _ALLERGEN_ALIASES.get(word, [])


def detect_tag_question(query: str) -> str | None:
    """
    The tag a question asks about: a canonical dietary tag, an allergen
    slug (or comma-joined slugs) or ``ALL_ALLERGENS``. None when the query
    is not a tag question.
    """
    lower = _clean(query)
    if any(p.search(lower) for p in _META_ALLERGEN_PATTERNS):
        return ALL_ALLERGENS

    for pattern in _SINGLE_ALLERGEN_PATTERNS:
        for match in pattern.finditer(lower):
            word = match.group(1)
            rest = lower[match.end():].lstrip()
            if rest.startswith("free") or word.endswith("-free"):
                continue
            slugs = _allergen_slugs(word)
            if slugs:
                return ",".join(slugs)

    dietary = detect_dietary(lower)
    if dietary:
        return dietary[0]

    match = _IS_IT_PATTERN.search(lower)
    if match and canonical_dietary(match.group(1)) in RULES_BY_CANONICAL:
        return canonical_dietary(match.group(1))

    if any(contains_phrase(lower, w) for w in _ALLERGY_WORDS):
        return ALL_ALLERGENS
    return None


def _uses_pronoun(query: str) -> bool:
    lower = _clean(query)
    return any(contains_phrase(lower, p) for p in _PRONOUNS)


def _is_plural_request(query: str) -> bool:
    lower = _clean(query)
    return bool(_PLURAL_PATTERN.search(lower)) or " they " in f" {lower} "


def find_referenced_dishes(query: str, intent: Intent, last_results: list[LastResultDish]) -> list[LastResultDish]:
    pronoun = _uses_pronoun(query)
    if pronoun and len(last_results) == 1:
        return list(last_results)

    if intent.dish_query:
        needle = normalize_text(intent.dish_query)
        matched = [
            d for d in last_results
            if needle and (needle in normalize_text(d.dish_name) or normalize_text(d.dish_name) in needle)
        ]
        if matched:
            return matched

    words = [w for w in tokenize(query) if len(w) > 2]
    matched = [d for d in last_results if any(w in tokenize(d.dish_name) for w in words)]
    if matched:
        return matched

    return list(last_results) if pronoun else []


def _dish_mismatch(intent: Intent, dish: LastResultDish) -> bool:
    """True when the query names a dish that shares nothing with ``dish``."""
    if not intent.dish_query:
        return False
    asked = normalize_text(intent.dish_query)
    name = normalize_text(dish.dish_name)
    if asked in name or name in asked:
        return False
    return not set(asked.split()) & set(name.split())


def _dish_context(dish: LastResultDish) -> str:
    return f"{dish.dish_name} at {dish.restaurant_name}" if dish.restaurant_name else dish.dish_name


def _clarification(matched: list[LastResultDish], language: str) -> FollowupResolution:
    candidates = matched[:_CLARIFY_LIMIT]
    names = ", ".join(_dish_context(d) for d in candidates)
    return FollowupResolution(
        kind=FollowupKind.CLARIFY,
        candidates=candidates,
        answer=t(language, "WHICH_DISH", list=names),
    )


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------


def _attribute_answer(attribute: str, dish: LastResultDish, language: str) -> str:
    keywords = _ATTRIBUTE_EVIDENCE[attribute]
    for source, text in (("description", dish.description), ("name", dish.dish_name)):
        lower = (text or "").lower()
        if any(contains_phrase(lower, k) for k in keywords):
            return t(language, "ATTRIBUTE_EVIDENCE", dish=dish.dish_name, attribute=attribute, source=source)
    return t(language, "ATTRIBUTE_NO_DATA", attribute=attribute, dish=dish.dish_name)


def _dish_tags(store: DishStore, dish: LastResultDish) -> list[TagInfo]:
    tags = store.fetch_tags([dish.dish_id]).get(dish.dish_id)
    if tags is not None:
        return tags
    return [
        TagInfo(id=slug, name=slug, slug=slug, type="allergen" if slug in ALLERGEN_SLUGS else "diet")
        for slug in dish.tag_slugs
    ]


def _tag_answer(tag: str, dish: LastResultDish, tags: list[TagInfo], language: str) -> tuple[str, bool]:
    context = _dish_context(dish)

    if tag == ALL_ALLERGENS:
        allergens = [tg.name for tg in tags if tg.type == "allergen" or tg.slug in ALLERGEN_SLUGS]
        if allergens:
            return t(language, "ALLERGEN_TAGGED_PREFIX", list=", ".join(allergens)), True
        return t(language, "ALLERGEN_NOT_TAGGED", dish=context), False

    slugs = {tg.slug.lower() for tg in tags} | {tg.name.lower() for tg in tags}
    if tag in RULES_BY_CANONICAL:
        accepted = TAG_NAME_VARIANTS.get(tag, (tag,))
        found = any(a in slugs for a in accepted)
        label = tag
        disclaimer = ""
    else:
        wanted = tag.split(",")
        found = any(s in slugs for s in wanted)
        label = " / ".join(wanted)
        disclaimer = " " + t(language, "TAGS_GUIDANCE_DISCLAIMER")

    prefix = t(language, "YES_PREFIX" if found else "NO_PREFIX")
    body = t(language, "TAGGED_YES" if found else "TAGGED_NO", dish=context, tag=label)
    return f"{prefix} {body}{disclaimer}", found


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def resolve_followup(
    query: str,
    intent: Intent,
    last_results: list[LastResultDish],
    store: DishStore,
) -> FollowupResolution:
    """
    Answer a question about the last shown dishes without a new search.

    Checked in priority order: translation, dish attribute, show more from a
    restaurant, plain pagination, then tag and allergen questions. Anything
    else is handed back to the planner as PASS or NOT_FOUND.
    """
    target = detect_translation_target(query)
    if target:
        return FollowupResolution(kind=FollowupKind.TRANSLATE_LAST, target_language=target)

    attribute = detect_attribute(query)
    if attribute and last_results:
        named = [d for d in last_results if any(len(w) > 3 and w in _clean(query) for w in tokenize(d.dish_name))]
        matched = named or find_referenced_dishes(query, intent, last_results)
        if len(matched) > 1:
            return _clarification(matched, intent.language)
        if matched:
            dish = matched[0]
            return FollowupResolution(
                kind=FollowupKind.RESOLVED,
                matched_dish=dish,
                answer=_attribute_answer(attribute, dish, intent.language),
            )
        logger.info("Attribute question %r names no shown dish, passing", query)

    restaurant = extract_show_more_restaurant(query)
    if restaurant:
        for dish in last_results:
            name = dish.restaurant_name.lower()
            if restaurant in name or name in restaurant:
                return FollowupResolution(
                    kind=FollowupKind.SHOW_MORE_RESTAURANT,
                    restaurant_id=dish.restaurant_id,
                    restaurant_name=dish.restaurant_name,
                )
        return FollowupResolution(kind=FollowupKind.SHOW_MORE_RESTAURANT, restaurant_name=restaurant)

    if is_paginate_request(query):
        return FollowupResolution(kind=FollowupKind.PAGINATE)

    if not last_results:
        return FollowupResolution(kind=FollowupKind.NOT_FOUND)

    tag = detect_tag_question(query)
    if tag is None:
        return FollowupResolution(kind=FollowupKind.PASS)

    if _is_plural_request(query):
        logger.info("Plural tag question %r, passing to search", query)
        return FollowupResolution(kind=FollowupKind.PASS)

    matched = find_referenced_dishes(query, intent, last_results)
    if not matched:
        return FollowupResolution(kind=FollowupKind.NOT_FOUND)

    if len(matched) > 1:
        return _clarification(matched, intent.language)

    dish = matched[0]
    if not _uses_pronoun(query) and _dish_mismatch(intent, dish):
        logger.info("Query names %r but matched %r, passing", intent.dish_query, dish.dish_name)
        return FollowupResolution(kind=FollowupKind.PASS)

    answer, found = _tag_answer(tag, dish, _dish_tags(store, dish), intent.language)
    return FollowupResolution(kind=FollowupKind.RESOLVED, matched_dish=dish, answer=answer, tag_found=found)
