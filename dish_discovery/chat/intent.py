from __future__ import annotations

import json
import logging
import re

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import complete_structured
from ..search.retrieval import FILLER_WORDS
from ..text.dietary import detect_dietary, detect_hard_tags, is_dietary_word, strip_dietary_terms, validate_dietary
from ..text.normalize import contains_phrase, detect_language, has_latin_letter, normalize_text
from .models import ChatState, ChatTurn, Intent, IntentDraft

logger = logging.getLogger(__name__)

_MAX_HISTORY = 6  # 3 exchanges

# ---------------------------------------------------------------------------
# LLM Prompts
# ---------------------------------------------------------------------------

INTENT_EXTRACTION_PROMPT = """\
You are an intent parser for a food discovery app. Extract structured data from \
queries in ANY language.

Extract:
- dish_query: Clean dish name (English). REMOVE dietary words. REMOVE generic food words.
- city: Normalized city name.
- dietary: Array of requirements (e.g. ["vegan", "halal", "vegetarian"]).
- allergy: Array of allergies.
- ingredients: Array of ingredients mentioned.
- price_max: Maximum price in SEK or null.
- is_vague: Boolean.
- restaurant_name: String or null.
- cuisine: Cuisine type when the user asks for "[cuisine] restaurants/food/places".
- show_menu: TRUE only if the user explicitly asks to SEE a menu ("show menu", "menu please"). \
FALSE when "menu" is only mentioned while searching for a dish.
- is_restaurant_lookup: TRUE if the user looks for a SPECIFIC restaurant by name or asks about \
its attributes (phone, hours, address). FALSE for cuisine searches like "indian restaurants".
- is_drink: Boolean.
- is_followup: TRUE for questions about details of a dish ("what is that", "is it spicy?", \
"what is aloo gobi?").
- language: ISO code of the USER'S QUERY ("en", "sv", "pa", "hi", "ar").

Rules:
1. Generic food words ("food", "meal", "khana", "mat") without a dish name -> dish_query null.
2. Dietary words MUST go in the dietary array, never in dish_query.
3. is_vague MUST be false if dietary, allergy, restaurant_name, show_menu, ingredients, price or cuisine exist.

Examples:
- "ਕੋਈ ਹਲਾਲ ਭੋਜਨ?" -> {"dish_query": null, "dietary": ["halal"], "language": "pa", "is_vague": false}
- "veg pizza?" -> {"dish_query": "pizza", "dietary": ["vegetarian"], "language": "en", "is_vague": false}
- "indian restaurants" -> {"dish_query": null, "cuisine": "indian", "is_restaurant_lookup": false}
- "what is aloo gobi?" -> {"dish_query": null, "is_followup": true, "language": "en"}
- "butter chicken kya hai" -> {"dish_query": null, "is_followup": true, "language": "hi"}

Return ONLY valid JSON."""

_RESPONSE_SHAPE = """\
Return JSON in this exact format:
{
  "dish_query": "clean dish name or null",
  "city": "normalized city name or null",
  "dietary": [],
  "allergy": [],
  "ingredients": [],
  "price_max": null,
  "language": "language code",
  "is_vague": false,
  "restaurant_name": null,
  "cuisine": null,
  "show_menu": false,
  "is_drink": false,
  "is_followup": false
}"""

# ---------------------------------------------------------------------------
# Word lists
# ---------------------------------------------------------------------------

_QUESTION_WORDS = {
    "do", "does", "is", "are", "can", "have", "show", "find", "near", "best", "cheap", "options",
    "what", "where", "how", "any", "some", "get", "want", "looking",
    "har", "finns", "kan", "vill", "något", "vad", "var", "hur", "bästa", "billig", "nära",
    "alternativ", "visa", "hitta", "sök",
}

_DISH_WORDS = {
    "pizza", "burger", "chicken", "curry", "rice", "naan", "pasta", "salad",
    "soup", "steak", "fish", "lamb", "beef", "pork", "biryani", "tikka",
    "korma", "vindaloo", "tandoori", "kebab", "falafel", "hummus",
    "sushi", "ramen", "pho", "tacos", "burrito", "wings", "fries", "noodles",
    "butter", "paneer", "dal", "daal", "samosa", "pakora", "paratha", "roti",
    "dosa", "idli", "chutney", "raita", "lassi", "chai", "kulfi",
    "gulab", "jamun", "kheer", "halwa", "jalebi", "ladoo", "barfi",
    "sandwich", "wrap", "roll", "bowl", "platter", "combo", "meal", "thali",
    "margherita", "pepperoni", "vegetable", "mushroom", "funghi",
    "calzone", "garlic", "bread", "nuggets",
    "anything", "something", "food", "dish", "dishes", "options",
    "roganjosh", "rogan", "josh", "makhani", "masala", "bhuna", "balti",
    "madras", "jalfrezi", "saag", "palak", "aloo", "gobi", "chana",
    "smoothie", "shake", "juice", "drink",
}

_FILTER_WORDS = {
    "veg", "vegan", "vegetarian", "halal", "kosher", "gluten", "dairy", "lactose",
    "spicy", "mild", "hot", "cold", "cheap", "affordable", "best", "good",
}

_CUISINE_WORDS = {
    "italian", "indian", "chinese", "thai", "mexican", "japanese", "korean",
    "french", "american", "mediterranean", "middle", "eastern", "asian",
}

_LOCATION_WORDS = {"near", "nearby", "close", "around", "in", "at", "from"}

# Conversational words that never appear in a bare restaurant name query
_NOT_NAME_WORDS = {
    "please", "pls", "more", "next", "page", "translate", "english", "swedish", "hindi", "punjabi",
    "engelska", "svenska", "menu", "menyn", "back", "exit", "return", "leave", "close", "tillbaka",
    "thanks", "thank", "hi", "hello", "hey", "hej", "yes", "no", "ok", "okay",
    "restaurants", "places", "restauranger",
}

_FOOD_INTENT_PHRASES = [
    "have", "serves", "has", "do they have", "does", "does it have",
    "find", "menu", "dish", "dishes", "items", "options", "food", "eat",
    "order", "get", "serve", "offer", "make",
]

_PLACE_LEVEL_PHRASES = [
    "address", "phone", "call", "number", "website", "site",
    "opening hours", "open now", "open", "hours", "when", "close", "closed",
    "directions", "location", "where is", "how to get",
    "pet friendly", "pets", "wifi", "parking", "wheelchair", "accessible",
    "reservation", "book", "booking",
]

_VAGUE_TERMS = ["anything", "something", "whatever", "hungry", "surprise me", "random"]

# Stripped before deciding whether anything dish-like is left
_GENERIC_WORDS = [
    "food", "dish", "dishes", "options", "option", "items", "item",
    "restaurant", "restaurants",
    "recommend", "recommended", "recommendation", "suggest", "suggestion",
    "show", "tell", "give", "find", "looking for", "looking", "want", "need",
    "please", "can", "could", "would", "you", "me", "any", "some",
    "is", "it", "this", "that", "are", "there", "do", "does", "they", "have", "has",
    "what", "which", "a", "an", "the", "i", "m", "im", "am", "we", "so", "very", "really", "to", "eat",
    "how", "much", "price", "cost", "costs",
    "mat", "rätt", "rätter", "något",
    "khana", "khaana", "bhojan", "kuch", "koi",
    "खाना", "भोजन", "कुछ", "कोई", "ਖਾਣਾ", "ਭੋਜਨ", "ਕੁਝ", "ਕੋਈ",
]

_MENU_STANDALONE_RE = re.compile(r"^(menu|full\s+menu|entire\s+menu|whole\s+menu)$", re.IGNORECASE)

_MENU_PATTERNS = [
    _MENU_STANDALONE_RE,
    re.compile(r"(pull|show|open|get|display)\s+(me\s+)?(the\s+)?(full|entire|whole)?\s*menu", re.IGNORECASE),
    re.compile(r"see\s+(the\s+)?(full|entire|whole)?\s*menu", re.IGNORECASE),
    re.compile(r"menu\s+(please|pls)", re.IGNORECASE),
    re.compile(r"(need|want)\s+(the\s+)?(full|entire|whole)?\s*menu", re.IGNORECASE),
    re.compile(r"menu\s+of\s+([a-zåäö\s]+)", re.IGNORECASE),
    re.compile(r"visa\s+(hela\s+)?menyn", re.IGNORECASE),
]

_MENU_OF_RE = re.compile(r"menu\s+of\s+([a-zåäö\s]+)", re.IGNORECASE)

_EXIT_PATTERNS = [
    re.compile(r"^(back|exit)$", re.IGNORECASE),
    re.compile(r"^(search all|other restaurants|back to discovery|show all restaurants)$", re.IGNORECASE),
    re.compile(r"^(go back|return|leave|close)$", re.IGNORECASE),
    re.compile(r"^(tillbaka|avsluta)$", re.IGNORECASE),
]

_DRINK_SYNONYMS: dict[str, list[str]] = {
    "smoothie": ["lassi", "shake", "juice", "drink"],
    "shake": ["lassi", "smoothie", "juice", "drink"],
    "drink": ["lassi", "smoothie", "shake", "juice"],
}
_FLAVOR_WORDS = ["mango", "chocolate", "strawberry", "banana", "vanilla", "coffee", "tea"]

_FOLLOWUP_RE = re.compile(r"\b(is it|does it|is this|is that|how much is it|how much does it|what.s in it)\b", re.IGNORECASE)

_AMOUNT_RE = re.compile(
    r"(?:under|below|less than|max|upto|up to|högst|under)\s*(\d+)\s*(?:kr|sek|:-)?",
    re.IGNORECASE,
)
_LOCATION_PHRASE_RE = re.compile(r"\b(?:in|at|near|close to)\s+[a-zåäö]+\b", re.IGNORECASE)
_CITY_PHRASE_RE = re.compile(r"\b(?:in|near|close to)\s+[a-zåäö]+\b", re.IGNORECASE)
_INGREDIENT_ONLY_RE = re.compile(r"^(?:(?:dishes?|items?|options?|food)\s+(?:with|containing|that have)|with)\s+", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


def _words(text: str) -> list[str]:
    return [w for w in text.strip().split() if w]


def looks_like_restaurant_name(query: str) -> bool:
    """Short Latin-script text with no question, dietary, dish or location words."""
    cleaned = re.sub(r"\s+", " ", (query or "").strip())
    if "?" in cleaned or not has_latin_letter(cleaned):
        return False

    cleaned = re.sub(r"[.!]+$", "", cleaned)
    words = _words(cleaned)
    if not 1 <= len(words) <= 5:
        return False

    lower = [w.lower().strip(",") for w in words]
    if any(w in _QUESTION_WORDS for w in lower):
        return False
    if detect_dietary(cleaned) or any(w in _FILTER_WORDS for w in lower):
        return False
    if any(w in _DISH_WORDS for w in lower):
        return False
    if len(words) == 1 and lower[0] in _CUISINE_WORDS:
        return False
    if any(w in _LOCATION_WORDS or w in _NOT_NAME_WORDS for w in lower):
        return False
    if any(contains_phrase(cleaned.lower(), v) for v in _VAGUE_TERMS):
        return False
    if len(words) == 2 and lower[0] in _CUISINE_WORDS and lower[1] in ("restaurant", "food", "place"):
        return False

    if len(words) >= 2:
        return True
    # A single word only counts when capitalized ("Tavolino")
    return cleaned[0].isupper()


_NAME_STOPWORDS = (
    _QUESTION_WORDS | _DISH_WORDS | _FILTER_WORDS | _CUISINE_WORDS | _LOCATION_WORDS | _NOT_NAME_WORDS
    | set(_GENERIC_WORDS) | {"id", "ive", "ill"}
)


def restaurant_mention(query: str) -> str | None:
    """
    First run of capitalized words in a food request that are not dish,
    dietary, question or filler words ("Does Tavolino have vegan pizza?").
    Words after "in"/"near" are treated as places, not names.
    """
    text = _CITY_PHRASE_RE.sub(" | ", query or "")
    for segment in re.split(r"[?!.,;:]", text):
        run: list[str] = []
        for word in segment.split():
            key = word.lower().replace("'", "").replace("’", "")
            if len(word) > 1 and word[0].isupper() and key not in _NAME_STOPWORDS and not is_dietary_word(key):
                run.append(word)
            elif run:
                break
        if run:
            return " ".join(run)
    return None


def _remove_words(text: str, words: str) -> str:
    for word in words.split():
        text = re.sub(rf"(?<!\w){re.escape(word)}(?!\w)", " ", text, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", text).strip()


def has_food_intent(query: str) -> bool:
    lower = (query or "").lower()
    if any(contains_phrase(lower, p) for p in _FOOD_INTENT_PHRASES):
        return True
    if detect_dietary(lower):
        return True
    return any(w in _DISH_WORDS for w in normalize_text(lower).split())


def is_place_level_query(query: str) -> bool:
    lower = (query or "").lower()
    return any(contains_phrase(lower, p) for p in _PLACE_LEVEL_PHRASES)


def is_menu_request(query: str) -> bool:
    return any(p.search(query.strip()) for p in _MENU_PATTERNS)


def is_exit_phrase(query: str) -> bool:
    text = (query or "").strip().rstrip("!.")
    return any(p.match(text) for p in _EXIT_PATTERNS)


def parse_price_max(query: str) -> float | None:
    match = _AMOUNT_RE.search(query or "")
    return float(match.group(1)) if match else None


def _remove_phrases(text: str, phrases: list[str]) -> str:
    """Drop whole-phrase occurrences from normalized ``text``."""
    out = f" {normalize_text(text)} "
    for phrase in sorted(phrases, key=len, reverse=True):
        out = re.sub(rf"(?<=\s){re.escape(phrase)}(?=\s)", " ", out)
    return re.sub(r"\s+", " ", out).strip()


def _strip_fillers(text: str) -> str:
    for filler in FILLER_WORDS:
        text = re.sub(rf"\b{filler}\b", " ", text, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", text).strip()


def expand_drink_query(dish_query: str) -> str:
    """"mango smoothie" also finds lassis, shakes and juices of the same flavour."""
    lower = dish_query.lower()
    flavor = next((f for f in _FLAVOR_WORDS if f in lower), None)
    if not flavor:
        return dish_query
    for drink_word, synonyms in _DRINK_SYNONYMS.items():
        if drink_word in lower:
            expanded = " ".join([dish_query, *(f"{flavor} {s}" for s in synonyms)])
            logger.info("Expanded drink query %r -> %r", dish_query, expanded)
            return expanded
    return dish_query


def _validate_restaurant_name(candidate: str | None, query: str) -> str | None:
    name = (candidate or "").strip()
    if not name:
        return None
    lower = query.lower()
    if not any(word in lower for word in name.lower().split() if len(word) >= 3):
        logger.info("Cleared restaurant_name=%r, not found in query %r", name, query)
        return None
    return name


def _fallback_draft(query: str) -> IntentDraft:
    return IntentDraft(dish_query=re.sub(r"[?.!]+$", "", query.strip()) or None)


# ---------------------------------------------------------------------------
# LLM Call
# ---------------------------------------------------------------------------


def _history_text(history: list[ChatTurn] | None) -> str:
    lines = [f"{turn.role}: {turn.content}" for turn in (history or [])[-_MAX_HISTORY:] if turn.content]
    return "\n".join(lines)


def _request_draft(query: str, history: list[ChatTurn] | None, config: LLMConfig) -> IntentDraft | None:
    user_prompt = f"Parse this query: {json.dumps(query, ensure_ascii=False)}"
    context = _history_text(history)
    if context:
        user_prompt += f"\n\nPrevious conversation:\n{context}"
    user_prompt += f"\n\n{_RESPONSE_SHAPE}"
    return complete_structured(INTENT_EXTRACTION_PROMPT, user_prompt, IntentDraft, config=config)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_intent(
    query: str,
    history: list[ChatTurn] | None = None,
    chat_state: ChatState | None = None,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> Intent:
    """
    Turn one utterance into an ``Intent``.

    The completion only proposes a draft. Language, dietary terms, hard tags,
    restaurant names, menu requests and the dish query are all re-checked
    against the literal query, because the completion tends to carry context
    over from earlier turns. Without a usable completion the raw query is the
    draft, so a turn never fails here.
    """
    query = (query or "").strip()
    draft = _request_draft(query, history, config) if query else None
    if draft is None:
        logger.warning("Intent extraction unavailable, using raw query for %r", query)
        draft = _fallback_draft(query)
    return refine_intent(query, draft, chat_state)


def refine_intent(query: str, draft: IntentDraft, chat_state: ChatState | None = None) -> Intent:
    """Deterministic post-processing of a draft. Each step only reads the current query."""
    lower = query.lower()
    latin = has_latin_letter(query)

    language = detect_language(query) or (draft.language or "en").lower()

    dietary = validate_dietary(draft.dietary, query)
    for canonical in detect_dietary(query):
        if canonical not in dietary:
            dietary.append(canonical)

    dish_query = (draft.dish_query or "").strip() or None
    restaurant_name = _validate_restaurant_name(draft.restaurant_name, query) if latin else None
    is_vague = draft.is_vague
    show_menu = draft.show_menu
    price_max = draft.price_max if draft.price_max is not None else parse_price_max(query)

    # ── Restaurant lookup ──
    command = is_menu_request(query) or is_exit_phrase(query)
    if latin and not restaurant_name and not command and has_food_intent(query):
        restaurant_name = restaurant_mention(query)
        if restaurant_name:
            logger.info("Restaurant %r mentioned in food request %r", restaurant_name, query)

    if not latin:
        is_lookup = False
    elif command:
        is_lookup = False
    elif restaurant_name and has_food_intent(query) and not is_place_level_query(query):
        logger.info("Restaurant name with food intent, scoped dish search for %r", query)
        is_lookup = False
    elif looks_like_restaurant_name(query):
        is_lookup = True
        restaurant_name = restaurant_name or re.sub(r"[?!.,]", "", query).strip()
        dish_query = None
        logger.info("Heuristic restaurant lookup for %r", query)
    else:
        is_lookup = bool(restaurant_name)

    # ── Menu requests ──
    in_restaurant = chat_state is not None and chat_state.in_restaurant
    if in_restaurant and _MENU_STANDALONE_RE.match(query):
        show_menu = True
        dish_query = None
    elif is_menu_request(query):
        show_menu = True
        dish_query = None
        if not restaurant_name:
            match = _MENU_OF_RE.search(lower)
            if match:
                restaurant_name = match.group(1).strip()
    if show_menu:
        is_vague = False

    # ── Dish query cleanup ──
    if dish_query:
        cleaned = _LOCATION_PHRASE_RE.sub(" ", _AMOUNT_RE.sub(" ", dish_query))
        if restaurant_name and not is_lookup:
            cleaned = _remove_words(cleaned, restaurant_name)
        cleaned = _strip_fillers(strip_dietary_terms(cleaned))
        dish_query = cleaned or None

    if dish_query:
        dish_query = expand_drink_query(dish_query)

    if dish_query:
        reduced = _remove_phrases(strip_dietary_terms(dish_query), _VAGUE_TERMS + _GENERIC_WORDS)
        if reduced:
            if reduced != normalize_text(dish_query):
                dish_query = reduced
        elif dietary or draft.ingredients:
            dish_query = None
        else:
            dish_query = None
            is_vague = True

    if draft.ingredients and dish_query and _INGREDIENT_ONLY_RE.match(dish_query):
        logger.info("Clearing dish_query=%r, ingredients %s", dish_query, draft.ingredients)
        dish_query = None

    exit_restaurant = draft.exit_restaurant or is_exit_phrase(query)
    if is_exit_phrase(query):
        dish_query = None

    if (
        not dish_query
        and not is_vague
        and not dietary
        and not draft.ingredients
        and not (show_menu or is_lookup or exit_restaurant or draft.cuisine)
        and query
    ):
        fallback = _LOCATION_PHRASE_RE.sub("", query)
        fallback = _AMOUNT_RE.sub("", fallback)
        dish_query = re.sub(r"[?.!]+$", "", fallback).strip() or None

    if dietary or draft.allergy or draft.ingredients or restaurant_name or draft.cuisine or price_max is not None:
        is_vague = False

    hard_tags = detect_hard_tags(query, dietary)

    intent = Intent(
        dish_query=dish_query,
        city=(draft.city or "").strip().upper() or None,
        dietary=dietary,
        allergy=draft.allergy,
        ingredients=draft.ingredients,
        hard_tags=hard_tags,
        price_max=price_max,
        language=language,
        original_query=query,
        is_vague=is_vague,
        is_followup=draft.is_followup or bool(_FOLLOWUP_RE.search(query)),
        is_restaurant_lookup=is_lookup,
        restaurant_name=restaurant_name,
        show_menu=show_menu,
        exit_restaurant=exit_restaurant,
        cuisine=(draft.cuisine or "").strip().lower() or None,
        is_drink=draft.is_drink,
    )
    logger.debug("Parsed intent: %s", intent.model_dump())
    return intent
