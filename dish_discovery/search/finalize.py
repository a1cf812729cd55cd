from __future__ import annotations

import logging
import re

from ..text.normalize import is_similar, normalize_text
from .models import CardPagination, DishMatch, RestaurantCard, TruncationMeta

logger = logging.getLogger(__name__)

DIET_WORDS = {
    "veg", "veggie", "vegetarian", "vegan", "halal", "kosher",
    "glutenfree", "lactosefree", "dairyfree",
}

STOPWORDS = {"a", "an", "the", "and", "or", "with", "without", "for", "of", "to", "in", "on", "near", "me"}

MAX_RESTAURANTS = 8
MAX_DISHES_PER_RESTAURANT = 4


def query_tokens(dish_query: str) -> list[str]:
    """Dish-query tokens without stopwords or diet words ("gluten-free" -> "glutenfree")."""
    norm = normalize_text(re.sub(r"-", "", dish_query or ""))
    return [t for t in norm.split() if t and t not in STOPWORDS and t not in DIET_WORDS]


def required_token_matches(tokens: list[str]) -> int:
    if len(tokens) <= 1:
        return 1
    return min(2, len(tokens))


def matches_dish_query(match: DishMatch, dish_query: str) -> bool:
    tokens = query_tokens(dish_query)
    if not tokens:
        return True
    words = [
        w for w in normalize_text(" ".join(
            s for s in (match.name, match.description, match.section_name) if s
        )).split()
        if len(w) >= 3 and w not in STOPWORDS
    ]
    found = sum(1 for tok in tokens if any(is_similar(tok, w) for w in words))
    return found >= required_token_matches(tokens)


def is_vegan_strict(dietary: list[str] | None) -> bool:
    return "vegan" in {normalize_text(d) for d in dietary or []}


def dish_is_vegan(match: DishMatch) -> bool:
    return "vegan" in {s.lower() for s in match.tag_slugs}


def finalize_results(
    cards: list[RestaurantCard],
    *,
    mode: str = "discovery",
    current_restaurant_id: str | None = None,
    dish_query: str | None = None,
    dietary: list[str] | None = None,
) -> list[RestaurantCard]:
    """
    Focus isolation, then per-dish re-validation.

    In ``restaurant`` mode only the focused restaurant's card can survive.
    With a dish query or a strict vegan constraint, cards left without
    matches are dropped; otherwise every card is kept.
    """
    out = cards
    if mode == "restaurant":
        out = [c for c in out if current_restaurant_id and c.id == current_restaurant_id]

    query = (dish_query or "").strip()
    vegan_strict = is_vegan_strict(dietary)

    result: list[RestaurantCard] = []
    for card in out:
        matches = [
            m for m in card.matches
            if (not query or matches_dish_query(m, query)) and (not vegan_strict or dish_is_vegan(m))
        ]
        if (query or vegan_strict) and not matches:
            continue
        result.append(card.model_copy(update={"matches": matches}))

    if len(result) != len(cards):
        logger.debug("Finalizer kept %d of %d cards (mode=%s)", len(result), len(cards), mode)
    return result


def truncate_cards(
    cards: list[RestaurantCard],
    max_restaurants: int = MAX_RESTAURANTS,
    max_dishes_per_restaurant: int = MAX_DISHES_PER_RESTAURANT,
    offset: int = 0,
) -> tuple[list[RestaurantCard], TruncationMeta]:
    """Cap restaurants and dishes per restaurant, reporting what was cut and where to resume."""
    total_restaurants = len(cards)
    total_matches = sum(len(c.matches) for c in cards)

    sliced: list[RestaurantCard] = []
    for card in cards[offset: offset + max_restaurants]:
        total = len(card.matches)
        shown = card.matches[:max_dishes_per_restaurant]
        sliced.append(card.model_copy(update={
            "matches": shown,
            "more_dishes_count": max(0, total - max_dishes_per_restaurant),
            "pagination": CardPagination(
                shown=len(shown),
                total=total,
                remaining=total - len(shown),
                next_offset=len(shown) if total > len(shown) else None,
            ),
        }))

    returned_matches = sum(len(c.matches) for c in sliced)
    has_more_restaurants = offset + len(sliced) < total_restaurants
    meta = TruncationMeta(
        total_restaurants=total_restaurants,
        total_matches=total_matches,
        truncated=has_more_restaurants or total_matches > returned_matches,
        restaurants_returned=len(sliced),
        dishes_per_restaurant=max_dishes_per_restaurant,
        next_offset=offset + len(sliced) if has_more_restaurants else None,
    )
    return sliced, meta
