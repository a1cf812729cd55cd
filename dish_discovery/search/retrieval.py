from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable

from ..catalog.models import SearchFilters, TagInfo
from ..catalog.store import DishStore
from ..embeddings.encoder import EmbeddingError
from ..text.dietary import RULES_BY_CANONICAL, TAG_NAME_VARIANTS, canonical_dietary, strip_dietary_terms
from ..text.normalize import normalize_text
from .config import DEFAULT_SEARCH_CONFIG, SearchConfig
from .hybrid import EmbedFn, TranslateFn, run_hybrid_search, to_candidate
from .models import (
    DishMatch,
    DishSearchRequest,
    HybridCandidate,
    RestaurantCard,
    RetrievalStep,
    SearchOutcome,
)

logger = logging.getLogger(__name__)

# Never required to match in dish name/description/section
POSTFILTER_STOPWORDS = {
    "any", "some", "something", "want", "find", "show",
    "option", "options", "choice", "choices",
    "drink", "drinks", "beverage", "beverages",
    "flavor", "flavour", "with", "to", "for", "me",
}

FILLER_WORDS = ["any", "some", "something", "pls", "please", "want", "looking", "find", "show", "me", "do", "they", "have"]

# Interchangeable in an expanded drink query ("mango smoothie mango lassi ...")
DRINK_WORDS = {"smoothie", "shake", "lassi", "juice", "drink"}

LEGACY_MIN_SEMANTIC_HITS = 3


# ---------------------------------------------------------------------------
# Query preparation
# ---------------------------------------------------------------------------


def build_keyword_query(query_text: str | None, ingredients: list[str] | None = None) -> str | None:
    """Dish text minus dietary keywords and filler words. None means tag-only."""
    cleaned = normalize_text(query_text or "")
    if not cleaned and ingredients:
        cleaned = normalize_text(" ".join(ingredients))
    if not cleaned:
        return None

    cleaned = strip_dietary_terms(cleaned)
    for filler in FILLER_WORDS:
        cleaned = re.sub(rf"\b{filler}\b", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned or None


def resolve_tag_groups(tags: list[str], store: DishStore) -> tuple[list[list[str]], list[str]]:
    """
    Map canonical dietary terms to catalog tag-id groups.

    A dish satisfies a group when it carries any id in it. A hard constraint
    with no catalog tag yields an empty (unsatisfiable) group rather than
    being silently dropped.
    """
    groups: list[list[str]] = []
    required: list[str] = []
    for term in tags:
        canonical = canonical_dietary(term)
        if not canonical or canonical in required:
            continue
        ids = store.resolve_tag_ids(TAG_NAME_VARIANTS.get(canonical, (canonical,)))
        rule = RULES_BY_CANONICAL.get(canonical)
        if not ids and not (rule and rule.hard):
            logger.info("No catalog tag for soft dietary term %r, ignoring", canonical)
            continue
        if not ids:
            logger.warning("No catalog tag for hard constraint %r, nothing can match", canonical)
        required.append(canonical)
        groups.append(ids)
    return groups, required


def _precision_tokens(keyword: str) -> list[str]:
    tokens = [t for t in keyword.lower().split() if t not in POSTFILTER_STOPWORDS]
    if len(DRINK_WORDS.intersection(tokens)) >= 2:
        tokens = [t for t in tokens if t not in DRINK_WORDS]
    return list(dict.fromkeys(tokens))


def token_precision_filter(candidates: list[HybridCandidate], keyword: str | None) -> list[HybridCandidate]:
    """Keep rows where every meaningful token appears in the name, description or section."""
    if not keyword or not candidates:
        return candidates
    tokens = _precision_tokens(keyword)
    if not tokens:
        logger.debug("Post-filter skipped, only stopwords in %r", keyword)
        return candidates

    kept = []
    for c in candidates:
        haystack = " ".join(
            (c.dish_name or "", c.dish_description or "", c.section_name or "")
        ).lower()
        if all(t in haystack for t in tokens):
            kept.append(c)
    if len(kept) < len(candidates):
        logger.info("Post-filter: %d -> %d using tokens %s", len(candidates), len(kept), tokens)
    return kept


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


@dataclass
class _SearchContext:
    keyword: str | None
    filters: SearchFilters
    store: DishStore
    embed: EmbedFn
    translate: TranslateFn | None
    config: SearchConfig


def _tag_only(ctx: _SearchContext) -> list[HybridCandidate] | None:
    if ctx.keyword or not ctx.filters.tag_groups:
        return None
    return [to_candidate(r) for r in ctx.store.tag_search(ctx.filters)]


def _hybrid(ctx: _SearchContext) -> list[HybridCandidate] | None:
    if not ctx.keyword or not ctx.config.hybrid_enabled:
        return None
    return run_hybrid_search(ctx.keyword, ctx.store, ctx.filters, ctx.embed, ctx.translate)


def _legacy(ctx: _SearchContext) -> list[HybridCandidate] | None:
    """Semantic first; merge trigram when under 3 hits; trigram only when embedding fails."""
    if not ctx.keyword:
        return None
    filters = ctx.filters.model_copy(update={"limit": ctx.config.limit_count})

    semantic = []
    if ctx.store.semantic_enabled:
        try:
            semantic = ctx.store.semantic_search(ctx.embed(ctx.keyword), filters)
        except EmbeddingError:
            logger.warning("Embedding failed, using trigram search for %r", ctx.keyword)
    candidates = [to_candidate(r) for r in semantic]
    if len(candidates) >= LEGACY_MIN_SEMANTIC_HITS:
        return candidates

    seen = {c.dish_id for c in candidates}
    for row in ctx.store.fuzzy_search(ctx.keyword, filters):
        if row.dish_id not in seen:
            seen.add(row.dish_id)
            candidates.append(to_candidate(row))
    return candidates


Strategy = Callable[[_SearchContext], "list[HybridCandidate] | None"]

# Tried in order. A strategy returns None when it does not apply; an empty
# list or an exception moves on to the next one.
STRATEGIES: list[tuple[str, Strategy]] = [
    ("tag_only", _tag_only),
    ("hybrid", _hybrid),
    ("legacy", _legacy),
]


def run_strategies(ctx: _SearchContext) -> tuple[list[HybridCandidate], str | None, list[RetrievalStep]]:
    trace: list[RetrievalStep] = []
    for name, strategy in STRATEGIES:
        try:
            result = strategy(ctx)
        except Exception as exc:
            logger.warning("Retrieval strategy %s failed", name, exc_info=True)
            trace.append(RetrievalStep(strategy=name, error=type(exc).__name__))
            continue
        if result is None:
            continue
        trace.append(RetrievalStep(strategy=name, rows=len(result)))
        if result:
            return result, name, trace
    return [], None, trace


# ---------------------------------------------------------------------------
# Shaping
# ---------------------------------------------------------------------------


def _satisfies(tags: list[TagInfo], groups: list[list[str]]) -> bool:
    owned = {t.id for t in tags}
    return all(owned.intersection(group) for group in groups)


def group_into_cards(
    candidates: list[HybridCandidate],
    tags_by_dish: dict[str, list[TagInfo]],
    store: DishStore,
) -> list[RestaurantCard]:
    """One card per restaurant, dishes by score, cards by their best dish."""
    grouped: dict[str, list[HybridCandidate]] = {}
    for c in candidates:
        grouped.setdefault(c.restaurant_id, []).append(c)

    cards: list[RestaurantCard] = []
    for restaurant_id, rows in grouped.items():
        rows = sorted(rows, key=lambda r: r.final_score, reverse=True)
        first = rows[0]
        details = store.get_restaurant(restaurant_id)
        cards.append(RestaurantCard(
            id=restaurant_id,
            name=first.restaurant_name,
            city=first.restaurant_city,
            address=first.restaurant_address,
            cuisine=details.cuisine if details else None,
            dine_in=details.dine_in if details else False,
            takeaway=details.takeaway if details else False,
            delivery=details.delivery if details else False,
            matches=[
                DishMatch(
                    id=r.dish_id,
                    name=r.dish_name,
                    description=r.dish_description,
                    price=r.dish_price,
                    section_name=r.section_name,
                    score=round(r.final_score, 4),
                    tags=[t.name for t in tags_by_dish.get(r.dish_id, [])],
                    tag_slugs=[t.slug for t in tags_by_dish.get(r.dish_id, [])],
                )
                for r in rows
            ],
        ))
    cards.sort(key=lambda card: card.matches[0].score if card.matches else 0.0, reverse=True)
    return cards


def search_dishes(
    request: DishSearchRequest,
    store: DishStore,
    embed: EmbedFn,
    translate: TranslateFn | None = None,
    config: SearchConfig = DEFAULT_SEARCH_CONFIG,
) -> SearchOutcome:
    """
    Run one dish search: resolve tags, walk the strategy list, then filter
    by query tokens, tag evidence and budget, and group into cards.
    """
    start = time.time()
    keyword = build_keyword_query(request.query_text, request.ingredients)
    groups, required = resolve_tag_groups(request.tags, store)

    if any(not g for g in groups):
        return SearchOutcome(
            strategy=None,
            trace=[RetrievalStep(strategy="unresolved_tags")],
            required_tags=required,
            keyword_query=keyword,
        )

    filters = SearchFilters(
        city=request.city,
        tag_groups=groups,
        restaurant_id=request.restaurant_id,
        limit=config.limit_per_source,
    )
    ctx = _SearchContext(keyword, filters, store, embed, translate, config)
    candidates, strategy, trace = run_strategies(ctx)

    candidates = token_precision_filter(candidates, keyword)
    tags_by_dish = store.fetch_tags([c.dish_id for c in candidates]) if candidates else {}
    if groups:
        candidates = [c for c in candidates if _satisfies(tags_by_dish.get(c.dish_id, []), groups)]
    if request.budget_max is not None:
        candidates = [c for c in candidates if c.dish_price is None or c.dish_price <= request.budget_max]

    cards = group_into_cards(candidates, tags_by_dish, store)
    logger.info(
        "Dish search keyword=%r tags=%s strategy=%s -> %d dishes in %d restaurants (%.0fms)",
        keyword, required, strategy, len(candidates), len(cards), (time.time() - start) * 1000,
    )
    return SearchOutcome(
        cards=cards,
        strategy=strategy,
        trace=trace,
        required_tags=required,
        keyword_query=keyword,
    )
