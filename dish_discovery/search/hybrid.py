from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import numpy as np

from ..catalog.models import SearchFilters, SemanticRow, TagRow, TrigramRow
from ..catalog.store import DishStore
from .models import CandidateSource, HybridCandidate, SearchWeights

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], np.ndarray]
TranslateFn = Callable[[str], str]

EXACT_MATCH_BOOST = 0.15
DEMOTION_FACTOR = 0.3

# ---------------------------------------------------------------------------
# Query analysis
# ---------------------------------------------------------------------------

VIBE_INDICATORS = [
    "like", "similar", "something", "craving", "want", "mood",
    "feeling", "recommend", "suggestion", "type of", "kind of",
    "spicy", "creamy", "light", "heavy", "comfort", "healthy",
]

# Vibe phrasing that opts a query out of precision demotion
_PRECISION_VIBE = [
    "something", "anything", "like", "similar", "craving", "want",
    "mood", "feeling", "recommend", "suggestion", "type of", "kind of",
]

_DISH_NAME_RE = re.compile(
    r"chicken|pizza|burger|curry|naan|rice|pasta|salad|soup|steak|fish|lamb|"
    r"vindaloo|korma|biryani|masala|tikka|margherita|funghi|prosciutto|calzone",
    re.IGNORECASE,
)

_PRECISION_STOPWORDS = {"the", "and", "with", "for", "from", "our"}


def analyze_query_weights(query: str) -> SearchWeights:
    """Pick semantic/trigram weights (summing to 1.0) from the query's shape."""
    lower = (query or "").lower()
    words = lower.split()

    if any(ind in lower for ind in VIBE_INDICATORS):
        return SearchWeights(semantic=0.7, trigram=0.3, profile="vibe")
    if len(words) <= 3 or _DISH_NAME_RE.search(lower):
        return SearchWeights(semantic=0.4, trigram=0.6, profile="dish")
    return SearchWeights(semantic=0.55, trigram=0.45, profile="balanced")


def exact_match_boost(dish_name: str, query: str) -> float:
    """Up to 0.15, proportional to the share of >=3-char query tokens found in the name."""
    name = (dish_name or "").lower()
    tokens = [t for t in (query or "").lower().split() if len(t) >= 3]
    if not tokens:
        return 0.0
    ratio = sum(1 for t in tokens if t in name) / len(tokens)
    return min(EXACT_MATCH_BOOST, ratio * EXACT_MATCH_BOOST)


def merge_scores(
    semantic_score: float | None,
    trigram_score: float | None,
    weights: SearchWeights,
    boost: float = 0.0,
) -> tuple[float, CandidateSource]:
    """
    Null-safe fusion. Both signals: weighted sum. One signal: used as is.
    The exact-match boost is added last and the total capped at 1.0.
    """
    has_semantic = semantic_score is not None and semantic_score > 0
    has_trigram = trigram_score is not None and trigram_score > 0

    if has_semantic and has_trigram:
        merged = semantic_score * weights.semantic + trigram_score * weights.trigram
        return min(1.0, merged + boost), "both"
    if has_semantic:
        return min(1.0, semantic_score + boost), "semantic"
    if has_trigram:
        return min(1.0, trigram_score + boost), "trigram"
    return 0.0, "trigram"


def to_candidate(row: SemanticRow | TrigramRow | TagRow) -> HybridCandidate:
    """The single mapping from a tagged retrieval row into the shared candidate shape."""
    base = row.model_dump(exclude={"source", "similarity_score"})
    score = row.similarity_score
    if row.source == "semantic":
        return HybridCandidate(**base, semantic_score=score, final_score=score, source="semantic")
    if row.source == "trigram":
        return HybridCandidate(**base, trigram_score=score, final_score=score, source="trigram")
    return HybridCandidate(**base, final_score=score, source="tag")


def fuse_candidates(
    semantic_rows: list[SemanticRow],
    trigram_rows: list[TrigramRow],
    query: str,
    weights: SearchWeights | None = None,
) -> list[HybridCandidate]:
    weights = weights or analyze_query_weights(query)
    semantic = {r.dish_id: to_candidate(r) for r in semantic_rows}
    trigram = {r.dish_id: to_candidate(r) for r in trigram_rows}

    fused: list[HybridCandidate] = []
    for dish_id in dict.fromkeys([*semantic, *trigram]):
        sem, tri = semantic.get(dish_id), trigram.get(dish_id)
        base = sem or tri
        sem_score = sem.semantic_score if sem else None
        tri_score = tri.trigram_score if tri else None
        final, source = merge_scores(sem_score, tri_score, weights, exact_match_boost(base.dish_name, query))
        fused.append(base.model_copy(update={
            "semantic_score": sem_score,
            "trigram_score": tri_score,
            "final_score": final,
            "source": source,
        }))

    fused.sort(key=lambda c: c.final_score, reverse=True)
    return fused


# ---------------------------------------------------------------------------
# Precision demotion
# ---------------------------------------------------------------------------


def significant_tokens(query: str) -> list[str]:
    return [
        t for t in (query or "").lower().split()
        if len(t) >= 3 and t not in _PRECISION_STOPWORDS
    ]


def is_specific_query(query: str) -> bool:
    """2-4 word queries without vibe phrasing, e.g. "butter chicken"."""
    lower = (query or "").lower()
    if any(v in lower for v in _PRECISION_VIBE):
        return False
    return 2 <= len(lower.split()) <= 4


def apply_precision_demotion(candidates: list[HybridCandidate], query: str) -> list[HybridCandidate]:
    """
    Multiply by 0.3 the score of every candidate whose name misses a
    significant query token, then re-sort. Never drops a candidate.
    """
    if not is_specific_query(query):
        return list(candidates)
    tokens = significant_tokens(query)
    if not tokens:
        return list(candidates)

    adjusted: list[HybridCandidate] = []
    for c in candidates:
        name = c.dish_name.lower()
        if all(t in name for t in tokens):
            adjusted.append(c)
        else:
            demoted = c.final_score * DEMOTION_FACTOR
            logger.debug("Precision demotion: %s (%.3f -> %.3f)", c.dish_name, c.final_score, demoted)
            adjusted.append(c.model_copy(update={"final_score": demoted}))
    adjusted.sort(key=lambda c: c.final_score, reverse=True)
    return adjusted


# ---------------------------------------------------------------------------
# Parallel retrieval
# ---------------------------------------------------------------------------


def _semantic_branch(query: str, store: DishStore, filters: SearchFilters, embed: EmbedFn) -> list[SemanticRow]:
    if not store.semantic_enabled:
        return []
    try:
        return store.semantic_search(embed(query), filters)
    except Exception:
        logger.warning("Semantic branch failed for %r", query, exc_info=True)
        return []


def _trigram_branch(
    query: str,
    store: DishStore,
    filters: SearchFilters,
    translate: TranslateFn | None,
) -> list[TrigramRow]:
    queries = [query]
    if translate is not None:
        try:
            translated = translate(query)
        except Exception:
            logger.warning("Query translation failed for %r", query, exc_info=True)
            translated = query
        if translated and translated.strip().lower() != query.strip().lower():
            queries.append(translated)

    best: dict[str, TrigramRow] = {}
    try:
        for q in queries:
            for row in store.fuzzy_search(q, filters):
                kept = best.get(row.dish_id)
                if kept is None or row.similarity_score > kept.similarity_score:
                    best[row.dish_id] = row
    except Exception:
        logger.warning("Trigram branch failed for %r", query, exc_info=True)
        return []
    return list(best.values())


def run_hybrid_search(
    query: str,
    store: DishStore,
    filters: SearchFilters,
    embed: EmbedFn,
    translate: TranslateFn | None = None,
) -> list[HybridCandidate]:
    """
    Semantic and trigram retrieval run concurrently and are joined before
    fusion. Either branch may fail or come back empty without aborting the other.
    """
    if not query or not query.strip():
        return []

    start = time.time()
    weights = analyze_query_weights(query)
    with ThreadPoolExecutor(max_workers=2) as pool:
        semantic_future = pool.submit(_semantic_branch, query, store, filters, embed)
        trigram_future = pool.submit(_trigram_branch, query, store, filters, translate)
        semantic_rows = semantic_future.result()
        trigram_rows = trigram_future.result()

    candidates = fuse_candidates(semantic_rows, trigram_rows, query, weights)
    candidates = apply_precision_demotion(candidates, query)

    logger.info(
        "Hybrid search %r: semantic=%d trigram=%d merged=%d weights=%s (%.0fms)",
        query, len(semantic_rows), len(trigram_rows), len(candidates),
        weights.profile, (time.time() - start) * 1000,
    )
    return candidates
