from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Callable

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import complete_structured
from ..text.dietary import detect_dietary, strip_dietary_terms
from ..text.normalize import contains_phrase, normalize_text, tokenize
from .config import DEFAULT_PIPELINE_CONFIG, PipelineConfig
from .models import Action, ChatState, GroundedState, Intent, Plan, PlanResult, SearchParams

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# LLM Prompts
# ---------------------------------------------------------------------------

PLANNER_PROMPT = """\
You route turns in a food discovery chat. Pick exactly one action:

- SEARCH: find dishes (a dish name, a cuisine, dietary needs, ingredients, a budget).
- FOLLOWUP: a question about a dish that was just shown ("is it halal?", "how much is it?").
- EXPLAIN: the user asks what a dish is ("what is aloo gobi?", "is it sweet?").
- CLARIFY: the request is too vague to search ("I'm hungry").
- RESHOW: the user repeats the previous request or asks to see the results again.
- EXIT_RESTAURANT: leave the current restaurant and search everywhere.
- SHOW_MENU: show a restaurant's full menu.
- RESTAURANT_LOOKUP: the user names a specific restaurant or asks for its hours/address/phone.

Rules:
- Allergy and diet questions are never EXPLAIN.
- A bare dish name is SEARCH, not EXPLAIN.
- FOLLOWUP needs shown results.

Return ONLY valid JSON:
{
  "action": "SEARCH",
  "confidence": 0.9,
  "reason": "short reason",
  "search": {"query_text": "pizza", "tags": ["vegetarian"], "city": null, "budget_max_sek": null}
}"""

# ---------------------------------------------------------------------------
# Query classifiers
# ---------------------------------------------------------------------------

GENERIC_FOOD_TERMS = {
    "something", "anything", "kuch", "any", "some", "något", "mat", "rätt",
    "alternativ", "options", "recommend", "suggest",
}

_EXPLAINER_PREFIXES = ("what is", "what's", "whats", "vad är", "tell me about", "describe")

_EXPLAINER_PHRASES = [
    "is it sweet", "is it creamy", "is it spicy", "mild or spicy", "how does it taste",
    "what does it taste like", "what's in it", "krämig", "söt", "stark", "smakar",
    "kya hai", "ki hai", "ki ha",
]

_STRICT_PATTERN = re.compile(
    r"\b(allergen|allergens|allergy|allergic|contains?|gluten|nuts?|peanuts?|dairy|lactose|eggs?|"
    r"shellfish|sesame|soy|halal|kosher|vegan|vegetarian|veg|satvik|jain)\b"
)


def is_generic_food_query(text: str | None) -> bool:
    """Only generic words ("something", "options") are left once dietary terms are removed."""
    remaining = tokenize(strip_dietary_terms(text or ""))
    return all(word in GENERIC_FOOD_TERMS for word in remaining)


def is_dish_explainer_question(query: str) -> bool:
    lower = (query or "").lower().strip()
    if lower.startswith(_EXPLAINER_PREFIXES):
        return True
    return any(contains_phrase(lower, p) for p in _EXPLAINER_PHRASES)


def is_strict_diet_allergy_question(query: str) -> bool:
    lower = (query or "").lower()
    return bool(_STRICT_PATTERN.search(lower)) or bool(detect_dietary(lower))


def looks_like_same_intent(
    query: str,
    dietary: list[str],
    last_query: str | None,
    last_dietary: list[str],
) -> bool:
    """
    Normalized equality or containment either way, with an identical dietary
    set. Short queries can collide ("veg" is inside "vegan"); accepted.
    """
    if not last_query:
        return False
    current = normalize_text(query)
    previous = normalize_text(last_query)
    if not current or not previous:
        return False
    same_text = current == previous or current in previous or previous in current
    return same_text and sorted(dietary) == sorted(last_dietary)


def search_tags(intent: Intent) -> list[str]:
    tags: list[str] = []
    for tag in [*intent.dietary, *intent.hard_tags]:
        if tag not in tags:
            tags.append(tag)
    if "vegan" in tags and "vegetarian" in tags:
        tags.remove("vegetarian")
    return tags


def _search_plan(intent: Intent, reason: str, query_text: str | None = None, confidence: float = 1.0) -> Plan:
    tags = search_tags(intent)
    return Plan(
        action=Action.SEARCH,
        confidence=confidence,
        reason=reason,
        search=SearchParams(
            query_text=query_text,
            tags=tags or None,
            city=intent.city,
            budget_max_sek=intent.price_max,
        ),
    )


# ---------------------------------------------------------------------------
# Deterministic planner
# ---------------------------------------------------------------------------


def fallback_plan(
    query: str,
    intent: Intent,
    grounded: GroundedState,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> Plan:
    """Priority-ordered rules from intent fields to an action."""
    if intent.exit_restaurant:
        return Plan(action=Action.EXIT_RESTAURANT, reason="exit phrase")

    if intent.show_menu:
        return Plan(action=Action.SHOW_MENU, reason="menu request")

    if intent.is_restaurant_lookup and config.restaurant_profile:
        return Plan(action=Action.RESTAURANT_LOOKUP, confidence=0.9, reason="restaurant name")

    if is_dish_explainer_question(query):
        if not is_strict_diet_allergy_question(query):
            return Plan(action=Action.EXPLAIN, dish_query=intent.dish_query, reason="explainer question")
        if grounded.has_context:
            return Plan(action=Action.FOLLOWUP, reason="diet question about shown dish")
        return _search_plan(intent, "diet question without results", intent.dish_query)

    if intent.is_followup and grounded.has_context:
        return Plan(action=Action.FOLLOWUP, dish_query=intent.dish_query, reason="followup")

    if intent.dietary and is_generic_food_query(intent.dish_query):
        return _search_plan(intent, "generic dietary request")

    if intent.is_vague and not intent.dish_query and not intent.dietary:
        return Plan(action=Action.CLARIFY, reason="vague")

    return _search_plan(intent, "default", intent.dish_query)


# ---------------------------------------------------------------------------
# Guardrails
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GuardrailContext:
    query: str
    intent: Intent
    chat_state: ChatState
    grounded: GroundedState
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG


Guardrail = Callable[[Plan, GuardrailContext], "Plan | None"]


def _names_grounded_dish(ctx: GuardrailContext) -> bool:
    """Pronoun or a word from a shown dish name in the query."""
    lower = ctx.query.lower()
    if any(contains_phrase(lower, p) for p in ("it", "this", "that", "the dish")):
        return True
    words = set(tokenize(ctx.query))
    return any(
        word in words
        for dish in ctx.grounded.dishes
        for word in tokenize(dish.dish_name)
        if len(word) > 3
    )


def _effective_query_text(plan: Plan, intent: Intent) -> str | None:
    return plan.search.query_text if plan.search else intent.dish_query


def _forced_lookup(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if not (ctx.intent.is_restaurant_lookup and ctx.config.restaurant_profile):
        return None
    if plan.action == Action.RESTAURANT_LOOKUP:
        return None
    return Plan(action=Action.RESTAURANT_LOOKUP, confidence=plan.confidence, reason="lookup flagged by intent")


def _blocked_explain(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if plan.action != Action.EXPLAIN or not is_strict_diet_allergy_question(ctx.query):
        return None
    if ctx.grounded.has_context:
        return Plan(action=Action.FOLLOWUP, confidence=plan.confidence, reason="diet question, not explain")
    return _search_plan(ctx.intent, "diet question, not explain", ctx.intent.dish_query, plan.confidence)


def _bare_dish_name(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if plan.action != Action.EXPLAIN or is_dish_explainer_question(ctx.query):
        return None
    return _search_plan(ctx.intent, "bare dish name", ctx.intent.dish_query, plan.confidence)


def _menu_with_dish_query(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if plan.action != Action.SHOW_MENU or not ctx.intent.dish_query:
        return None
    return _search_plan(ctx.intent, "dish named with menu", ctx.intent.dish_query, plan.confidence)


def _tag_only_generic(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if plan.action != Action.SEARCH or ctx.intent.ingredients:
        return None
    if not (ctx.intent.dietary or ctx.intent.hard_tags):
        return None
    text = _effective_query_text(plan, ctx.intent)
    if text is None or not is_generic_food_query(text):
        return None
    current = plan.search or SearchParams()
    return plan.model_copy(update={
        "search": SearchParams(
            query_text=None,
            tags=current.tags or search_tags(ctx.intent) or None,
            city=current.city or ctx.intent.city,
            budget_max_sek=current.budget_max_sek if current.budget_max_sek is not None else ctx.intent.price_max,
        ),
    })


def _followup_no_context(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if plan.action != Action.FOLLOWUP or ctx.grounded.has_context:
        return None
    return _search_plan(ctx.intent, "followup without results", ctx.intent.dish_query, plan.confidence)


def _restaurant_mode_tag_list(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if not ctx.chat_state.in_restaurant or plan.action != Action.FOLLOWUP:
        return None
    if not (ctx.intent.hard_tags or ctx.intent.dietary) or _names_grounded_dish(ctx):
        return None
    return _search_plan(ctx.intent, "tag list inside restaurant", ctx.intent.dish_query, plan.confidence)


def _restaurant_mode_dish_query(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if not ctx.chat_state.in_restaurant or plan.action not in (Action.FOLLOWUP, Action.CLARIFY):
        return None
    if not ctx.intent.dish_query or _names_grounded_dish(ctx):
        return None
    return _search_plan(ctx.intent, "dish query inside restaurant", ctx.intent.dish_query, plan.confidence)


def _restaurant_mode_ingredients(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if not ctx.chat_state.in_restaurant or plan.action not in (Action.FOLLOWUP, Action.EXPLAIN):
        return None
    if not ctx.intent.ingredients or _names_grounded_dish(ctx):
        return None
    query_text = " ".join([ctx.intent.dish_query or "", *ctx.intent.ingredients]).strip()
    return _search_plan(ctx.intent, "ingredients inside restaurant", query_text or None, plan.confidence)


def _anti_loop(plan: Plan, ctx: GuardrailContext) -> Plan | None:
    if plan.action != Action.SEARCH:
        return None
    grounded = ctx.grounded
    if not (grounded.has_context or grounded.last_was_no_results):
        return None
    if not looks_like_same_intent(ctx.query, ctx.intent.dietary, grounded.last_query, grounded.last_dietary):
        return None
    return Plan(action=Action.RESHOW, confidence=plan.confidence, reason="same request as last turn")


# Order matters: later guardrails see and may correct earlier rewrites
GUARDRAILS: list[tuple[str, Guardrail]] = [
    ("restaurantLookup:forcedFromIntent", _forced_lookup),
    ("allergenSafety:blockedExplain", _blocked_explain),
    ("bareDishName:searchNotExplain", _bare_dish_name),
    ("showMenuWithDishQuery:searchInstead", _menu_with_dish_query),
    ("tagOnlyGeneric:queryTextNull", _tag_only_generic),
    ("followupNoContext:searchInstead", _followup_no_context),
    ("restaurantModeTagList:searchNotFollowup", _restaurant_mode_tag_list),
    ("restaurantModeDishQuery:searchNotFollowup", _restaurant_mode_dish_query),
    ("restaurantModeIngredients:searchNotFollowup", _restaurant_mode_ingredients),
    ("antiLoop:reshowInsteadOfSearch", _anti_loop),
]


def apply_guardrails(plan: Plan, ctx: GuardrailContext) -> tuple[Plan, list[str]]:
    """Run every guardrail once, in order. Returns the final plan and the names that fired."""
    triggered: list[str] = []
    for name, guardrail in GUARDRAILS:
        updated = guardrail(plan, ctx)
        if updated is None or updated == plan:
            continue
        logger.info("Guardrail %s: %s -> %s", name, plan.action.value, updated.action.value)
        triggered.append(name)
        plan = updated
    return plan, triggered


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _planner_user_prompt(query: str, intent: Intent, chat_state: ChatState, grounded: GroundedState) -> str:
    context = {
        "query": query,
        "intent": intent.model_dump(exclude={"original_query"}),
        "mode": chat_state.mode,
        "current_restaurant": chat_state.current_restaurant_name,
        "shown_dishes": [f"{d.dish_name} ({d.restaurant_name})" for d in grounded.dishes[:10]],
        "last_query": grounded.last_query,
    }
    return json.dumps(context, ensure_ascii=False)


def plan_action(
    query: str,
    intent: Intent,
    chat_state: ChatState,
    grounded: GroundedState,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> PlanResult:
    """
    Classify the turn, then run the guardrail chain.

    The deterministic planner is the default. With the LLM planner enabled,
    a missing, failed or low-confidence classification falls back to it, and
    the reason is recorded among the triggers.
    """
    ctx = GuardrailContext(query=query, intent=intent, chat_state=chat_state, grounded=grounded, config=config)

    def _fallback(reason: str, raw_action: str | None = None) -> PlanResult:
        base = fallback_plan(query, intent, grounded, config)
        plan, triggered = apply_guardrails(base, ctx)
        return PlanResult(
            plan=plan,
            triggered=[reason, *triggered],
            used_fallback=True,
            raw_action=raw_action or base.action.value,
        )

    if not config.llm_planner:
        return _fallback("fastPath:noLLM")

    try:
        proposed = complete_structured(
            PLANNER_PROMPT,
            _planner_user_prompt(query, intent, chat_state, grounded),
            Plan,
            config=llm_config,
        )
        if proposed is None:
            return _fallback("fallback:noContent")
        if proposed.confidence < config.planner_confidence_floor:
            logger.info("Planner confidence %.2f below floor, using rules", proposed.confidence)
            return _fallback("fallback:lowConfidence", proposed.action.value)

        plan, triggered = apply_guardrails(proposed, ctx)
        return PlanResult(plan=plan, triggered=triggered, used_fallback=False, raw_action=proposed.action.value)

    except Exception:
        logger.warning("Planner failed, using rules", exc_info=True)
        return _fallback("fallback:exception")
