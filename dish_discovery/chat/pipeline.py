from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from ..analytics.store import record_event
from ..catalog.lookup import build_profile, find_best_restaurant
from ..catalog.models import RestaurantRecord
from ..catalog.store import DishStore, get_default_store
from ..embeddings.config import DEFAULT_EMBEDDING_CONFIG
from ..embeddings.encoder import embed_with_retry
from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import complete_text, translate_query, translate_text
from ..search.cache import BoundedCache
from ..search.config import DEFAULT_SEARCH_CONFIG, SearchConfig
from ..search.finalize import finalize_results, truncate_cards
from ..search.hybrid import EmbedFn
from ..search.models import CardPagination, DishMatch, DishSearchRequest, RestaurantCard, SearchOutcome
from ..search.retrieval import search_dishes
from ..text.normalize import normalize_text
from .config import DEFAULT_PIPELINE_CONFIG, PipelineConfig
from .followup import find_referenced_dishes, resolve_followup
from .intent import extract_intent
from .messages import is_supported_language, t
from .models import (
    Action,
    ChatResponse,
    ChatResponseType,
    ChatState,
    ChatTurn,
    FollowupKind,
    FollowupResolution,
    GroundedRestaurant,
    GroundedState,
    Intent,
    LastExplain,
    LastResultDish,
    Plan,
    RestaurantCursor,
)
from .planner import plan_action, search_tags

logger = logging.getLogger(__name__)

EXPLAIN_PROMPT = """\
You are a friendly food guide. Explain the dish in 2-3 short sentences: what it \
is, its main ingredients and how it usually tastes. Use the menu facts given. \
Never claim that a dish is halal, vegan, vegetarian or free of any allergen. \
Answer in {language}."""


@dataclass
class DiscoveryServices:
    """Collaborators for one process. Built once, shared by every turn."""

    store: DishStore
    embed: EmbedFn
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG
    search_config: SearchConfig = DEFAULT_SEARCH_CONFIG
    pipeline_config: PipelineConfig = DEFAULT_PIPELINE_CONFIG
    translation_cache: BoundedCache = field(default_factory=lambda: BoundedCache(
        max_size=DEFAULT_SEARCH_CONFIG.translation_cache_size,
        ttl=DEFAULT_SEARCH_CONFIG.translation_cache_ttl,
    ))
    record: Callable[[str, dict[str, Any]], None] = record_event
    now: Callable[[], datetime | None] = lambda: None

    def translate(self, query: str) -> str:
        return translate_query(query, cache=self.translation_cache, config=self.llm_config)


def build_services(
    search_config: SearchConfig = DEFAULT_SEARCH_CONFIG,
    llm_config: LLMConfig = DEFAULT_LLM_CONFIG,
    pipeline_config: PipelineConfig = DEFAULT_PIPELINE_CONFIG,
) -> DiscoveryServices:
    store = get_default_store(search_config.store_backend, search_config.data_dir)
    return DiscoveryServices(
        store=store,
        embed=lambda text: embed_with_retry(text, DEFAULT_EMBEDDING_CONFIG),
        llm_config=llm_config,
        search_config=search_config,
        pipeline_config=pipeline_config,
        translation_cache=BoundedCache(
            max_size=search_config.translation_cache_size,
            ttl=search_config.translation_cache_ttl,
        ),
    )


# ---------------------------------------------------------------------------
# Turn context
# ---------------------------------------------------------------------------


@dataclass
class _Turn:
    message: str
    intent: Intent
    chat_state: ChatState
    grounded: GroundedState
    services: DiscoveryServices
    trace: dict[str, Any] = field(default_factory=dict)

    @property
    def language(self) -> str:
        return self.intent.language or self.chat_state.language or "en"

    def say(self, key: str, **values: object) -> str:
        """Localized message. Languages without a table go through translation."""
        text = t(self.language, key, **values)
        if self.language != "en" and not is_supported_language(self.language):
            text = translate_text(
                text, self.language,
                cache=self.services.translation_cache,
                config=self.services.llm_config,
            )
        return text

    def respond(self, type_: ChatResponseType, action: str | None, message: str, **kwargs: Any) -> ChatResponse:
        kwargs.setdefault("chat_state", self.chat_state)
        kwargs.setdefault("grounded", self.grounded)
        return ChatResponse(type=type_, action=action, message=message, trace=self.trace, **kwargs)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dish_to_card(dish: LastResultDish) -> RestaurantCard:
    return RestaurantCard(
        id=dish.restaurant_id,
        name=dish.restaurant_name,
        matches=[DishMatch(
            id=dish.dish_id,
            name=dish.dish_name,
            description=dish.description,
            price=dish.price,
            tag_slugs=dish.tag_slugs,
        )],
    )


def _grounded_from_cards(
    cards: list[RestaurantCard],
    query: str,
    dietary: list[str],
    total_matches: int,
) -> GroundedState:
    dishes = [
        LastResultDish(
            dish_id=m.id,
            dish_name=m.name,
            restaurant_id=card.id,
            restaurant_name=card.name,
            tag_slugs=m.tag_slugs,
            price=m.price,
            description=m.description,
        )
        for card in cards
        for m in card.matches
    ]
    return GroundedState(
        dishes=dishes,
        restaurants=[GroundedRestaurant(id=c.id, name=c.name) for c in cards],
        last_query=query,
        last_dietary=list(dietary),
        last_matches_count=total_matches,
        last_was_no_results=not dishes,
    )


def _cursors(cards: list[RestaurantCard]) -> list[RestaurantCursor]:
    return [
        RestaurantCursor(
            restaurant_id=card.id,
            restaurant_name=card.name,
            shown_count=card.pagination.shown if card.pagination else len(card.matches),
            total_matches=card.pagination.total if card.pagination else len(card.matches),
            next_offset=card.pagination.next_offset if card.pagination else None,
        )
        for card in cards
    ]


def _focus(chat_state: ChatState, record: RestaurantRecord) -> ChatState:
    return chat_state.model_copy(update={
        "mode": "restaurant",
        "current_restaurant_id": record.id,
        "current_restaurant_name": record.name,
    })


def _run_search(turn: _Turn, request: DishSearchRequest) -> tuple[list[RestaurantCard], SearchOutcome]:
    services = turn.services
    outcome = search_dishes(
        request,
        services.store,
        services.embed,
        translate=services.translate,
        config=services.search_config,
    )
    turn.trace["strategy"] = outcome.strategy
    turn.trace["retrieval"] = [step.model_dump() for step in outcome.trace]
    cards = finalize_results(
        outcome.cards,
        mode=turn.chat_state.mode,
        current_restaurant_id=turn.chat_state.current_restaurant_id,
        dish_query=outcome.keyword_query,
        dietary=request.tags,
    )
    return cards, outcome


def _results_message(turn: _Turn, request: DishSearchRequest, found: bool, restaurant_name: str | None) -> str:
    tag_label = ", ".join(request.tags)
    if not found:
        if request.query_text and request.tags:
            return turn.say("NO_MATCH_TRY_AGAIN", query=request.query_text, tag=tag_label)
        return turn.say("NO_RESULTS")
    if restaurant_name:
        return turn.say("FOUND_AT_RESTAURANT", restaurant=restaurant_name)
    if request.tags and not request.query_text:
        return turn.say("FOUND_TAGGED", tag=tag_label)
    return turn.say("FOUND_RESULTS")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _search(turn: _Turn, plan: Plan) -> ChatResponse:
    intent = turn.intent
    services = turn.services
    params = plan.search

    query_text = params.query_text if params else intent.dish_query
    tags = (params.tags if params and params.tags else None) or search_tags(intent)
    city = (params.city if params else None) or intent.city
    budget = params.budget_max_sek if params and params.budget_max_sek is not None else intent.price_max

    restaurant_id: str | None = None
    restaurant_name: str | None = None
    if turn.chat_state.in_restaurant:
        restaurant_id = turn.chat_state.current_restaurant_id
        restaurant_name = turn.chat_state.current_restaurant_name
    elif intent.restaurant_name and not intent.is_restaurant_lookup:
        record = find_best_restaurant(services.store, intent.restaurant_name, city)
        if record is not None:
            if normalize_text(record.name) == normalize_text(intent.original_query):
                return _profile_for(turn, record)
            restaurant_id, restaurant_name = record.id, record.name
        else:
            logger.info("Restaurant %r not found, searching everywhere", intent.restaurant_name)

    request = DishSearchRequest(
        query_text=query_text,
        tags=tags,
        city=city,
        restaurant_id=restaurant_id,
        ingredients=intent.ingredients,
        budget_max=budget,
    )
    cards, outcome = _run_search(turn, request)
    shown, meta = truncate_cards(
        cards,
        max_restaurants=services.search_config.max_restaurants,
        max_dishes_per_restaurant=services.search_config.max_dishes_per_restaurant,
    )
    total = sum(len(c.matches) for c in cards)
    turn.trace["results_count"] = total

    grounded = _grounded_from_cards(shown, turn.message, intent.dietary, total)
    chat_state = turn.chat_state.model_copy(update={
        "last_search": request,
        "next_offset": meta.next_offset,
        "restaurant_cursors": _cursors(shown),
    })
    return turn.respond(
        ChatResponseType.results,
        Action.SEARCH.value,
        _results_message(turn, request, bool(shown), restaurant_name),
        restaurants=shown,
        meta=meta,
        chat_state=chat_state,
        grounded=grounded,
    )


def _paginate(turn: _Turn) -> ChatResponse:
    state = turn.chat_state
    if state.last_search is None:
        return turn.respond(ChatResponseType.message, "PAGINATE", turn.say("NO_MORE_RESULTS"))
    if state.next_offset is None:
        return turn.respond(ChatResponseType.message, "PAGINATE", turn.say("ALL_RESULTS_SHOWN"))

    config = turn.services.search_config
    cards, _ = _run_search(turn, state.last_search)
    shown, meta = truncate_cards(
        cards,
        max_restaurants=config.max_restaurants,
        max_dishes_per_restaurant=config.max_dishes_per_restaurant,
        offset=state.next_offset,
    )
    turn.trace["results_count"] = len(cards)
    if not shown:
        chat_state = state.model_copy(update={"next_offset": None})
        return turn.respond(ChatResponseType.message, "PAGINATE", turn.say("ALL_RESULTS_SHOWN"), chat_state=chat_state)

    grounded = _grounded_from_cards(
        shown, turn.grounded.last_query or turn.message, turn.grounded.last_dietary, meta.total_matches,
    )
    chat_state = state.model_copy(update={
        "next_offset": meta.next_offset,
        "restaurant_cursors": _cursors(shown),
    })
    return turn.respond(
        ChatResponseType.results, "PAGINATE", turn.say("MORE_RESULTS"),
        restaurants=shown, meta=meta, chat_state=chat_state, grounded=grounded,
    )


def _show_menu_for(turn: _Turn, record: RestaurantRecord, action: str) -> ChatResponse:
    menu = turn.services.store.fetch_menu(record.id)
    chat_state = _focus(turn.chat_state, record)
    if not menu:
        return turn.respond(
            ChatResponseType.message, action, turn.say("NO_MENU", restaurant=record.name), chat_state=chat_state,
        )
    return turn.respond(
        ChatResponseType.menu, action, turn.say("MENU_INTRO", restaurant=record.name),
        menu=menu, chat_state=chat_state,
    )


def _show_more_from_restaurant(turn: _Turn, record: RestaurantRecord) -> ChatResponse:
    action = FollowupKind.SHOW_MORE_RESTAURANT.value
    state = turn.chat_state
    if state.last_search is None:
        return _show_menu_for(turn, record, action)

    cursor = next((c for c in state.restaurant_cursors if c.restaurant_id == record.id), None)
    offset = cursor.next_offset if cursor else 0
    if cursor is not None and offset is None:
        return turn.respond(ChatResponseType.message, action, turn.say("ALL_SHOWN_FROM", restaurant=record.name))

    # A different focus would isolate this restaurant away, so move the focus
    if state.mode == "restaurant" and state.current_restaurant_id != record.id:
        state = _focus(state, record)
        turn.chat_state = state

    request = state.last_search.model_copy(update={"restaurant_id": record.id})
    cards, _ = _run_search(turn, request)
    card = next((c for c in cards if c.id == record.id), None)
    matches = card.matches if card else []
    page_size = turn.services.search_config.show_more_page_size
    page = matches[offset: offset + page_size]
    turn.trace["results_count"] = len(matches)
    if not page:
        return turn.respond(ChatResponseType.message, action, turn.say("ALL_SHOWN_FROM", restaurant=record.name))

    shown_count = offset + len(page)
    next_offset = shown_count if shown_count < len(matches) else None
    shown_card = card.model_copy(update={
        "matches": page,
        "more_dishes_count": len(matches) - shown_count,
        "pagination": CardPagination(
            shown=shown_count,
            total=len(matches),
            remaining=len(matches) - shown_count,
            next_offset=next_offset,
        ),
    })
    updated = RestaurantCursor(
        restaurant_id=record.id,
        restaurant_name=record.name,
        shown_count=shown_count,
        total_matches=len(matches),
        next_offset=next_offset,
    )
    cursors = [c for c in state.restaurant_cursors if c.restaurant_id != record.id] + [updated]
    grounded = _grounded_from_cards(
        [shown_card], turn.grounded.last_query or turn.message, turn.grounded.last_dietary, len(matches),
    )
    return turn.respond(
        ChatResponseType.results, action, turn.say("FOUND_AT_RESTAURANT", restaurant=record.name),
        restaurants=[shown_card],
        chat_state=state.model_copy(update={"restaurant_cursors": cursors}),
        grounded=grounded,
    )


def _translate_last(turn: _Turn, target: str) -> ChatResponse:
    action = FollowupKind.TRANSLATE_LAST.value
    last = turn.chat_state.last_explain
    if last is None:
        return turn.respond(ChatResponseType.message, action, t(target, "NO_EXPLANATION_TO_TRANSLATE"))
    if last.language == target:
        return turn.respond(ChatResponseType.answer, action, last.text)
    translated = translate_text(
        last.text, target, cache=turn.services.translation_cache, config=turn.services.llm_config,
    )
    chat_state = turn.chat_state.model_copy(update={
        "last_explain": LastExplain(text=translated, language=target, dish_name=last.dish_name),
    })
    return turn.respond(ChatResponseType.answer, action, translated, chat_state=chat_state)


def _explain(turn: _Turn, plan: Plan) -> ChatResponse:
    dish_name = plan.dish_query or turn.intent.dish_query
    grounded_dish: LastResultDish | None = None
    if turn.grounded.has_context:
        matched = find_referenced_dishes(turn.message, turn.intent, turn.grounded.dishes)
        if len(matched) == 1 or (matched and dish_name):
            grounded_dish = matched[0]
    if grounded_dish is not None:
        dish_name = grounded_dish.dish_name
    dish_name = dish_name or turn.message

    facts = [f"Dish: {dish_name}"]
    if grounded_dish is not None:
        facts.append(f"Restaurant: {grounded_dish.restaurant_name}")
        if grounded_dish.description:
            facts.append(f"Menu description: {grounded_dish.description}")
    facts.append(f"Question: {turn.message}")

    answer = complete_text(
        EXPLAIN_PROMPT.format(language=turn.language),
        "\n".join(facts),
        config=turn.services.llm_config,
    )
    if not answer:
        if grounded_dish is not None and grounded_dish.description:
            answer = f"{grounded_dish.dish_name}: {grounded_dish.description}"
        else:
            answer = turn.say("NO_DISH_DETAILS", dish=dish_name)

    chat_state = turn.chat_state.model_copy(update={
        "last_explain": LastExplain(text=answer, language=turn.language, dish_name=dish_name),
    })
    return turn.respond(ChatResponseType.answer, Action.EXPLAIN.value, answer, chat_state=chat_state)


def _dish_summary(dish: LastResultDish) -> str:
    parts = [f"{dish.dish_name} at {dish.restaurant_name}"]
    if dish.price is not None:
        parts.append(f"{dish.price:g} kr")
    summary = " · ".join(parts) + "."
    if dish.description:
        summary += f" {dish.description}"
    if dish.tag_slugs:
        summary += f" Tags: {', '.join(dish.tag_slugs)}."
    return summary


def _followup(turn: _Turn) -> ChatResponse:
    action = Action.FOLLOWUP.value
    if not turn.grounded.has_context:
        return turn.respond(ChatResponseType.message, action, turn.say("NO_CONTEXT_FOLLOWUP"))
    matched = find_referenced_dishes(turn.message, turn.intent, turn.grounded.dishes)
    if not matched:
        return turn.respond(ChatResponseType.clarification, action, turn.say("FACT_NO_MATCH"))
    if len(matched) > 1:
        candidates = matched[:3]
        names = ", ".join(f"{d.dish_name} at {d.restaurant_name}" for d in candidates)
        return turn.respond(
            ChatResponseType.clarification, action, turn.say("WHICH_DISH", list=names), candidates=candidates,
        )
    return turn.respond(
        ChatResponseType.answer, action, _dish_summary(matched[0]), restaurants=[_dish_to_card(matched[0])],
    )


def _reshow(turn: _Turn) -> ChatResponse:
    grounded = turn.grounded
    if not grounded.has_context:
        return turn.respond(ChatResponseType.clarification, Action.RESHOW.value, turn.say("RESHOW_EMPTY"))

    cards: dict[str, RestaurantCard] = {}
    for dish in grounded.dishes:
        card = cards.setdefault(dish.restaurant_id, RestaurantCard(id=dish.restaurant_id, name=dish.restaurant_name))
        card.matches.append(_dish_to_card(dish).matches[0])
    turn.trace["results_count"] = len(grounded.dishes)
    return turn.respond(
        ChatResponseType.results, Action.RESHOW.value, turn.say("RESHOW_INTRO"), restaurants=list(cards.values()),
    )


def _exit_restaurant(turn: _Turn) -> ChatResponse:
    chat_state = turn.chat_state.model_copy(update={
        "mode": "discovery",
        "current_restaurant_id": None,
        "current_restaurant_name": None,
    })
    return turn.respond(
        ChatResponseType.message, Action.EXIT_RESTAURANT.value, turn.say("BACK_TO_SEARCHING"), chat_state=chat_state,
    )


def _show_menu(turn: _Turn) -> ChatResponse:
    action = Action.SHOW_MENU.value
    store = turn.services.store
    name = turn.intent.restaurant_name
    if name:
        record = find_best_restaurant(store, name, turn.intent.city)
        if record is None:
            return turn.respond(ChatResponseType.message, action, turn.say("RESTAURANT_NOT_FOUND", name=name))
    elif turn.chat_state.in_restaurant:
        record = store.get_restaurant(turn.chat_state.current_restaurant_id)
        if record is None:
            return turn.respond(
                ChatResponseType.message, action,
                turn.say("RESTAURANT_NOT_FOUND", name=turn.chat_state.current_restaurant_name or ""),
            )
    else:
        return turn.respond(ChatResponseType.clarification, action, turn.say("MENU_NEEDS_RESTAURANT"))
    return _show_menu_for(turn, record, action)


def _restaurant_lookup(turn: _Turn) -> ChatResponse:
    action = Action.RESTAURANT_LOOKUP.value
    name = turn.intent.restaurant_name or turn.message
    record = find_best_restaurant(turn.services.store, name, turn.intent.city)
    if record is None:
        return turn.respond(ChatResponseType.message, action, turn.say("RESTAURANT_NOT_FOUND", name=name))
    return _profile_for(turn, record)


def _profile_for(turn: _Turn, record: RestaurantRecord) -> ChatResponse:
    action = Action.RESTAURANT_LOOKUP.value
    profile = build_profile(turn.services.store, record, now=turn.services.now())
    if profile.is_open_now:
        message = turn.say("PROFILE_OPEN", restaurant=profile.name, hours=profile.today_hours or "")
    elif profile.today_hours:
        message = turn.say("PROFILE_HOURS", restaurant=profile.name, hours=profile.today_hours)
    else:
        message = turn.say("PROFILE_CLOSED", restaurant=profile.name)
    return turn.respond(
        ChatResponseType.profile, action, message, profile=profile, chat_state=_focus(turn.chat_state, record),
    )


def _clarify(turn: _Turn) -> ChatResponse:
    return turn.respond(ChatResponseType.clarification, Action.CLARIFY.value, turn.say("CLARIFY_PROMPT"))


_DISPATCH: dict[Action, Callable[[_Turn, Plan], ChatResponse]] = {
    Action.SEARCH: _search,
    Action.FOLLOWUP: lambda turn, plan: _followup(turn),
    Action.EXPLAIN: _explain,
    Action.CLARIFY: lambda turn, plan: _clarify(turn),
    Action.RESHOW: lambda turn, plan: _reshow(turn),
    Action.EXIT_RESTAURANT: lambda turn, plan: _exit_restaurant(turn),
    Action.SHOW_MENU: lambda turn, plan: _show_menu(turn),
    Action.RESTAURANT_LOOKUP: lambda turn, plan: _restaurant_lookup(turn),
}


# ---------------------------------------------------------------------------
# Followup short-circuit
# ---------------------------------------------------------------------------


def _resolved_followup(turn: _Turn, resolution: FollowupResolution) -> ChatResponse | None:
    kind = resolution.kind

    if kind == FollowupKind.TRANSLATE_LAST:
        return _translate_last(turn, resolution.target_language or "en")

    if kind == FollowupKind.PAGINATE:
        return _paginate(turn)

    if kind == FollowupKind.SHOW_MORE_RESTAURANT:
        store = turn.services.store
        record = store.get_restaurant(resolution.restaurant_id) if resolution.restaurant_id else None
        if record is None and resolution.restaurant_name:
            record = find_best_restaurant(store, resolution.restaurant_name, turn.intent.city)
        if record is None:
            logger.info("Show-more restaurant %r not resolved, planning instead", resolution.restaurant_name)
            return None
        return _show_more_from_restaurant(turn, record)

    if kind == FollowupKind.CLARIFY:
        return turn.respond(
            ChatResponseType.clarification, kind.value, resolution.answer or turn.say("FACT_NO_MATCH"),
            candidates=resolution.candidates,
        )

    if kind == FollowupKind.RESOLVED and resolution.matched_dish is not None:
        dish = resolution.matched_dish
        cards = finalize_results(
            [_dish_to_card(dish)],
            mode=turn.chat_state.mode,
            current_restaurant_id=turn.chat_state.current_restaurant_id,
        )
        chat_state = turn.chat_state.model_copy(update={
            "last_explain": LastExplain(text=resolution.answer or "", language=turn.language, dish_name=dish.dish_name),
        })
        return turn.respond(
            ChatResponseType.answer, kind.value, resolution.answer or "", restaurants=cards, chat_state=chat_state,
        )

    return None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def handle_turn(
    message: str,
    chat_state: ChatState | None,
    grounded: GroundedState | None,
    history: list[ChatTurn] | None,
    services: DiscoveryServices,
) -> ChatResponse:
    """
    One conversation turn: intent, followup resolver, planner, dispatch.

    Never raises. Unexpected failures answer with a localized apology and
    hand back the incoming state unchanged.
    """
    start = time.time()
    incoming_state = chat_state or ChatState()
    grounded = grounded or GroundedState()
    chat_state = incoming_state
    window = services.pipeline_config.history_window
    trace: dict[str, Any] = {}
    language = chat_state.language

    try:
        intent = extract_intent(message, (history or [])[-window:], chat_state, services.llm_config)
        language = intent.language
        chat_state = chat_state.model_copy(update={"language": intent.language})
        trace["intent"] = intent.model_dump()
        turn = _Turn(message, intent, chat_state, grounded, services, trace)

        resolution = resolve_followup(message, intent, grounded.dishes, services.store)
        trace["followup"] = resolution.kind.value
        response = _resolved_followup(turn, resolution)

        if response is None:
            result = plan_action(
                message, intent, chat_state, grounded, services.llm_config, services.pipeline_config,
            )
            trace["action"] = result.plan.action.value
            trace["triggers"] = result.triggered
            trace["used_fallback"] = result.used_fallback
            trace["raw_action"] = result.raw_action
            response = _DISPATCH[result.plan.action](turn, result.plan)
        else:
            trace["action"] = response.action

    except Exception:
        logger.exception("Turn failed for %r", message)
        trace["error"] = True
        response = ChatResponse(
            type=ChatResponseType.message,
            message=t(language, "SOMETHING_WENT_WRONG"),
            chat_state=incoming_state,
            grounded=grounded,
        )

    elapsed_ms = round((time.time() - start) * 1000, 1)
    trace["response_time_ms"] = elapsed_ms
    response = response.model_copy(update={"trace": trace})
    services.record("turn", {
        "action": trace.get("action"),
        "followup": trace.get("followup"),
        "triggers": trace.get("triggers", []),
        "strategy": trace.get("strategy"),
        "results_count": trace.get("results_count"),
        "language": language,
        "dish_query": (trace.get("intent") or {}).get("dish_query"),
        "response_time_ms": elapsed_ms,
    })
    logger.info(
        "Turn %r -> %s (followup=%s, triggers=%s) in %.0fms",
        normalize_text(message)[:60], trace.get("action"), trace.get("followup"), trace.get("triggers", []), elapsed_ms,
    )
    return response
