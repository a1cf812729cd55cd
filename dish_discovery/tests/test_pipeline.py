from __future__ import annotations

from dataclasses import replace
from unittest.mock import patch

import pytest

from dish_discovery.chat.models import ChatResponse, ChatResponseType
from dish_discovery.chat.pipeline import handle_turn
from dish_discovery.search.config import SearchConfig


class Conversation:
    """Feeds each response's state into the next turn, the way the chat client does."""

    def __init__(self, services) -> None:
        self.services = services
        self.chat_state = None
        self.grounded = None
        self.history = []

    def say(self, message: str) -> ChatResponse:
        response = handle_turn(message, self.chat_state, self.grounded, self.history, self.services)
        self.chat_state = response.chat_state
        self.grounded = response.grounded
        return response


def _dish_ids(response: ChatResponse) -> list[str]:
    return sorted(m.id for card in response.restaurants for m in card.matches)


@pytest.fixture
def chat(services) -> Conversation:
    return Conversation(services)


# ── Dietary search ───────────────────────────────────────────────────────


def test_veg_pizza(chat, events):
    response = chat.say("veg pizza")

    assert response.type == ChatResponseType.results
    assert response.action == "SEARCH"
    assert _dish_ids(response) == ["d-105", "d-301", "d-303"]
    assert [c.id for c in response.restaurants] == ["r-tavolino", "r-indian-bites"]
    assert response.message == "I found these matches:"
    assert response.grounded.last_query == "veg pizza"
    assert response.grounded.last_dietary == ["vegetarian"]
    assert response.trace["strategy"] == "hybrid"
    assert response.trace["triggers"] == ["fastPath:noLLM"]
    assert events[-1]["action"] == "SEARCH"
    assert events[-1]["results_count"] == 3


def test_vegan_pizza_is_strict(chat):
    response = chat.say("vegan pizza")

    assert _dish_ids(response) == ["d-303"]


def test_dietary_only_in_hindi_is_tag_search(chat):
    response = chat.say("शाकाहारी खाना")

    assert response.action == "SEARCH"
    assert response.trace["strategy"] == "tag_only"
    assert response.trace["intent"]["language"] == "hi"
    assert response.chat_state.language == "hi"
    assert response.chat_state.mode == "discovery"
    assert response.restaurants
    assert all(
        {"vegetarian", "vegan"} & set(m.tag_slugs) for card in response.restaurants for m in card.matches
    )


def test_no_results_message(chat):
    response = chat.say("sushi")

    assert response.restaurants == []
    assert response.message == "I couldn't find any matches for your search."
    assert response.grounded.last_was_no_results is True


# ── Restaurant focus ─────────────────────────────────────────────────────


def test_lookup_then_scoped_search(chat):
    profile = chat.say("Indian Bites")

    assert profile.type == ChatResponseType.profile
    assert profile.action == "RESTAURANT_LOOKUP"
    assert profile.profile.is_open_now is True
    assert profile.message == "Indian Bites is open now (11:00-22:00)."
    assert profile.chat_state.mode == "restaurant"
    assert profile.chat_state.current_restaurant_id == "r-indian-bites"

    response = chat.say("pizza")

    assert [c.id for c in response.restaurants] == ["r-indian-bites"]
    assert _dish_ids(response) == ["d-104", "d-105"]
    assert response.message == "Here is what I found at Indian Bites:"


def test_restaurant_named_in_question_scopes_search(chat):
    response = chat.say("Does Tavolino have vegan pizza?")

    assert response.action == "SEARCH"
    assert [c.id for c in response.restaurants] == ["r-tavolino"]
    assert _dish_ids(response) == ["d-303"]
    assert response.message == "Here is what I found at Tavolino:"
    assert response.chat_state.mode == "discovery"


def test_city_phrase_is_not_a_dish(chat):
    response = chat.say("veg food in Stockholm")

    assert response.action == "SEARCH"
    assert response.trace["strategy"] == "tag_only"
    assert response.restaurants


def test_name_with_dish_word_opens_profile(chat):
    response = chat.say("Masala Zone")

    assert response.type == ChatResponseType.profile
    assert response.action == "RESTAURANT_LOOKUP"
    assert response.message == "Masala Zone is open now (11:30-21:30)."
    assert response.chat_state.current_restaurant_id == "r-masala-zone"


def test_unknown_restaurant(chat):
    response = chat.say("Golden Dragon Palace")

    assert response.action == "RESTAURANT_LOOKUP"
    assert response.message == 'I couldn\'t find a restaurant called "Golden Dragon Palace".'
    assert response.chat_state.mode == "discovery"


def test_menu_and_exit(chat):
    chat.say("Indian Bites")

    menu = chat.say("show menu")
    assert menu.type == ChatResponseType.menu
    assert len(menu.menu) == 7
    assert menu.message == "Here's Indian Bites's menu."

    exit_response = chat.say("back")
    assert exit_response.action == "EXIT_RESTAURANT"
    assert exit_response.chat_state.mode == "discovery"
    assert exit_response.chat_state.current_restaurant_id is None


def test_menu_without_restaurant_asks_which(chat):
    response = chat.say("show menu")

    assert response.type == ChatResponseType.clarification
    assert response.message == "Which restaurant's menu would you like to see?"


# ── Followups ────────────────────────────────────────────────────────────


def test_ambiguous_followup_clarifies(chat):
    results = chat.say("butter chicken")
    assert _dish_ids(results) == ["d-102", "d-201", "d-501"]

    response = chat.say("is it halal?")

    assert response.type == ChatResponseType.clarification
    assert response.action == "CLARIFY"
    assert len(response.candidates) == 3
    assert response.trace["followup"] == "CLARIFY"
    # grounded context survives the clarification
    assert len(response.grounded.dishes) == 3


def test_attribute_question_on_several_dishes_clarifies(chat):
    chat.say("butter chicken")

    response = chat.say("is it spicy?")

    assert response.type == ChatResponseType.clarification
    assert response.action == "CLARIFY"
    assert len(response.candidates) == 3


@pytest.mark.parametrize("first, second", [
    ("butter chicken", "spicy lamb vindaloo"),
    ("pizza", "sweet lassi"),
])
def test_attribute_word_starts_new_search(chat, first, second):
    chat.say(first)

    response = chat.say(second)

    assert response.action == "SEARCH"
    assert response.trace["followup"] == "PASS"
    assert response.grounded.last_query == second


def test_followup_answer_from_tags(chat):
    chat.say("lamb vindaloo")

    response = chat.say("is it halal?")

    assert response.type == ChatResponseType.answer
    assert response.action == "RESOLVED"
    assert response.message.startswith("✅ Yes — Lamb Vindaloo at Masala Zone")
    assert response.chat_state.last_explain.dish_name == "Lamb Vindaloo"


def test_followup_without_results_searches(chat):
    response = chat.say("is it halal?")

    assert response.action == "SEARCH"
    assert "followupNoContext:searchInstead" not in response.trace["triggers"]
    assert response.trace["strategy"] == "tag_only"


def test_repeat_request_reshows(chat):
    chat.say("butter chicken")

    response = chat.say("butter chicken")

    assert response.action == "RESHOW"
    assert response.trace["triggers"] == ["fastPath:noLLM", "antiLoop:reshowInsteadOfSearch"]
    assert _dish_ids(response) == ["d-102", "d-201", "d-501"]


def test_vague_request_clarifies(chat):
    response = chat.say("I'm hungry")

    assert response.action == "CLARIFY"
    assert response.type == ChatResponseType.clarification


def test_explain_without_llm(chat):
    response = chat.say("what is aloo gobi?")

    assert response.action == "EXPLAIN"
    assert response.message == (
        "I don't have details about aloo gobi yet. Try searching for it to see where it's served."
    )
    assert response.chat_state.last_explain.dish_name == "aloo gobi"


def test_translate_without_explanation(chat):
    response = chat.say("in english please")

    assert response.action == "TRANSLATE_LAST"
    assert response.message.startswith("I don't have a previous explanation to translate")


# ── Paging ───────────────────────────────────────────────────────────────


def test_paginate_through_restaurants(services):
    chat = Conversation(replace(services, search_config=SearchConfig(max_restaurants=2)))

    first = chat.say("vegetarian food")
    assert [c.id for c in first.restaurants] == ["r-green-leaf", "r-indian-bites"]
    assert first.meta.next_offset == 2

    second = chat.say("show more")
    assert second.action == "PAGINATE"
    assert [c.id for c in second.restaurants] == ["r-masala-zone", "r-punjab-dhaba"]

    third = chat.say("show more")
    assert [c.id for c in third.restaurants] == ["r-tavolino"]
    assert third.chat_state.next_offset is None

    done = chat.say("show more")
    assert done.message == "That's all the results I have!"


def test_show_more_from_restaurant(services):
    chat = Conversation(replace(services, search_config=SearchConfig(max_dishes_per_restaurant=2)))

    first = chat.say("vegetarian food")
    indian_bites = next(c for c in first.restaurants if c.id == "r-indian-bites")
    first_page = {m.id for m in indian_bites.matches}
    assert len(first_page) == 2

    more = chat.say("show more from indian bites")
    assert more.action == "SHOW_MORE_RESTAURANT"
    assert [c.id for c in more.restaurants] == ["r-indian-bites"]
    card = more.restaurants[0]
    assert len(card.matches) == 3
    assert first_page.isdisjoint(m.id for m in card.matches)
    assert card.pagination.shown == 5
    assert card.pagination.next_offset is None

    done = chat.say("show more from indian bites")
    assert done.message == "I've already shown all matching dishes from Indian Bites."


# ── Failure handling ─────────────────────────────────────────────────────


def test_turn_never_raises(chat, events):
    chat.say("Indian Bites")
    incoming = chat.chat_state

    with patch("dish_discovery.chat.pipeline.plan_action", side_effect=RuntimeError("boom")):
        response = chat.say("pizza")

    assert response.type == ChatResponseType.message
    assert response.message == "I'm having trouble processing that request. Could you try again?"
    assert response.chat_state == incoming
    assert response.trace["error"] is True
    assert events[-1]["action"] is None
