from __future__ import annotations

from dish_discovery.chat.followup import (
    ALL_ALLERGENS,
    detect_attribute,
    detect_tag_question,
    detect_translation_target,
    extract_show_more_restaurant,
    is_paginate_request,
    resolve_followup,
)
from dish_discovery.chat.intent import refine_intent
from dish_discovery.chat.models import FollowupKind, IntentDraft, LastResultDish

BUTTER_CHICKENS = [
    LastResultDish(dish_id="d-102", dish_name="Butter Chicken", restaurant_id="r-indian-bites",
                   restaurant_name="Indian Bites", tag_slugs=["halal", "milk"]),
    LastResultDish(dish_id="d-201", dish_name="Butter Chicken", restaurant_id="r-masala-zone",
                   restaurant_name="Masala Zone", tag_slugs=["milk"]),
    LastResultDish(dish_id="d-501", dish_name="Butter Chicken", restaurant_id="r-punjab-dhaba",
                   restaurant_name="Punjab Dhaba", tag_slugs=["halal", "milk"]),
]

VINDALOO = LastResultDish(
    dish_id="d-203", dish_name="Lamb Vindaloo", restaurant_id="r-masala-zone", restaurant_name="Masala Zone",
    tag_slugs=["halal"], description="Hot and spicy Goan lamb curry with potatoes",
)

LASSI = LastResultDish(
    dish_id="d-107", dish_name="Mango Lassi", restaurant_id="r-indian-bites", restaurant_name="Indian Bites",
    tag_slugs=["vegetarian", "milk"], description="Sweet yoghurt drink blended with mango",
)


def _resolve(query: str, last_results, store):
    intent = refine_intent(query, IntentDraft(dish_query=query))
    return resolve_followup(query, intent, last_results, store)


# ── Detection ────────────────────────────────────────────────────────────


class TestDetection:
    def test_translation_targets(self):
        assert detect_translation_target("In English please!") == "en"
        assert detect_translation_target("kan du säga det på svenska") == "sv"
        assert detect_translation_target("translate it to punjabi") == "pa"
        assert detect_translation_target("butter chicken") is None

    def test_show_more_restaurant(self):
        assert extract_show_more_restaurant("Show more from Tavolino") == "tavolino"
        assert extract_show_more_restaurant("visa fler från masala zone") == "masala zone"
        assert extract_show_more_restaurant("show more") is None

    def test_paginate(self):
        assert is_paginate_request("show more")
        assert is_paginate_request("Next page")
        assert not is_paginate_request("more pizza")

    def test_attribute_needs_a_question(self):
        assert detect_attribute("is it spicy?") == "spicy"
        assert detect_attribute("How hot is the vindaloo") == "spicy"
        assert detect_attribute("what spice level is it") == "spicy"
        assert detect_attribute("is the korma creamy?") == "creamy"
        assert detect_attribute("spicy lamb vindaloo") is None
        assert detect_attribute("sweet lassi") is None

    def test_tag_questions(self):
        assert detect_tag_question("is it halal?") == "halal"
        assert detect_tag_question("does it contain milk?") == "milk"
        assert detect_tag_question("any nuts in it?") == "peanuts,tree-nuts"
        assert detect_tag_question("what allergens are in it?") == ALL_ALLERGENS
        assert detect_tag_question("is it gluten free?") == "gluten-free"
        assert detect_tag_question("what's good here") is None


# ── Resolution ───────────────────────────────────────────────────────────


class TestResolve:
    def test_translate_comes_first(self, store):
        resolution = _resolve("in english please", [], store)
        assert resolution.kind == FollowupKind.TRANSLATE_LAST
        assert resolution.target_language == "en"

    def test_attribute_with_evidence(self, store):
        resolution = _resolve("is it spicy?", [VINDALOO], store)
        assert resolution.kind == FollowupKind.RESOLVED
        assert resolution.matched_dish.dish_id == "d-203"
        assert "appears to be spicy (description)" in resolution.answer

    def test_attribute_without_evidence(self, store):
        resolution = _resolve("is it spicy?", [LASSI], store)
        assert resolution.answer.startswith("I don't have spicy info for Mango Lassi")

    def test_attribute_prefers_named_dish(self, store):
        resolution = _resolve("is the lamb vindaloo spicy?", [LASSI, VINDALOO], store)
        assert resolution.matched_dish.dish_id == "d-203"

    def test_attribute_on_several_dishes_clarifies(self, store):
        resolution = _resolve("is it spicy?", BUTTER_CHICKENS, store)
        assert resolution.kind == FollowupKind.CLARIFY
        assert [d.dish_id for d in resolution.candidates] == ["d-102", "d-201", "d-501"]
        assert resolution.answer.startswith("Which dish are you asking about? Butter Chicken at Indian Bites")

    def test_attribute_about_unshown_dish_passes(self, store):
        resolution = _resolve("how spicy is the biryani?", BUTTER_CHICKENS, store)
        assert resolution.kind == FollowupKind.PASS

    def test_attribute_word_in_new_search_passes(self, store):
        assert _resolve("spicy lamb vindaloo", BUTTER_CHICKENS, store).kind == FollowupKind.PASS
        assert _resolve("sweet lassi", [VINDALOO], store).kind == FollowupKind.PASS

    def test_show_more_from_grounded_restaurant(self, store):
        resolution = _resolve("show more from masala zone", BUTTER_CHICKENS, store)
        assert resolution.kind == FollowupKind.SHOW_MORE_RESTAURANT
        assert resolution.restaurant_id == "r-masala-zone"

    def test_show_more_from_unknown_restaurant(self, store):
        resolution = _resolve("more from nowhere cafe", BUTTER_CHICKENS, store)
        assert resolution.kind == FollowupKind.SHOW_MORE_RESTAURANT
        assert resolution.restaurant_id is None
        assert resolution.restaurant_name == "nowhere cafe"

    def test_paginate(self, store):
        assert _resolve("show more", BUTTER_CHICKENS, store).kind == FollowupKind.PAGINATE

    def test_no_results(self, store):
        assert _resolve("is it halal?", [], store).kind == FollowupKind.NOT_FOUND

    def test_not_a_tag_question(self, store):
        assert _resolve("what's good here", BUTTER_CHICKENS, store).kind == FollowupKind.PASS

    def test_plural_question_passes(self, store):
        assert _resolve("which dishes are halal?", BUTTER_CHICKENS, store).kind == FollowupKind.PASS

    def test_ambiguous_pronoun_clarifies(self, store):
        resolution = _resolve("is it halal?", BUTTER_CHICKENS, store)

        assert resolution.kind == FollowupKind.CLARIFY
        assert [d.dish_id for d in resolution.candidates] == ["d-102", "d-201", "d-501"]
        assert "Butter Chicken at Masala Zone" in resolution.answer

    def test_unknown_dish_not_found(self, store):
        assert _resolve("is the paneer halal?", BUTTER_CHICKENS[:1], store).kind == FollowupKind.NOT_FOUND

    def test_dietary_yes(self, store):
        resolution = _resolve("is it halal?", BUTTER_CHICKENS[:1], store)

        assert resolution.kind == FollowupKind.RESOLVED
        assert resolution.tag_found is True
        assert resolution.answer == '✅ Yes — Butter Chicken at Indian Bites is tagged "halal" in our data.'

    def test_dietary_no(self, store):
        resolution = _resolve("is it halal?", BUTTER_CHICKENS[1:2], store)

        assert resolution.tag_found is False
        assert resolution.answer.startswith("❌ No — Butter Chicken at Masala Zone is not tagged")

    def test_single_allergen_carries_disclaimer(self, store):
        resolution = _resolve("does it contain milk?", BUTTER_CHICKENS[:1], store)

        assert resolution.tag_found is True
        assert resolution.answer.endswith("⚠️ Tags are guidance; cross-contamination may occur.")

    def test_nuts_alias(self, store):
        resolution = _resolve("any nuts in it?", BUTTER_CHICKENS[:1], store)

        assert resolution.tag_found is False
        assert "peanuts / tree-nuts" in resolution.answer

    def test_all_allergens(self, store):
        resolution = _resolve("what allergens are in it?", BUTTER_CHICKENS[:1], store)

        assert resolution.answer.startswith("Contains allergens (tagged): Milk.")
