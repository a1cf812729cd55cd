from __future__ import annotations

from dish_discovery.text.dietary import (
    canonical_dietary,
    detect_dietary,
    detect_hard_tags,
    is_dietary_word,
    strip_dietary_terms,
    validate_dietary,
)
from dish_discovery.text.normalize import (
    contains_phrase,
    detect_language,
    is_similar,
    normalize_text,
    tokenize,
    trigram_similarity,
)

# ── Normalization ────────────────────────────────────────────────────────


class TestNormalize:
    def test_punctuation_and_case(self):
        assert normalize_text("Butter  Chicken!!") == "butter chicken"

    def test_emoji_becomes_space(self):
        assert normalize_text("pizza🍕please") == "pizza please"

    def test_keeps_devanagari_marks(self):
        assert normalize_text("शाकाहारी खाना") == "शाकाहारी खाना"

    def test_empty(self):
        assert normalize_text("") == ""
        assert tokenize("  ") == []

    def test_contains_phrase_respects_word_edges(self):
        assert contains_phrase("is it halal?", "halal")
        assert not contains_phrase("vegan food", "veg")


# ── Language ─────────────────────────────────────────────────────────────


class TestDetectLanguage:
    def test_devanagari(self):
        assert detect_language("शाकाहारी खाना") == "hi"

    def test_gurmukhi(self):
        assert detect_language("ਪਨੀਰ ਟਿੱਕਾ") == "pa"

    def test_romanized_hindi(self):
        assert detect_language("ye kya hai") == "hi"

    def test_swedish_phrase(self):
        assert detect_language("finns det pizza") == "sv"

    def test_undecided(self):
        assert detect_language("butter chicken") is None


# ── Similarity ───────────────────────────────────────────────────────────


class TestSimilarity:
    def test_spelling_variants(self):
        assert is_similar("daal", "dal")
        assert is_similar("makhani", "makhni")

    def test_unrelated(self):
        assert not is_similar("pizza", "lassi")

    def test_trigram_identical(self):
        assert trigram_similarity("pizza", "pizza") == 1.0

    def test_trigram_disjoint(self):
        assert trigram_similarity("pizza", "curry") == 0.0

    def test_trigram_partial(self):
        score = trigram_similarity("butter chicken", "Butter Chicken Special")
        assert 0.0 < score < 1.0


# ── Dietary ──────────────────────────────────────────────────────────────


class TestDietary:
    def test_veg_shorthand(self):
        assert detect_dietary("veg pizza") == ["vegetarian"]

    def test_vegan_is_not_veg(self):
        assert detect_dietary("vegan pizza") == ["vegan"]

    def test_hindi_vegetarian(self):
        assert detect_dietary("शाकाहारी खाना") == ["vegetarian"]

    def test_vegan_drops_vegetarian_hard_tag(self):
        assert detect_hard_tags("vegan and vegetarian options") == ["vegan"]

    def test_soft_tags_are_not_hard(self):
        assert detect_hard_tags("kosher food") == []

    def test_hard_tags_from_validated_terms(self):
        assert detect_hard_tags("food", ["halal"]) == ["halal"]

    def test_canonical_synonyms(self):
        assert canonical_dietary("Vegetarisk") == "vegetarian"
        assert canonical_dietary("gluten free") == "gluten-free"
        assert canonical_dietary("spicy") == "spicy"

    def test_validate_clears_unevidenced(self):
        assert validate_dietary(["vegan"], "show me pizza") == []

    def test_validate_keeps_evidenced(self):
        assert validate_dietary(["veg", "vegetarian"], "veg thali") == ["vegetarian"]

    def test_strip_terms(self):
        assert strip_dietary_terms("halal gluten free pizza") == "pizza"

    def test_is_dietary_word(self):
        assert is_dietary_word("Veggie")
        assert not is_dietary_word("pizza")
