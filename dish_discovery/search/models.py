from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

CandidateSource = Literal["semantic", "trigram", "both", "tag"]


class SearchWeights(BaseModel):
    semantic: float
    trigram: float
    profile: Literal["vibe", "dish", "balanced"] = "balanced"


class HybridCandidate(BaseModel):
    dish_id: str
    dish_name: str
    dish_description: str | None = None
    dish_price: float | None = None
    restaurant_id: str
    restaurant_name: str
    restaurant_city: str | None = None
    restaurant_address: str | None = None
    section_name: str | None = None
    semantic_score: float | None = None
    trigram_score: float | None = None
    final_score: float = 0.0
    source: CandidateSource = "trigram"


class DishMatch(BaseModel):
    id: str
    name: str
    description: str | None = None
    price: float | None = None
    section_name: str | None = None
    score: float = 0.0
    tags: list[str] = Field(default_factory=list)
    tag_slugs: list[str] = Field(default_factory=list)


class CardPagination(BaseModel):
    shown: int
    total: int
    remaining: int
    next_offset: int | None = None


class RestaurantCard(BaseModel):
    id: str
    name: str
    city: str | None = None
    address: str | None = None
    cuisine: str | None = None
    matches: list[DishMatch] = Field(default_factory=list)
    more_dishes_count: int = 0
    pagination: CardPagination | None = None
    dine_in: bool = False
    takeaway: bool = False
    delivery: bool = False


class TruncationMeta(BaseModel):
    total_restaurants: int = 0
    total_matches: int = 0
    truncated: bool = False
    restaurants_returned: int = 0
    dishes_per_restaurant: int = 0
    next_offset: int | None = None


class RetrievalStep(BaseModel):
    """One attempted strategy: its name, how many rows it produced, and why it stopped."""

    strategy: str
    rows: int = 0
    error: str | None = None


class SearchOutcome(BaseModel):
    cards: list[RestaurantCard] = Field(default_factory=list)
    strategy: str | None = None
    trace: list[RetrievalStep] = Field(default_factory=list)
    required_tags: list[str] = Field(default_factory=list)
    keyword_query: str | None = None

    @property
    def total_matches(self) -> int:
        return sum(len(c.matches) for c in self.cards)


class DishSearchRequest(BaseModel):
    """Parameters of one dish search. Stored on the chat state so it can be re-run for paging."""

    query_text: str | None = None
    tags: list[str] = Field(default_factory=list)
    city: str | None = None
    restaurant_id: str | None = None
    ingredients: list[str] = Field(default_factory=list)
    budget_max: float | None = None
