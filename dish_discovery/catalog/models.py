from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

TagType = Literal["diet", "allergen", "religious"]


class TagInfo(BaseModel):
    id: str
    name: str
    slug: str
    type: TagType = "diet"


class DishRow(BaseModel):
    """Common shape of every retrieval row: restaurant + dish + a 0..1 score."""

    restaurant_id: str
    restaurant_name: str
    restaurant_city: str | None = None
    restaurant_address: str | None = None
    dish_id: str
    dish_name: str
    dish_description: str | None = None
    dish_price: float | None = None
    section_name: str | None = None
    similarity_score: float = 0.0

    @field_validator("similarity_score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        if v is None:
            return 0.0
        return min(1.0, max(0.0, float(v)))


class SemanticRow(DishRow):
    source: Literal["semantic"] = "semantic"


class TrigramRow(DishRow):
    source: Literal["trigram"] = "trigram"


class TagRow(DishRow):
    source: Literal["tag"] = "tag"


class SearchFilters(BaseModel):
    """
    Optional filters shared by all three retrievals.

    ``tag_groups`` is a conjunction of disjunctions: a dish must carry at
    least one tag id from every group.
    """

    city: str | None = None
    tag_groups: list[list[str]] = Field(default_factory=list)
    restaurant_id: str | None = None
    limit: int = Field(default=40, ge=1, le=200)

    @property
    def tag_ids(self) -> list[str]:
        seen: list[str] = []
        for group in self.tag_groups:
            for tag_id in group:
                if tag_id not in seen:
                    seen.append(tag_id)
        return seen


class RestaurantRecord(BaseModel):
    id: str
    name: str
    city: str | None = None
    address: str | None = None
    cuisine: str | None = None
    phone: str | None = None
    timezone: str = "Europe/Stockholm"
    opening_hours: dict[str, str] = Field(default_factory=dict)
    dine_in: bool = False
    takeaway: bool = False
    delivery: bool = False
    similarity_score: float | None = None


class MenuDish(BaseModel):
    id: str
    name: str
    description: str | None = None
    price: float | None = None
    section_name: str | None = None
    tags: list[str] = Field(default_factory=list)


class RestaurantProfile(RestaurantRecord):
    is_open_now: bool = False
    today_hours: str | None = None
    menu_preview: list[MenuDish] = Field(default_factory=list)
