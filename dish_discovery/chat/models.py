from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..catalog.models import MenuDish, RestaurantProfile
from ..search.models import DishSearchRequest, RestaurantCard, TruncationMeta

ChatMode = Literal["discovery", "restaurant", "restaurant_profile"]


class Action(str, Enum):
    SEARCH = "SEARCH"
    FOLLOWUP = "FOLLOWUP"
    EXPLAIN = "EXPLAIN"
    CLARIFY = "CLARIFY"
    RESHOW = "RESHOW"
    EXIT_RESTAURANT = "EXIT_RESTAURANT"
    SHOW_MENU = "SHOW_MENU"
    RESTAURANT_LOOKUP = "RESTAURANT_LOOKUP"


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------


def _list_of_str(v: Any) -> list[str]:
    if v is None:
        return []
    if isinstance(v, str):
        return [v] if v.strip() else []
    return [str(item) for item in v if item is not None and str(item).strip()]


class IntentDraft(BaseModel):
    """What the completion proposes. Lenient: nulls become empty lists, bad numbers become None."""

    model_config = ConfigDict(extra="ignore")

    dish_query: str | None = None
    city: str | None = None
    dietary: list[str] = Field(default_factory=list)
    allergy: list[str] = Field(default_factory=list)
    ingredients: list[str] = Field(default_factory=list)
    price_max: float | None = None
    language: str | None = None
    is_vague: bool = False
    is_followup: bool = False
    restaurant_name: str | None = None
    show_menu: bool = False
    exit_restaurant: bool = False
    is_drink: bool = False
    cuisine: str | None = None

    @field_validator("dietary", "allergy", "ingredients", mode="before")
    @classmethod
    def _coerce_lists(cls, v):
        return _list_of_str(v)

    @field_validator("price_max", mode="before")
    @classmethod
    def _coerce_price(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @field_validator("is_vague", "is_followup", "show_menu", "exit_restaurant", "is_drink", mode="before")
    @classmethod
    def _coerce_flags(cls, v):
        return v is True


class Intent(BaseModel):
    """Structured reading of one utterance. Immutable once extracted."""

    model_config = ConfigDict(frozen=True)

    dish_query: str | None = None
    city: str | None = None
    dietary: list[str] = Field(default_factory=list)
    allergy: list[str] = Field(default_factory=list)
    ingredients: list[str] = Field(default_factory=list)
    hard_tags: list[str] = Field(default_factory=list)
    price_max: float | None = None
    language: str = "en"
    original_query: str = ""
    is_vague: bool = False
    is_followup: bool = False
    is_restaurant_lookup: bool = False
    restaurant_name: str | None = None
    show_menu: bool = False
    exit_restaurant: bool = False
    cuisine: str | None = None
    is_drink: bool = False

    @model_validator(mode="before")
    @classmethod
    def _dish_query_is_never_vague(cls, data):
        if isinstance(data, dict) and (data.get("dish_query") or "").strip():
            data = {**data, "is_vague": False}
        return data


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


class SearchParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    query_text: str | None = None
    tags: list[str] | None = None
    city: str | None = None
    budget_max_sek: float | None = None


class PrefsPatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    language: str | None = None
    dietary: list[str] | None = None
    city: str | None = None
    budget_max_sek: float | None = None


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Action
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    reason: str | None = None
    prefs_patch: PrefsPatch | None = None
    dish_query: str | None = None
    search: SearchParams | None = None


class PlanResult(BaseModel):
    plan: Plan
    triggered: list[str] = Field(default_factory=list)
    used_fallback: bool = False
    raw_action: str | None = None


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


class LastResultDish(BaseModel):
    dish_id: str
    dish_name: str
    restaurant_id: str
    restaurant_name: str
    tag_slugs: list[str] = Field(default_factory=list)
    price: float | None = None
    description: str | None = None


class GroundedRestaurant(BaseModel):
    id: str
    name: str


class GroundedState(BaseModel):
    """The last results the user actually saw."""

    dishes: list[LastResultDish] = Field(default_factory=list)
    restaurants: list[GroundedRestaurant] = Field(default_factory=list)
    last_query: str | None = None
    last_dietary: list[str] = Field(default_factory=list)
    last_matches_count: int = 0
    last_was_no_results: bool = False

    @property
    def has_context(self) -> bool:
        return bool(self.dishes)


class LastExplain(BaseModel):
    text: str
    language: str = "en"
    dish_name: str | None = None


class RestaurantCursor(BaseModel):
    restaurant_id: str
    restaurant_name: str
    shown_count: int = 0
    total_matches: int = 0
    next_offset: int | None = None


class ChatState(BaseModel):
    mode: ChatMode = "discovery"
    current_restaurant_id: str | None = None
    current_restaurant_name: str | None = None
    language: str = "en"
    last_explain: LastExplain | None = None
    last_search: DishSearchRequest | None = None
    next_offset: int | None = None
    restaurant_cursors: list[RestaurantCursor] = Field(default_factory=list)

    @property
    def in_restaurant(self) -> bool:
        return self.mode == "restaurant" and bool(self.current_restaurant_id)


class ChatTurn(BaseModel):
    role: str
    content: str


class ConversationSession(BaseModel):
    """Everything kept server-side for one browser session."""

    chat_state: ChatState = Field(default_factory=ChatState)
    grounded: GroundedState = Field(default_factory=GroundedState)
    history: list[ChatTurn] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Followups
# ---------------------------------------------------------------------------


class FollowupKind(str, Enum):
    RESOLVED = "RESOLVED"
    CLARIFY = "CLARIFY"
    NOT_FOUND = "NOT_FOUND"
    PASS = "PASS"
    TRANSLATE_LAST = "TRANSLATE_LAST"
    PAGINATE = "PAGINATE"
    SHOW_MORE_RESTAURANT = "SHOW_MORE_RESTAURANT"


class FollowupResolution(BaseModel):
    kind: FollowupKind
    matched_dish: LastResultDish | None = None
    candidates: list[LastResultDish] = Field(default_factory=list)
    answer: str | None = None
    tag_found: bool | None = None
    target_language: str | None = None
    restaurant_id: str | None = None
    restaurant_name: str | None = None


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)
    chat_state: ChatState | None = None
    grounded: GroundedState | None = None


class ChatResponseType(str, Enum):
    results = "results"
    answer = "answer"
    clarification = "clarification"
    profile = "profile"
    menu = "menu"
    message = "message"


class ChatResponse(BaseModel):
    type: ChatResponseType
    action: str | None = None
    message: str
    restaurants: list[RestaurantCard] = Field(default_factory=list)
    profile: RestaurantProfile | None = None
    menu: list[MenuDish] = Field(default_factory=list)
    meta: TruncationMeta | None = None
    candidates: list[LastResultDish] = Field(default_factory=list)
    chat_state: ChatState = Field(default_factory=ChatState)
    grounded: GroundedState = Field(default_factory=GroundedState)
    trace: dict[str, Any] = Field(default_factory=dict)
