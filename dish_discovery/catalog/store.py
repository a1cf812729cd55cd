from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Protocol

import numpy as np
import pandas as pd
from sklearn.metrics.pairwise import cosine_similarity

from ..embeddings.config import DEFAULT_EMBEDDING_CONFIG
from ..text.normalize import trigram_similarity
from .models import (
    MenuDish,
    RestaurantRecord,
    SearchFilters,
    SemanticRow,
    TagInfo,
    TagRow,
    TrigramRow,
)

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"

FUZZY_THRESHOLD = 0.1
NAME_LOOKUP_THRESHOLD = 0.2
NAME_LOOKUP_LIMIT = 5

_TAG_TYPE_ORDER = {"diet": 0, "religious": 1, "allergen": 2}


class DishStore(Protocol):
    """Query-shaped access to the catalog. Every retrieval returns the shared row shape."""

    @property
    def semantic_enabled(self) -> bool: ...

    def semantic_search(self, embedding: np.ndarray, filters: SearchFilters) -> list[SemanticRow]: ...

    def fuzzy_search(self, text: str, filters: SearchFilters) -> list[TrigramRow]: ...

    def tag_search(self, filters: SearchFilters) -> list[TagRow]: ...

    def lookup_restaurant_by_name(self, text: str, city: str | None = None) -> list[RestaurantRecord]: ...

    def get_restaurant(self, restaurant_id: str) -> RestaurantRecord | None: ...

    def fetch_tags(self, dish_ids: Iterable[str]) -> dict[str, list[TagInfo]]: ...

    def resolve_tag_ids(self, names: Iterable[str]) -> list[str]: ...

    def fetch_menu(self, restaurant_id: str) -> list[MenuDish]: ...


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "t")
    if pd.isna(value):
        return False
    return bool(value)


def _optional_str(value) -> str | None:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def _optional_float(value) -> float | None:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _parse_hours(value) -> dict[str, str]:
    if isinstance(value, dict):
        return {str(k).lower(): str(v) for k, v in value.items()}
    text = _optional_str(value)
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        logger.warning("Unparseable opening_hours %r", text)
        return {}
    return {str(k).lower(): str(v) for k, v in parsed.items()} if isinstance(parsed, dict) else {}


class FrameDishStore:
    """
    In-memory catalog over pandas DataFrames (restaurants, dishes, tags, dish_tags).

    Dish embeddings, when present, are row-aligned with the dishes frame.
    Restaurants flagged ``public_searchable == false`` never appear in search
    results but can still be fetched by id.
    """

    def __init__(
        self,
        restaurants: pd.DataFrame,
        dishes: pd.DataFrame,
        tags: pd.DataFrame,
        dish_tags: pd.DataFrame,
        embeddings: np.ndarray | None = None,
    ) -> None:
        restaurants = restaurants.copy()
        restaurants["id"] = restaurants["id"].astype(str)
        if "public_searchable" in restaurants.columns:
            restaurants["public_searchable"] = restaurants["public_searchable"].apply(_as_bool)
        else:
            restaurants["public_searchable"] = True
        self._restaurants = restaurants.set_index("id", drop=False)

        dishes = dishes.reset_index(drop=True).copy()
        dishes["id"] = dishes["id"].astype(str)
        dishes["restaurant_id"] = dishes["restaurant_id"].astype(str)
        dishes["_pos"] = np.arange(len(dishes))
        if "section_name" not in dishes.columns:
            dishes["section_name"] = None

        joined = dishes.merge(
            restaurants[["id", "name", "city", "address", "public_searchable"]].rename(columns={
                "id": "restaurant_id",
                "name": "restaurant_name",
                "city": "restaurant_city",
                "address": "restaurant_address",
            }),
            on="restaurant_id",
            how="left",
        )
        joined["public_searchable"] = joined["public_searchable"].apply(_as_bool)
        joined["city_lower"] = joined["restaurant_city"].fillna("").str.lower()
        self._dishes = joined

        tags = tags.copy()
        tags["id"] = tags["id"].astype(str)
        self._tags = tags.set_index("id", drop=False)

        self._dish_tag_ids: dict[str, set[str]] = {}
        for dish_id, tag_id in zip(dish_tags["dish_id"].astype(str), dish_tags["tag_id"].astype(str)):
            self._dish_tag_ids.setdefault(dish_id, set()).add(tag_id)

        if embeddings is not None and len(embeddings) != len(dishes):
            logger.warning(
                "Ignoring dish embeddings: %d rows for %d dishes", len(embeddings), len(dishes),
            )
            embeddings = None
        self._embeddings = embeddings

    @classmethod
    def from_directory(cls, path: Path = DATA_DIR, embeddings_path: Path | None = None) -> FrameDishStore:
        """Load the four catalog CSVs from ``path`` (and embeddings if the .npy exists)."""
        path = Path(path)
        embeddings_path = embeddings_path or DEFAULT_EMBEDDING_CONFIG.embeddings_path
        embeddings = np.load(embeddings_path) if Path(embeddings_path).exists() else None
        return cls(
            restaurants=pd.read_csv(path / "restaurants.csv", dtype={"phone": str}),
            dishes=pd.read_csv(path / "dishes.csv"),
            tags=pd.read_csv(path / "tags.csv"),
            dish_tags=pd.read_csv(path / "dish_tags.csv"),
            embeddings=embeddings,
        )

    @property
    def semantic_enabled(self) -> bool:
        return self._embeddings is not None

    # ── Filtering ──

    def _satisfies_groups(self, dish_id: str, groups: list[list[str]]) -> bool:
        owned = self._dish_tag_ids.get(dish_id, set())
        return all(owned.intersection(group) for group in groups)

    def _candidates(self, filters: SearchFilters) -> pd.DataFrame:
        df = self._dishes
        mask = df["public_searchable"].astype(bool)
        if filters.city:
            mask &= df["city_lower"] == filters.city.strip().lower()
        if filters.restaurant_id:
            mask &= df["restaurant_id"] == str(filters.restaurant_id)
        if filters.tag_groups:
            groups = filters.tag_groups
            mask &= df["id"].apply(lambda d: self._satisfies_groups(d, groups))
        return df.loc[mask]

    @staticmethod
    def _row_fields(row: pd.Series, score: float) -> dict:
        return {
            "restaurant_id": str(row["restaurant_id"]),
            "restaurant_name": str(row["restaurant_name"]),
            "restaurant_city": _optional_str(row.get("restaurant_city")),
            "restaurant_address": _optional_str(row.get("restaurant_address")),
            "dish_id": str(row["id"]),
            "dish_name": str(row["name"]),
            "dish_description": _optional_str(row.get("description")),
            "dish_price": _optional_float(row.get("price")),
            "section_name": _optional_str(row.get("section_name")),
            "similarity_score": score,
        }

    # ── Retrievals ──

    def semantic_search(self, embedding: np.ndarray, filters: SearchFilters) -> list[SemanticRow]:
        if self._embeddings is None:
            return []
        subset = self._candidates(filters)
        if subset.empty:
            return []

        vecs = self._embeddings[subset["_pos"].to_numpy()]
        sims = cosine_similarity(np.asarray(embedding).reshape(1, -1), vecs).flatten()
        # Normalise cosine similarity from [-1, 1] to [0, 1]
        scores = (sims + 1.0) / 2.0

        rows = [
            SemanticRow(**self._row_fields(row, float(score)))
            for (_, row), score in zip(subset.iterrows(), scores)
        ]
        rows.sort(key=lambda r: r.similarity_score, reverse=True)
        return rows[: filters.limit]

    def fuzzy_search(self, text: str, filters: SearchFilters) -> list[TrigramRow]:
        if not text or not text.strip():
            return []
        rows: list[TrigramRow] = []
        for _, row in self._candidates(filters).iterrows():
            score = max(
                trigram_similarity(text, str(row["name"])),
                trigram_similarity(text, _optional_str(row.get("description")) or ""),
                trigram_similarity(text, _optional_str(row.get("section_name")) or ""),
            )
            if score >= FUZZY_THRESHOLD:
                rows.append(TrigramRow(**self._row_fields(row, score)))
        rows.sort(key=lambda r: r.similarity_score, reverse=True)
        return rows[: filters.limit]

    def tag_search(self, filters: SearchFilters) -> list[TagRow]:
        if not filters.tag_groups:
            return []
        subset = self._candidates(filters).sort_values(["restaurant_name", "name"])
        rows = [TagRow(**self._row_fields(row, 1.0)) for _, row in subset.iterrows()]
        return rows[: filters.limit]

    # ── Restaurants ──

    def _record(self, row: pd.Series, score: float | None = None) -> RestaurantRecord:
        return RestaurantRecord(
            id=str(row["id"]),
            name=str(row["name"]),
            city=_optional_str(row.get("city")),
            address=_optional_str(row.get("address")),
            cuisine=_optional_str(row.get("cuisine")),
            phone=_optional_str(row.get("phone")),
            timezone=_optional_str(row.get("timezone")) or "Europe/Stockholm",
            opening_hours=_parse_hours(row.get("opening_hours")),
            dine_in=_as_bool(row.get("dine_in")),
            takeaway=_as_bool(row.get("takeaway")),
            delivery=_as_bool(row.get("delivery")),
            similarity_score=score,
        )

    def lookup_restaurant_by_name(self, text: str, city: str | None = None) -> list[RestaurantRecord]:
        """Case-insensitive containment first, then trigram similarity (>= 0.2, top 5)."""
        needle = (text or "").strip().lower()
        if not needle:
            return []
        df = self._restaurants[self._restaurants["public_searchable"]]
        if city:
            df = df[df["city"].fillna("").str.lower() == city.strip().lower()]

        contains = df[df["name"].str.lower().str.contains(needle, regex=False, na=False)]
        if not contains.empty:
            return [self._record(row, 1.0) for _, row in contains.iterrows()]

        scored = [
            (trigram_similarity(needle, str(row["name"])), row) for _, row in df.iterrows()
        ]
        scored = [(s, row) for s, row in scored if s >= NAME_LOOKUP_THRESHOLD]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [self._record(row, s) for s, row in scored[:NAME_LOOKUP_LIMIT]]

    def get_restaurant(self, restaurant_id: str) -> RestaurantRecord | None:
        if restaurant_id not in self._restaurants.index:
            return None
        return self._record(self._restaurants.loc[restaurant_id])

    # ── Tags and menus ──

    def _tag_info(self, tag_id: str) -> TagInfo | None:
        if tag_id not in self._tags.index:
            return None
        row = self._tags.loc[tag_id]
        return TagInfo(id=tag_id, name=str(row["name"]), slug=str(row["slug"]), type=str(row["type"]))

    def fetch_tags(self, dish_ids: Iterable[str]) -> dict[str, list[TagInfo]]:
        result: dict[str, list[TagInfo]] = {}
        for dish_id in dish_ids:
            infos = [t for t in (self._tag_info(tid) for tid in self._dish_tag_ids.get(str(dish_id), ())) if t]
            infos.sort(key=lambda t: (_TAG_TYPE_ORDER.get(t.type, 9), t.name))
            result[str(dish_id)] = infos
        return result

    def resolve_tag_ids(self, names: Iterable[str]) -> list[str]:
        wanted = {n.strip().lower() for n in names if n and n.strip()}
        if not wanted:
            return []
        mask = self._tags["name"].str.lower().isin(wanted) | self._tags["slug"].str.lower().isin(wanted)
        return self._tags.loc[mask, "id"].tolist()

    def fetch_menu(self, restaurant_id: str) -> list[MenuDish]:
        subset = self._dishes[self._dishes["restaurant_id"] == str(restaurant_id)]
        tags = self.fetch_tags(subset["id"].tolist())
        return [
            MenuDish(
                id=str(row["id"]),
                name=str(row["name"]),
                description=_optional_str(row.get("description")),
                price=_optional_float(row.get("price")),
                section_name=_optional_str(row.get("section_name")),
                tags=[t.name for t in tags.get(str(row["id"]), [])],
            )
            for _, row in subset.iterrows()
        ]


_default_store: DishStore | None = None


def get_default_store(backend: str = "frame", data_dir: Path = DATA_DIR) -> DishStore:
    """Return the process-wide store, building it on first call."""
    global _default_store
    if _default_store is None:
        if backend == "supabase":
            from .supabase_store import SupabaseDishStore

            _default_store = SupabaseDishStore.from_env()
        else:
            _default_store = FrameDishStore.from_directory(data_dir)
    return _default_store
