"""
Catalog access through Supabase RPCs.

RPCs used:
    search_public_dishes_semantic(query_embedding, target_city, dietary_tag_ids, limit_count)
    search_public_dishes_fuzzy(search_text, target_city, dietary_tag_ids, limit_count)
    search_public_dishes_by_tags_strict(target_city, dietary_tag_ids, limit_count)
    search_restaurant_by_name(search_text)

Every call degrades to an empty result on failure.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Iterable

import numpy as np
from dotenv import load_dotenv
from supabase import Client, create_client

from .models import (
    MenuDish,
    RestaurantRecord,
    SearchFilters,
    SemanticRow,
    TagInfo,
    TagRow,
    TrigramRow,
)
from .store import NAME_LOOKUP_LIMIT, NAME_LOOKUP_THRESHOLD

logger = logging.getLogger(__name__)

load_dotenv()


def get_supabase_client() -> Client:
    """Create a Supabase client using env vars."""
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_KEY"]
    return create_client(url, key)


class SupabaseDishStore:
    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_env(cls) -> SupabaseDishStore:
        return cls(get_supabase_client())

    @property
    def semantic_enabled(self) -> bool:
        return True

    def _rpc(self, name: str, params: dict[str, Any]) -> list[dict]:
        try:
            resp = self._client.rpc(name, params).execute()
            return resp.data or []
        except Exception:
            logger.warning("Supabase RPC %s failed", name, exc_info=True)
            return []

    @staticmethod
    def _base_params(filters: SearchFilters) -> dict[str, Any]:
        return {
            "target_city": filters.city,
            "dietary_tag_ids": filters.tag_ids or None,
            "limit_count": filters.limit,
        }

    @staticmethod
    def _scoped(rows: list[dict], filters: SearchFilters) -> list[dict]:
        # The RPCs have no restaurant parameter; scope client-side
        if not filters.restaurant_id:
            return rows
        return [r for r in rows if str(r.get("restaurant_id")) == str(filters.restaurant_id)]

    def semantic_search(self, embedding: np.ndarray, filters: SearchFilters) -> list[SemanticRow]:
        params = {"query_embedding": np.asarray(embedding).tolist(), **self._base_params(filters)}
        rows = self._scoped(self._rpc("search_public_dishes_semantic", params), filters)
        return [SemanticRow.model_validate(_stringify_ids(r)) for r in rows]

    def fuzzy_search(self, text: str, filters: SearchFilters) -> list[TrigramRow]:
        params = {"search_text": text, **self._base_params(filters)}
        rows = self._scoped(self._rpc("search_public_dishes_fuzzy", params), filters)
        return [TrigramRow.model_validate(_stringify_ids(r)) for r in rows]

    def tag_search(self, filters: SearchFilters) -> list[TagRow]:
        if not filters.tag_groups:
            return []
        # The strict RPC requires ALL ids, so send one representative per group;
        # group alternatives are enforced after tag hydration.
        params = self._base_params(filters)
        params["dietary_tag_ids"] = [group[0] for group in filters.tag_groups if group]
        rows = self._scoped(self._rpc("search_public_dishes_by_tags_strict", params), filters)
        return [TagRow.model_validate(_stringify_ids(r)) for r in rows]

    def lookup_restaurant_by_name(self, text: str, city: str | None = None) -> list[RestaurantRecord]:
        needle = (text or "").strip()
        if not needle:
            return []
        try:
            query = (
                self._client.table("restaurants")
                .select("*")
                .ilike("name", f"%{needle}%")
                .eq("public_searchable", True)
            )
            if city:
                query = query.ilike("city", city)
            exact = query.execute().data or []
        except Exception:
            logger.warning("Restaurant ILIKE lookup failed", exc_info=True)
            exact = []
        if exact:
            return [_restaurant_record(r, 1.0) for r in exact]

        rows = self._rpc("search_restaurant_by_name", {"search_text": needle})
        rows = [r for r in rows if (r.get("similarity_score") or 0) >= NAME_LOOKUP_THRESHOLD]
        return [
            _restaurant_record(r, r.get("similarity_score"))
            for r in rows[:NAME_LOOKUP_LIMIT]
        ]

    def get_restaurant(self, restaurant_id: str) -> RestaurantRecord | None:
        try:
            rows = self._client.table("restaurants").select("*").eq("id", restaurant_id).limit(1).execute().data
        except Exception:
            logger.warning("Restaurant fetch failed for %s", restaurant_id, exc_info=True)
            return None
        return _restaurant_record(rows[0]) if rows else None

    def fetch_tags(self, dish_ids: Iterable[str]) -> dict[str, list[TagInfo]]:
        ids = [str(d) for d in dish_ids]
        result: dict[str, list[TagInfo]] = {d: [] for d in ids}
        if not ids:
            return result
        try:
            rows = (
                self._client.table("dish_tags")
                .select("dish_id, tags(id, name, slug, type)")
                .in_("dish_id", ids)
                .execute()
                .data
                or []
            )
        except Exception:
            logger.warning("Tag fetch failed for %d dishes", len(ids), exc_info=True)
            return result
        for row in rows:
            tag = row.get("tags")
            if tag:
                result.setdefault(str(row["dish_id"]), []).append(
                    TagInfo(id=str(tag["id"]), name=tag["name"], slug=tag.get("slug") or "",
                            type=tag.get("type") or "diet")
                )
        return result

    def resolve_tag_ids(self, names: Iterable[str]) -> list[str]:
        ids: list[str] = []
        for name in names:
            try:
                rows = self._client.table("tags").select("id").ilike("name", name).execute().data or []
            except Exception:
                logger.warning("Tag id lookup failed for %r", name, exc_info=True)
                continue
            ids.extend(str(r["id"]) for r in rows if str(r["id"]) not in ids)
        return ids

    def fetch_menu(self, restaurant_id: str) -> list[MenuDish]:
        try:
            rows = (
                self._client.table("dishes")
                .select("id, name, description, price, menu_sections(name), dish_tags(tags(name))")
                .eq("restaurant_id", restaurant_id)
                .eq("public", True)
                .execute()
                .data
                or []
            )
        except Exception:
            logger.warning("Menu fetch failed for %s", restaurant_id, exc_info=True)
            return []
        return [
            MenuDish(
                id=str(r["id"]),
                name=r["name"],
                description=r.get("description"),
                price=r.get("price"),
                section_name=(r.get("menu_sections") or {}).get("name"),
                tags=[dt["tags"]["name"] for dt in r.get("dish_tags") or [] if dt.get("tags")],
            )
            for r in rows
        ]


def _stringify_ids(row: dict) -> dict:
    out = dict(row)
    for key in ("restaurant_id", "dish_id"):
        if out.get(key) is not None:
            out[key] = str(out[key])
    return out


def _restaurant_record(row: dict, score: float | None = None) -> RestaurantRecord:
    return RestaurantRecord(
        id=str(row["id"]),
        name=row["name"],
        city=row.get("city"),
        address=row.get("address"),
        cuisine=row.get("cuisine_type") or row.get("cuisine"),
        phone=row.get("phone"),
        timezone=row.get("timezone") or "Europe/Stockholm",
        opening_hours={str(k).lower(): str(v) for k, v in (row.get("opening_hours") or {}).items()},
        dine_in=bool(row.get("dine_in")),
        takeaway=bool(row.get("takeaway")),
        delivery=bool(row.get("delivery")),
        similarity_score=score,
    )
