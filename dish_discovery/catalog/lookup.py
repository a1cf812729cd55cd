from __future__ import annotations

import logging
import re
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..text.normalize import normalize_text, trigram_similarity
from .models import RestaurantProfile, RestaurantRecord
from .store import NAME_LOOKUP_THRESHOLD, DishStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Stockholm"
MENU_PREVIEW_SIZE = 3

_DAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
_HOURS_RE = re.compile(r"(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})")

# Ignored when comparing names by trigram
_GENERIC_NAME_WORDS = {
    "the", "and", "restaurant", "restaurang", "kitchen", "cafe", "café", "bar", "grill", "house", "bistro",
}


def _zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using %s", name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def compute_open_status(
    opening_hours: dict[str, str],
    timezone: str | None = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> tuple[bool, str | None]:
    """
    Return ``(is_open_now, today_hours)`` for a weekly hours mapping.

    Keys may be full ("monday") or short ("mon") day names. Values look like
    ``"11:00-22:00"`` or ``"closed"``. Unparseable values are reported as not
    open, with the raw text passed through.
    """
    tz = _zone(timezone)
    if now is None:
        now = datetime.now(tz)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    else:
        now = now.astimezone(tz)

    day = _DAYS[now.weekday()]
    hours = {k.lower(): v for k, v in (opening_hours or {}).items()}
    entry = hours.get(day) or hours.get(day[:3])
    if not entry:
        return False, None

    if entry.strip().lower() == "closed":
        return False, "Closed today"

    match = _HOURS_RE.search(entry)
    if not match:
        return False, entry

    start = int(match.group(1)) * 60 + int(match.group(2))
    end = int(match.group(3)) * 60 + int(match.group(4))
    current = now.hour * 60 + now.minute
    if end <= start:
        # Past midnight, e.g. 18:00-02:00
        is_open = current >= start or current < end
    else:
        is_open = start <= current < end
    return is_open, entry


def find_best_restaurant(store: DishStore, name: str, city: str | None = None) -> RestaurantRecord | None:
    """Exact name, then the shortest containing name, then a trigram hit on distinctive words."""
    needle = (name or "").strip().lower()
    if not needle:
        return None

    candidates = store.lookup_restaurant_by_name(needle, city)
    if not candidates and city:
        candidates = store.lookup_restaurant_by_name(needle)
    if not candidates:
        return None

    exact = [c for c in candidates if c.name.lower() == needle]
    if exact:
        return exact[0]
    containing = [c for c in candidates if needle in c.name.lower()]
    if containing:
        return min(containing, key=lambda c: len(c.name))

    wanted = _distinctive(needle)
    for candidate in candidates:
        if trigram_similarity(wanted, _distinctive(candidate.name)) >= NAME_LOOKUP_THRESHOLD:
            return candidate
    logger.info("No restaurant shares a distinctive word with %r", name)
    return None


def _distinctive(name: str) -> str:
    return " ".join(w for w in normalize_text(name).split() if w not in _GENERIC_NAME_WORDS)


def build_profile(
    store: DishStore,
    record: RestaurantRecord,
    now: datetime | None = None,
) -> RestaurantProfile:
    is_open, today_hours = compute_open_status(record.opening_hours, record.timezone, now)
    menu = store.fetch_menu(record.id)
    return RestaurantProfile(
        **record.model_dump(),
        is_open_now=is_open,
        today_hours=today_hours,
        menu_preview=menu[:MENU_PREVIEW_SIZE],
    )
