from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SearchConfig:
    hybrid_enabled: bool = _flag("DISCOVERY_HYBRID_SEARCH", True)
    limit_per_source: int = 40
    limit_count: int = 50
    max_restaurants: int = 8
    max_dishes_per_restaurant: int = 4
    show_more_page_size: int = 8
    translation_cache_size: int = 512
    translation_cache_ttl: float = 24 * 3600.0
    store_backend: str = os.getenv("DISCOVERY_STORE", "frame")
    data_dir: Path = Path(os.getenv("DISCOVERY_DATA_DIR", str(Path(__file__).resolve().parent.parent / "catalog" / "data")))


DEFAULT_SEARCH_CONFIG = SearchConfig()
