from __future__ import annotations

from datetime import datetime
from pathlib import Path

import numpy as np
import pytest

from dish_discovery.catalog.store import DATA_DIR, FrameDishStore
from dish_discovery.chat.config import PipelineConfig
from dish_discovery.chat.pipeline import DiscoveryServices
from dish_discovery.llm.config import LLMConfig
from dish_discovery.search.config import SearchConfig

DISABLED_LLM = LLMConfig(api_key="", enabled=False)
RULES_ONLY = PipelineConfig(llm_planner=False, restaurant_profile=True)

# Wednesday, inside most opening hours
WEDNESDAY_NOON = datetime(2026, 10, 14, 12, 0)


def _unused_embed(text: str) -> np.ndarray:
    raise AssertionError("semantic search is disabled in tests")


@pytest.fixture
def store(tmp_path: Path) -> FrameDishStore:
    """Bundled demo catalog without precomputed embeddings (trigram only)."""
    return FrameDishStore.from_directory(DATA_DIR, embeddings_path=tmp_path / "missing.npy")


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def services(store: FrameDishStore, events: list) -> DiscoveryServices:
    return DiscoveryServices(
        store=store,
        embed=_unused_embed,
        llm_config=DISABLED_LLM,
        search_config=SearchConfig(hybrid_enabled=True),
        pipeline_config=RULES_ONLY,
        record=lambda event_type, data: events.append({"type": event_type, **data}),
        now=lambda: WEDNESDAY_NOON,
    )
