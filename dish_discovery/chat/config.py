from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _enabled_unless_off(name: str) -> bool:
    raw = os.getenv(name)
    if not raw:
        return True
    return raw.strip().lower() in ("1", "true")


@dataclass(frozen=True)
class PipelineConfig:
    llm_planner: bool = os.getenv("DISCOVERY_LLM_PLANNER", "") == "1"
    restaurant_profile: bool = _enabled_unless_off("DISCOVERY_RESTAURANT_PROFILE")
    planner_confidence_floor: float = 0.7
    history_window: int = 6  # 3 exchanges


DEFAULT_PIPELINE_CONFIG = PipelineConfig()
