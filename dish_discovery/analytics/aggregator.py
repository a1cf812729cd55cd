from __future__ import annotations

from collections import Counter
from typing import Any


def _ranked(counter: Counter[str], limit: int = 10) -> list[dict[str, Any]]:
    return [{"name": n, "count": c} for n, c in counter.most_common(limit)]


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    turns = [e for e in events if e["type"] == "turn"]
    total = len(turns)

    # Average response time
    times = [t["response_time_ms"] for t in turns if "response_time_ms" in t]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    action_counter: Counter[str] = Counter(t.get("action") or "unknown" for t in turns)
    followup_counter: Counter[str] = Counter(t["followup"] for t in turns if t.get("followup"))

    trigger_counter: Counter[str] = Counter()
    for t in turns:
        for name in t.get("triggers", []) or []:
            trigger_counter[name] += 1

    strategy_counter: Counter[str] = Counter(t["strategy"] for t in turns if t.get("strategy"))

    # Zero-result rate over turns that ran a search
    searches = [t for t in turns if t.get("results_count") is not None]
    zero_results = sum(1 for t in searches if t["results_count"] == 0)

    language_counter: Counter[str] = Counter(t.get("language") or "unknown" for t in turns)

    query_counter: Counter[str] = Counter()
    for t in turns:
        if t.get("dish_query"):
            query_counter[t["dish_query"].lower()] += 1

    return {
        "total_turns": total,
        "avg_response_time_ms": avg_time,
        "action_counts": dict(action_counter),
        "followup_counts": dict(followup_counter),
        "trigger_counts": dict(trigger_counter),
        "strategy_counts": dict(strategy_counter),
        "searches": len(searches),
        "zero_result_rate": round(zero_results / len(searches) * 100, 1) if searches else 0.0,
        "top_languages": _ranked(language_counter),
        "top_dish_queries": _ranked(query_counter),
    }
