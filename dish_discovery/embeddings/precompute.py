"""
Offline script to precompute dish embeddings for the bundled catalog.

Usage:
    python -m dish_discovery.embeddings.precompute
"""
from __future__ import annotations

import numpy as np
import pandas as pd

from ..catalog.store import DATA_DIR
from .config import DEFAULT_EMBEDDING_CONFIG
from .encoder import encode_batch

_DISHES_CSV = DATA_DIR / "dishes.csv"


def build_dish_text(row: pd.Series) -> str:
    parts: list[str] = []
    for column in ("name", "description", "section_name"):
        if pd.notna(row.get(column)) and str(row[column]).strip():
            parts.append(str(row[column]))
    return " ".join(parts).strip().lower()


def run_precompute() -> None:
    df = pd.read_csv(_DISHES_CSV)
    texts = df.apply(build_dish_text, axis=1).tolist()

    print(f"Encoding {len(texts)} dishes ...")
    embeddings = encode_batch(texts)

    out_path = DEFAULT_EMBEDDING_CONFIG.embeddings_path
    np.save(out_path, embeddings)
    print(f"Saved embeddings ({embeddings.shape}) to {out_path}")


if __name__ == "__main__":
    run_precompute()
