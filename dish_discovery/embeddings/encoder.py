from __future__ import annotations

import logging
import time
from typing import Callable

import numpy as np

from .config import DEFAULT_EMBEDDING_CONFIG, EmbeddingConfig

logger = logging.getLogger(__name__)

_model = None


class EmbeddingError(RuntimeError):
    """Raised when a query embedding could not be produced after all retries."""


def _get_model(config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG):
    global _model
    if _model is None:
        from sentence_transformers import SentenceTransformer

        _model = SentenceTransformer(config.model_name)
    return _model


def encode_text(text: str, config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG) -> np.ndarray:
    """Encode a single string into a 1-D embedding vector."""
    model = _get_model(config)
    return np.asarray(model.encode(text, show_progress_bar=False), dtype=np.float32)


def encode_batch(texts: list[str], config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG) -> np.ndarray:
    """Encode a list of strings into a 2-D array of shape (N, dim)."""
    model = _get_model(config)
    return np.asarray(model.encode(texts, show_progress_bar=True, batch_size=256), dtype=np.float32)


def embed_with_retry(
    text: str,
    config: EmbeddingConfig = DEFAULT_EMBEDDING_CONFIG,
    encode: Callable[[str], np.ndarray] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> np.ndarray:
    """
    Embed ``text`` with exponential backoff (1s, 2s, 4s ... between attempts).

    Raises EmbeddingError once ``config.max_attempts`` attempts have failed.
    """
    encode = encode or (lambda t: encode_text(t, config))
    last_error: Exception | None = None

    for attempt in range(config.max_attempts):
        try:
            vector = encode(text)
            if vector is None or len(vector) == 0:
                raise ValueError("empty embedding")
            return vector
        except Exception as exc:
            last_error = exc
            if attempt < config.max_attempts - 1:
                delay = config.backoff_seconds * (2 ** attempt)
                logger.warning(
                    "Embedding attempt %d/%d failed, retrying in %.1fs",
                    attempt + 1, config.max_attempts, delay,
                )
                sleep(delay)

    logger.warning("Embedding failed after %d attempts", config.max_attempts, exc_info=last_error)
    raise EmbeddingError(f"embedding failed after {config.max_attempts} attempts") from last_error
