"""
Embeddings layer for semantic dish search.

Responsibilities:
- Load a lightweight sentence-transformer model.
- Precompute embeddings for all catalog dishes (offline).
- Encode user dish queries at request time, with bounded retry.
"""
