"""
Dish retrieval and result shaping.

Responsibilities:
- Run semantic and trigram retrieval in parallel and fuse their scores.
- Walk an ordered list of retrieval strategies until one yields rows.
- Enforce tag requirements from catalog tag evidence only.
- Group dishes into restaurant cards, isolate focus, filter and truncate.
"""
