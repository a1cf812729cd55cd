"""
Text normalization layer.

Responsibilities:
- Lowercase and tokenize free text without losing non-Latin letters.
- Detect the user's language from script ranges and romanized phrases.
- Compare dish and restaurant names with spelling-tolerant similarity.
- Canonicalize multilingual dietary keywords through one ordered rule table.
"""
