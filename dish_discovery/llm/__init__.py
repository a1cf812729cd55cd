"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Structured (JSON) completions validated against pydantic schemas.
- Free-text completions for dish explanations.
- Query and answer translation memoized in an injected bounded cache.
- Graceful fallback when the LLM is unavailable or returns invalid output.
"""
