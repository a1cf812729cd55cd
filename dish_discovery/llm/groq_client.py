from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, TypeVar

from groq import Groq
from pydantic import BaseModel

from .config import DEFAULT_LLM_CONFIG, LLMConfig

if TYPE_CHECKING:
    from ..search.cache import BoundedCache

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "sv": "Swedish",
    "hi": "Hindi",
    "pa": "Punjabi",
    "ar": "Arabic",
    "ru": "Russian",
}

QUERY_TRANSLATION_PROMPT = (
    "You are a query translator for a Swedish food app. "
    "Translate the user's food query to Swedish.\n"
    "- If it's already Swedish, return SAME.\n"
    '- If it\'s English, return the Swedish translation (e.g. "soup" -> "soppa", '
    '"spicy chicken" -> "stark kyckling").\n'
    "- Return ONLY the translation or SAME. No other text."
)

TEXT_TRANSLATION_PROMPT = "You are a translator. Translate accurately without adding information."

_DIGITS_RE = re.compile(r"^\d+$")


def _create(
    messages: list[dict[str, str]],
    config: LLMConfig,
    *,
    temperature: float,
    max_tokens: int | None = None,
    json_mode: bool = False,
) -> str:
    client = Groq(api_key=config.api_key, timeout=config.timeout)
    kwargs = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    response = client.chat.completions.create(
        model=config.model,
        messages=messages,
        max_tokens=max_tokens or config.max_tokens,
        temperature=temperature,
        **kwargs,
    )
    return (response.choices[0].message.content or "").strip()


def complete_structured(
    system_prompt: str,
    user_prompt: str,
    schema: type[ModelT],
    config: LLMConfig = DEFAULT_LLM_CONFIG,
    temperature: float = 0.1,
) -> ModelT | None:
    """
    Ask the LLM for a JSON object and validate it against ``schema``.

    Returns None when the LLM is disabled, the call fails, the content is
    empty or not JSON, or the payload does not validate.
    """
    if not config.available:
        return None

    try:
        content = _create(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            config,
            temperature=temperature,
            json_mode=True,
        )
        if not content:
            logger.warning("Structured completion returned no content")
            return None
        return schema.model_validate(json.loads(content))

    except Exception:
        logger.warning("Structured completion failed (%s)", schema.__name__, exc_info=True)
        return None


def complete_text(
    system_prompt: str,
    user_prompt: str,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
    temperature: float = 0.3,
    max_tokens: int | None = None,
) -> str | None:
    """Plain-text completion. None on any failure or empty answer."""
    if not config.available:
        return None

    try:
        content = _create(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            config,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return content or None

    except Exception:
        logger.warning("Text completion failed", exc_info=True)
        return None


def translate_query(
    query: str,
    cache: BoundedCache | None = None,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> str:
    """
    Best-effort Swedish translation of a food query for the lexical branch.

    Falls back to the original query on failure, on ``SAME``, or for short
    and numeric input.
    """
    query = (query or "").strip()
    if len(query) < 3 or _DIGITS_RE.match(query):
        return query

    key = f"query:sv:{query.lower()}"
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    translation = complete_text(
        QUERY_TRANSLATION_PROMPT,
        query,
        config=config,
        temperature=0.0,
        max_tokens=config.translation_max_tokens,
    )
    if not translation or translation == "SAME" or translation.lower() == query.lower():
        result = query
    else:
        logger.info("Translated query %r -> %r", query, translation)
        result = translation

    if cache is not None and translation is not None:
        cache.set(key, result)
    return result


def translate_text(
    text: str,
    target_language: str,
    cache: BoundedCache | None = None,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> str:
    """Translate an earlier answer. Returns ``text`` unchanged when translation fails."""
    lang_name = LANGUAGE_NAMES.get(target_language, "English")
    key = f"text:{target_language}:{text}"
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached

    prompt = (
        f"Translate the following text to {lang_name}. Do not add new facts. "
        "Keep dish names as-is. Keep any safety disclaimers.\n\n"
        f"Text to translate:\n{text}"
    )
    translated = complete_text(TEXT_TRANSLATION_PROMPT, prompt, config=config, temperature=0.2)
    if not translated:
        return text

    if cache is not None:
        cache.set(key, translated)
    return translated
