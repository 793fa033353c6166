"""Query language detection and answer-language conditioning.

The bridge makes one model call that returns the query's language code and
an English rendering as a JSON object.  Translation only improves retrieval
accuracy, so any failure falls back to the original text tagged ``"en"``
instead of failing the request.
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional

from repochat.ai_provider.base import AIProvider

logger = logging.getLogger(__name__)

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "zh": "Chinese",
    "zh-CN": "Chinese (Simplified)",
    "zh-TW": "Chinese (Traditional)",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "ko": "Korean",
    "ru": "Russian",
    "ar": "Arabic",
    "pt": "Portuguese",
    "it": "Italian",
    "nl": "Dutch",
    "pl": "Polish",
    "tr": "Turkish",
    "vi": "Vietnamese",
    "th": "Thai",
    "hi": "Hindi",
}

DETECT_PROMPT = """Detect the language of the following text and translate it to English if it's not already in English.

Text: {text}

Respond in this exact JSON format:
{{
  "language": "language name (e.g., English, Chinese, Spanish, French, etc.)",
  "languageCode": "ISO language code (e.g., en, zh, es, fr, etc.)",
  "isEnglish": true or false,
  "translatedText": "the text in English (or original if already English)"
}}

Only respond with valid JSON, no additional text."""

RESPONSE_LANGUAGE_INSTRUCTION = (
    "\n\nIMPORTANT: You must respond in {name}. Translate your entire answer to "
    "{name} while keeping technical terms and code snippets in their original form."
)


@dataclass(frozen=True)
class TranslationResult:
    english_text: str
    language_code: str
    was_translated: bool


def get_language_name(language_code: str) -> str:
    """Human-readable name for *language_code*; unknown codes are returned as-is."""
    return LANGUAGE_NAMES.get(language_code, language_code)


def parse_translation_reply(reply: str, original: str) -> Optional[TranslationResult]:
    """Extract the first well-formed JSON object from a model reply.

    Returns None when the reply has no usable object.  A reply that reports
    ``isEnglish`` keeps the original text and the ``"en"`` code.
    """
    if not reply:
        return None

    decoder = json.JSONDecoder()
    payload = None
    pos = reply.find("{")
    while pos != -1:
        try:
            candidate, _ = decoder.raw_decode(reply, pos)
        except ValueError:
            pos = reply.find("{", pos + 1)
            continue
        if isinstance(candidate, dict):
            payload = candidate
            break
        pos = reply.find("{", pos + 1)

    if payload is None:
        return None

    if payload.get("isEnglish") is True:
        return TranslationResult(english_text=original, language_code="en", was_translated=False)

    translated = payload.get("translatedText")
    if not isinstance(translated, str) or not translated.strip():
        return None

    code = payload.get("languageCode")
    if not isinstance(code, str) or not code.strip():
        return None
    code = code.strip()
    if code.lower() == "en":
        return TranslationResult(english_text=original, language_code="en", was_translated=False)

    return TranslationResult(english_text=translated, language_code=code, was_translated=True)


def wrap_for_response_language(prompt: str, language_code: str) -> str:
    """Append an answer-language instruction unless the language is English."""
    if not language_code or language_code == "en":
        return prompt
    name = get_language_name(language_code)
    return prompt + RESPONSE_LANGUAGE_INSTRUCTION.format(name=name)


class LanguageBridge:
    """Detects the query language and renders the query in English.

    Args:
        provider:    Model used for detection/translation, or None to disable.
        enabled:     When False every query is passed through as English.
        temperature: Sampling temperature for the translation call.
    """

    def __init__(
        self,
        provider: Optional[AIProvider],
        enabled: bool = True,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> None:
        self._provider = provider
        self._enabled = enabled and provider is not None
        self._temperature = temperature
        self._max_tokens = max_tokens

    def detect_and_translate_to_english(self, text: str) -> TranslationResult:
        passthrough = TranslationResult(english_text=text, language_code="en", was_translated=False)
        if not self._enabled:
            return passthrough

        try:
            reply = self._provider.call_model(
                DETECT_PROMPT.format(text=json.dumps(text, ensure_ascii=False)),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except Exception as exc:
            logger.warning("[LanguageBridge] Translation call failed, using original text: %s", exc)
            return passthrough

        result = parse_translation_reply(reply, text)
        if result is None:
            logger.warning("[LanguageBridge] Unparseable translation reply, using original text")
            return passthrough

        if result.was_translated:
            logger.info("[LanguageBridge] Translated query from %s", result.language_code)
        return result
