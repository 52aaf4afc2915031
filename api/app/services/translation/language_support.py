"""Language support registry: pair validation and offline pattern-based detection."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from app.metrics.translation_metrics import (
    language_detection_confidence,
    language_detection_total,
)

logger = logging.getLogger(__name__)

# Languages served by the trading platform (ISO 639-1 codes)
SUPPORTED_LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "hi": "Hindi",
    "bn": "Bengali",
    "ur": "Urdu",
    "ta": "Tamil",
    "te": "Telugu",
    "mr": "Marathi",
    "gu": "Gujarati",
    "kn": "Kannada",
    "ml": "Malayalam",
}

DEFAULT_LANGUAGE = "en"


@dataclass
class LanguagePairValidation:
    """Outcome of validating a source/target pair."""

    valid: bool
    error: Optional[str] = None


@dataclass
class LanguageDetectionResult:
    language: str
    confidence: float


@dataclass
class LanguageSegment:
    language: str
    confidence: float
    portion: str


@dataclass
class MixedLanguageDetection:
    is_mixed: bool
    languages: list[LanguageSegment] = field(default_factory=list)


class LanguageSupport:
    """Validate language pairs and detect languages without calling a provider.

    Detection scores every supported language from two signals: matches of
    language-specific regex patterns, and whole-word matches against a list
    of common words (weighted twice as much). The highest score wins; ties
    and texts with no signal at all fall back to the default language.
    """

    CONFIDENCE_THRESHOLD: ClassVar[float] = 0.3
    COMMON_WORD_WEIGHT: ClassVar[int] = 2

    LANGUAGE_PATTERNS: ClassVar[dict[str, list[re.Pattern[str]]]] = {
        "en": [
            re.compile(r"\b(?:the|and|or|but|in|on|at|to|for|of|with|by)\b"),
            re.compile(
                r"\b(?:hello|hi|yes|no|please|thank|you|good|bad|price|buy|sell)\b"
            ),
        ],
        "es": [
            re.compile(r"\b(?:el|la|los|las|y|o|pero|en|con|de|para|por)\b"),
            re.compile(
                r"\b(?:hola|sí|no|por favor|gracias|bueno|malo|precio|comprar|vender)\b"
            ),
            re.compile(r"[¿¡ñ]"),
        ],
        "fr": [
            re.compile(r"\b(?:le|la|les|et|ou|mais|dans|avec|de|pour|par)\b"),
            re.compile(
                r"\b(?:bonjour|oui|non|s'il vous plaît|merci|bon|mauvais|prix|acheter|vendre)\b"
            ),
            re.compile(r"[çœ]|\b(?:c|d|j|l|n|qu)'"),
        ],
        "de": [
            re.compile(r"\b(?:der|die|das|und|oder|aber|mit|für|von|nicht|ist)\b"),
            re.compile(r"\b(?:hallo|bitte|danke|preis|kaufen|verkaufen|gut)\b"),
            re.compile(r"[äöüß]"),
        ],
        "it": [
            re.compile(r"\b(?:il|lo|gli|e|ma|con|per|di|che|non)\b"),
            re.compile(r"\b(?:ciao|grazie|prezzo|comprare|vendere|buono)\b"),
        ],
        "pt": [
            re.compile(r"\b(?:o|os|as|e|mas|com|para|não|uma|um)\b"),
            re.compile(r"\b(?:olá|obrigado|obrigada|preço|comprar|vender|bom)\b"),
            re.compile(r"[ãõ]"),
        ],
        "ru": [re.compile(r"[\u0400-\u04ff]+")],  # Cyrillic
        "zh": [
            re.compile(r"[\u4e00-\u9fff]+"),  # Han ideographs
            re.compile(r"(?:的|和|或|但是|在|与|为|从|这|那|是|不是)"),
        ],
        "ja": [re.compile(r"[\u3040-\u30ff]+")],  # Hiragana/Katakana
        "ko": [re.compile(r"[\uac00-\ud7af]+")],  # Hangul
        "ar": [
            re.compile(r"[\u0600-\u06ff]+"),  # Arabic script
            re.compile(r"(?:في|من|إلى|مع|على|عن|هذا|ذلك|نعم|لا)"),
        ],
        "ur": [re.compile(r"[\u0679\u0688\u0691\u06ba\u06be\u06c1\u06d2\u06d3]")],  # Urdu-only letters
        "hi": [
            re.compile(r"[\u0900-\u097f]+"),  # Devanagari
            re.compile(r"(?:और|या|लेकिन|में|के साथ|के लिए|से|का|की|के)"),
        ],
        "mr": [re.compile(r"(?:आहे|आणि|नाही|काय|मला|तुम्ही)")],
        "bn": [re.compile(r"[\u0980-\u09ff]+")],  # Bengali
        "gu": [re.compile(r"[\u0a80-\u0aff]+")],  # Gujarati
        "ta": [re.compile(r"[\u0b80-\u0bff]+")],  # Tamil
        "te": [re.compile(r"[\u0c00-\u0c7f]+")],  # Telugu
        "kn": [re.compile(r"[\u0c80-\u0cff]+")],  # Kannada
        "ml": [re.compile(r"[\u0d00-\u0d7f]+")],  # Malayalam
    }

    COMMON_WORDS: ClassVar[dict[str, list[str]]] = {
        "en": [
            "the", "and", "or", "but", "in", "on", "at", "to", "for", "of",
            "with", "by", "hello", "hi", "yes", "no", "please", "thank", "you",
            "good", "bad", "price",
        ],
        "es": [
            "el", "la", "los", "las", "y", "o", "pero", "en", "con", "de",
            "para", "por", "hola", "sí", "no", "por favor", "gracias", "bueno",
            "malo", "precio",
        ],
        "fr": [
            "le", "la", "les", "et", "ou", "mais", "dans", "avec", "de", "pour",
            "par", "bonjour", "oui", "non", "merci", "bon", "mauvais", "prix",
        ],
        "de": [
            "der", "die", "das", "und", "oder", "mit", "nicht", "hallo",
            "bitte", "danke", "preis",
        ],
        "it": ["il", "gli", "che", "non", "ciao", "grazie", "prezzo"],
        "pt": ["não", "uma", "olá", "obrigado", "obrigada", "preço"],
        "ur": ["ہے", "اور", "میں", "کے", "نہیں"],
    }

    SENTENCE_SPLIT: ClassVar[re.Pattern[str]] = re.compile(r"[.!?]+")

    REGIONAL_VARIANTS: ClassVar[dict[str, str]] = {
        "zh-cn": "zh",
        "zh-tw": "zh",
        "pt-br": "pt",
        "pt-pt": "pt",
        "en-us": "en",
        "en-gb": "en",
        "es-es": "es",
        "es-mx": "es",
        "fr-fr": "fr",
        "fr-ca": "fr",
    }

    def __init__(self, default_language: str = DEFAULT_LANGUAGE):
        """Initialize the registry.

        Args:
            default_language: Code returned when detection has no clear winner.

        Raises:
            ValueError: If the default language is not supported.
        """
        if default_language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Default language '{default_language}' is not supported")
        self.default_language = default_language
        self.supported_languages = dict(SUPPORTED_LANGUAGES)

        # Whole-word, case-insensitive matchers for the common-word lists
        self._word_patterns: dict[str, list[re.Pattern[str]]] = {
            language: [
                re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE) for word in words
            ]
            for language, words in self.COMMON_WORDS.items()
        }
        logger.info(
            f"Language support initialized with {len(self.supported_languages)} languages "
            f"(default: {self.default_language})"
        )

    def is_language_supported(self, language_code: str) -> bool:
        return language_code in self.supported_languages

    def get_supported_languages(self) -> list[str]:
        return list(self.supported_languages)

    def validate_language_pair(
        self, source_lang: str, target_lang: str
    ) -> LanguagePairValidation:
        """Validate a language pair for translation.

        Args:
            source_lang: Source language code.
            target_lang: Target language code.

        Returns:
            LanguagePairValidation with the first failing reason, if any.
        """
        if not self.is_language_supported(source_lang):
            return LanguagePairValidation(
                valid=False, error=f"Source language '{source_lang}' is not supported"
            )
        if not self.is_language_supported(target_lang):
            return LanguagePairValidation(
                valid=False, error=f"Target language '{target_lang}' is not supported"
            )
        if source_lang == target_lang:
            return LanguagePairValidation(
                valid=False, error="Source and target languages cannot be the same"
            )
        return LanguagePairValidation(valid=True)

    def _score_languages(self, text: str) -> dict[str, int]:
        normalized = text.lower()
        scores = {language: 0 for language in self.supported_languages}

        for language, patterns in self.LANGUAGE_PATTERNS.items():
            if language not in scores:
                continue
            scores[language] += sum(len(p.findall(normalized)) for p in patterns)

        for language, patterns in self._word_patterns.items():
            if language not in scores:
                continue
            word_hits = sum(len(p.findall(normalized)) for p in patterns)
            scores[language] += word_hits * self.COMMON_WORD_WEIGHT

        return scores

    def detect_language_by_patterns(self, text: str) -> LanguageDetectionResult:
        """Detect the language of a text from patterns and common words.

        Args:
            text: Text to inspect.

        Returns:
            LanguageDetectionResult; confidence is clamped to [0.1, 0.9].
        """
        scores = self._score_languages(text or "")
        best_score = max(scores.values(), default=0)
        leaders = [lang for lang, score in scores.items() if score == best_score]

        if best_score > 0 and len(leaders) == 1:
            language = leaders[0]
            backend = "pattern"
        else:
            language = self.default_language
            backend = "pattern_default"

        word_count = max(len((text or "").split()), 1)
        confidence = max(0.1, min(0.9, best_score / word_count))

        language_detection_total.labels(backend=backend, result=language).inc()
        language_detection_confidence.labels(backend=backend).observe(confidence)
        return LanguageDetectionResult(language=language, confidence=confidence)

    def detect_mixed_languages(self, text: str) -> MixedLanguageDetection:
        """Detect whether a text switches language between sentences."""
        sentences = [
            s.strip() for s in self.SENTENCE_SPLIT.split(text or "") if s.strip()
        ]

        if len(sentences) <= 1:
            detection = self.detect_language_by_patterns(text)
            return MixedLanguageDetection(
                is_mixed=False,
                languages=[
                    LanguageSegment(
                        language=detection.language,
                        confidence=detection.confidence,
                        portion=text,
                    )
                ],
            )

        segments = []
        for sentence in sentences:
            detection = self.detect_language_by_patterns(sentence)
            segments.append(
                LanguageSegment(
                    language=detection.language,
                    confidence=detection.confidence,
                    portion=sentence,
                )
            )

        distinct = {segment.language for segment in segments}
        return MixedLanguageDetection(is_mixed=len(distinct) > 1, languages=segments)

    def normalize_language_code(self, language_code: str) -> str:
        """Collapse regional variants (``pt-BR``, ``en_US``) to the base code."""
        lowered = (language_code or "").strip().lower().replace("_", "-")
        if lowered in self.REGIONAL_VARIANTS:
            return self.REGIONAL_VARIANTS[lowered]
        return lowered.split("-", 1)[0]

    def get_language_name(self, language_code: str) -> str:
        return self.supported_languages.get(language_code, language_code.upper())

    def get_confidence_threshold(self) -> float:
        """Minimum pattern-detection confidence worth trusting."""
        return self.CONFIDENCE_THRESHOLD

    def is_likely_language(self, text: str, expected_language: str) -> bool:
        detection = self.detect_language_by_patterns(text)
        return (
            detection.language == expected_language
            and detection.confidence >= self.get_confidence_threshold()
        )
