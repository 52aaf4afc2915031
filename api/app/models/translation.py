from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

TranslationDomain = Literal["trade", "negotiation", "general"]
NegotiationPhase = Literal["inquiry", "negotiation", "closing"]


class ConversationMessage(BaseModel):
    """Single message exchanged in a trading conversation."""

    message_id: str
    sender_id: str
    content: str = Field(max_length=10000, description="Message content (max 10KB)")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    type: Literal["text", "offer", "system"] = "text"

    @field_validator("content")
    @classmethod
    def sanitize_content(cls, v: str) -> str:
        """Remove null bytes and trim surrounding whitespace."""
        return v.replace("\x00", "").strip()


class ConversationContext(BaseModel):
    """Conversation state attached to a translation request."""

    session_id: str
    previous_messages: List[ConversationMessage] = Field(default_factory=list)
    product_category: Optional[str] = None
    negotiation_phase: Optional[NegotiationPhase] = None


class TranslationRequest(BaseModel):
    """A single text to translate between two language codes.

    The pair invariant (supported codes, source != target) is enforced by
    the translation service so that callers get a LanguagePairError rather
    than a model validation error.
    """

    text: str
    source_lang: str = ""
    target_lang: str
    context: Optional[ConversationContext] = None
    domain: Optional[TranslationDomain] = None


class ProviderMetadata(BaseModel):
    """Typed diagnostics a provider attaches to its response."""

    model: Optional[str] = None
    detected_language_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    terminology_applied: bool = False
    extra: Dict[str, str] = Field(default_factory=dict)


class TranslationResponse(BaseModel):
    """Result of a translation, serialized with camelCase field names."""

    model_config = ConfigDict(populate_by_name=True)

    translated_text: str = Field(serialization_alias="translatedText")
    confidence: float = Field(ge=0.0, le=1.0)
    detected_language: Optional[str] = Field(
        default=None, serialization_alias="detectedLanguage"
    )
    alternatives: Optional[List[str]] = None
    processing_time_ms: float = Field(
        default=0.0, ge=0.0, serialization_alias="processingTime"
    )
    provider: Optional[str] = None
    metadata: Optional[ProviderMetadata] = None

    def to_api(self) -> dict:
        """Serialize for the upstream caller contract."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
