"""Per-session conversation context used to steer translations."""

import logging
import re
from typing import Dict, List, Optional

from cachetools import TTLCache

from app.models.translation import (
    ConversationContext,
    ConversationMessage,
    NegotiationPhase,
    TranslationDomain,
    TranslationRequest,
)

logger = logging.getLogger(__name__)

NEGOTIATION_KEYWORDS = [
    "price", "cost", "offer", "discount", "negotiate", "deal", "cheaper",
    "expensive", "counteroffer", "counter offer", "bid", "quote", "estimate",
    "budget",
]

CLOSING_KEYWORDS = [
    "agree", "agreed", "accept", "deal", "final", "confirm", "confirmed", "yes",
    "ok", "okay", "good", "perfect", "done", "sold", "buy", "purchase", "order",
]

INQUIRY_KEYWORDS = [
    "hello", "hi", "interested", "available", "tell me", "information",
    "details", "what", "how", "when", "where", "can you", "do you have",
    "looking for",
]

TRADE_TERMS = [
    "price", "cost", "sell", "buy", "product", "service", "quality", "quantity",
    "delivery", "shipping", "payment", "wholesale", "retail", "discount",
    "vendor", "supplier", "customer", "client", "market", "trade", "business",
    "order", "purchase", "sale", "inventory", "stock",
]

PRODUCT_KEYWORDS = re.compile(
    r"\b(?:fresh|organic|premium|quality|new|used|handmade|imported|local)\b"
)
PRICE_PATTERN = re.compile(r"\$?\d+(?:[.,]\d+)?")


def _keyword_pattern(keywords: List[str]) -> re.Pattern[str]:
    return re.compile(
        r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")\b", re.IGNORECASE
    )


class ContextManager:
    """Keeps the last few messages of each trading conversation.

    Sessions expire ``ttl_seconds`` after their last update. The stored
    context drives the translation domain (general / trade / negotiation)
    and gives providers conversational history.
    """

    PHASE_WINDOW = 3

    def __init__(
        self,
        max_messages: int = 10,
        ttl_seconds: int = 3600,
        max_sessions: int = 10000,
    ):
        self.max_messages = max_messages
        self._contexts: TTLCache = TTLCache(maxsize=max_sessions, ttl=ttl_seconds)
        self._negotiation = _keyword_pattern(NEGOTIATION_KEYWORDS)
        self._closing = _keyword_pattern(CLOSING_KEYWORDS)
        self._inquiry = _keyword_pattern(INQUIRY_KEYWORDS)

    def update_context(
        self,
        session_id: str,
        message: ConversationMessage,
        product_category: Optional[str] = None,
    ) -> ConversationContext:
        """Append a message to the session and refresh its phase and TTL."""
        context: Optional[ConversationContext] = self._contexts.get(session_id)
        if context is None:
            context = ConversationContext(session_id=session_id)

        # Keep only recent messages to avoid context bloat
        messages = (context.previous_messages + [message])[-self.max_messages:]
        context = context.model_copy(
            update={
                "previous_messages": messages,
                "negotiation_phase": self.detect_negotiation_phase(messages),
                "product_category": product_category or context.product_category,
            }
        )
        self._contexts[session_id] = context

        logger.debug(
            f"Updated context for session {session_id}, phase: {context.negotiation_phase}"
        )
        return context

    def get_context(self, session_id: str) -> Optional[ConversationContext]:
        return self._contexts.get(session_id)

    def enhance_translation_request(
        self,
        request: TranslationRequest,
        session_id: str,
        message: Optional[ConversationMessage] = None,
        product_category: Optional[str] = None,
    ) -> TranslationRequest:
        """Attach the session context and pick a translation domain."""
        context = self._contexts.get(session_id)
        if message is not None:
            context = self.update_context(session_id, message, product_category)

        domain: TranslationDomain = "general"
        if context is not None:
            if context.negotiation_phase and context.negotiation_phase != "inquiry":
                domain = "negotiation"
            elif context.product_category or self.contains_trade_terms(request.text):
                domain = "trade"

        update: Dict[str, object] = {"domain": domain}
        if context is not None:
            update["context"] = context
        return request.model_copy(update=update)

    def detect_negotiation_phase(
        self, messages: List[ConversationMessage]
    ) -> NegotiationPhase:
        """Classify the conversation from keyword counts in the last messages."""
        if not messages:
            return "inquiry"

        combined = " ".join(m.content.lower() for m in messages[-self.PHASE_WINDOW:])
        negotiation = len(self._negotiation.findall(combined))
        closing = len(self._closing.findall(combined))
        inquiry = len(self._inquiry.findall(combined))

        if closing > negotiation and closing > inquiry:
            return "closing"
        if negotiation > inquiry:
            return "negotiation"
        return "inquiry"

    @staticmethod
    def contains_trade_terms(text: str) -> bool:
        lowered = text.lower()
        return any(term in lowered for term in TRADE_TERMS)

    @staticmethod
    def extract_product_info(context: ConversationContext) -> dict:
        """Pull product keywords and the quoted price range from recent messages."""
        recent = " ".join(m.content for m in context.previous_messages[-5:]).lower()

        # dict.fromkeys keeps first-seen order while removing duplicates
        keywords = list(dict.fromkeys(PRODUCT_KEYWORDS.findall(recent)))
        info: dict = {"keywords": keywords}
        if context.product_category:
            info["category"] = context.product_category

        prices = []
        for match in PRICE_PATTERN.findall(recent):
            try:
                prices.append(float(match.replace("$", "").replace(",", "")))
            except ValueError:
                continue
        if prices:
            info["price_range"] = {"min": min(prices), "max": max(prices)}
        return info

    def clear_all_contexts(self) -> None:
        self._contexts.clear()
        logger.info("Cleared all conversation contexts")

    def get_context_stats(self) -> dict:
        contexts = list(self._contexts.values())
        total_messages = sum(len(c.previous_messages) for c in contexts)
        average = total_messages / len(contexts) if contexts else 0
        return {
            "total_sessions": len(contexts),
            "average_messages": round(average, 2),
        }
