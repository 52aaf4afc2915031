"""Tests for conversation context tracking and domain inference."""

import time

import pytest
from app.models.translation import (
    ConversationContext,
    ConversationMessage,
    TranslationRequest,
)
from app.services.translation.context_manager import ContextManager


def _message(content: str, index: int = 0) -> ConversationMessage:
    return ConversationMessage(message_id=f"msg_{index}", sender_id="seller", content=content)


@pytest.fixture
def context_manager():
    return ContextManager(max_messages=3)


class TestNegotiationPhase:
    @pytest.mark.parametrize(
        "contents,expected",
        [
            ([], "inquiry"),
            (["Hello, do you have fresh mangoes?"], "inquiry"),
            (["The price is too expensive, can you give a discount?"], "negotiation"),
            (["Agreed, I accept. Please confirm the order."], "closing"),
        ],
    )
    def test_detects_phase(self, context_manager, contents, expected):
        messages = [_message(c, i) for i, c in enumerate(contents)]

        assert context_manager.detect_negotiation_phase(messages) == expected

    def test_only_recent_messages_count(self, context_manager):
        messages = [
            _message("price discount offer deal", 0),
            _message("hello", 1),
            _message("what is available", 2),
            _message("tell me the details", 3),
        ]

        assert context_manager.detect_negotiation_phase(messages) == "inquiry"

    def test_ties_between_closing_and_negotiation_go_to_negotiation(
        self, context_manager
    ):
        # "deal" counts for both negotiation and closing
        assert context_manager.detect_negotiation_phase([_message("deal")]) == "negotiation"


class TestUpdateContext:
    def test_keeps_last_messages(self, context_manager):
        for i in range(5):
            context_manager.update_context("s1", _message(f"message {i}", i))

        context = context_manager.get_context("s1")
        assert [m.content for m in context.previous_messages] == [
            "message 2",
            "message 3",
            "message 4",
        ]

    def test_category_is_sticky(self, context_manager):
        context_manager.update_context("s1", _message("hi", 0), product_category="spices")
        context = context_manager.update_context("s1", _message("hello again", 1))

        assert context.product_category == "spices"

    def test_sessions_expire(self):
        manager = ContextManager(ttl_seconds=0.05)
        manager.update_context("s1", _message("hello"))

        time.sleep(0.1)

        assert manager.get_context("s1") is None

    def test_stats_and_clear(self, context_manager):
        context_manager.update_context("s1", _message("a", 0))
        context_manager.update_context("s1", _message("b", 1))
        context_manager.update_context("s2", _message("c", 2))

        assert context_manager.get_context_stats() == {
            "total_sessions": 2,
            "average_messages": 1.5,
        }

        context_manager.clear_all_contexts()

        assert context_manager.get_context_stats()["total_sessions"] == 0


class TestEnhanceTranslationRequest:
    def _request(self, text: str = "Hello") -> TranslationRequest:
        return TranslationRequest(text=text, source_lang="en", target_lang="es")

    def test_unknown_session_is_general(self, context_manager):
        enhanced = context_manager.enhance_translation_request(self._request(), "new")

        assert enhanced.domain == "general"
        assert enhanced.context is None

    def test_negotiation_phase_sets_negotiation_domain(self, context_manager):
        enhanced = context_manager.enhance_translation_request(
            self._request(),
            "s1",
            message=_message("Can I get a discount on the price?"),
        )

        assert enhanced.domain == "negotiation"
        assert enhanced.context.negotiation_phase == "negotiation"

    def test_category_sets_trade_domain(self, context_manager):
        enhanced = context_manager.enhance_translation_request(
            self._request(),
            "s1",
            message=_message("Hello, what is available?"),
            product_category="textiles",
        )

        assert enhanced.domain == "trade"
        assert enhanced.context.product_category == "textiles"

    def test_trade_terms_set_trade_domain(self, context_manager):
        context_manager.update_context("s1", _message("Hello there"))

        enhanced = context_manager.enhance_translation_request(
            self._request("Is delivery included?"), "s1"
        )

        assert enhanced.domain == "trade"

    def test_original_request_is_not_mutated(self, context_manager):
        request = self._request()

        context_manager.enhance_translation_request(
            request, "s1", message=_message("hello")
        )

        assert request.context is None
        assert request.domain is None


class TestProductInfo:
    def test_extracts_keywords_and_price_range(self):
        context = ConversationContext(
            session_id="s1",
            product_category="produce",
            previous_messages=[
                _message("Fresh organic tomatoes for $12.50", 0),
                _message("I can do 10 if you buy fresh stock", 1),
            ],
        )

        info = ContextManager.extract_product_info(context)

        assert info["keywords"] == ["fresh", "organic"]
        assert info["category"] == "produce"
        assert info["price_range"] == {"min": 10.0, "max": 12.5}

    def test_no_prices(self):
        context = ConversationContext(
            session_id="s1", previous_messages=[_message("handmade baskets")]
        )

        info = ContextManager.extract_product_info(context)

        assert info == {"keywords": ["handmade"]}

    def test_contains_trade_terms(self):
        assert ContextManager.contains_trade_terms("What about SHIPPING?") is True
        assert ContextManager.contains_trade_terms("Nice weather today") is False
