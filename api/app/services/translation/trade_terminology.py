"""Trade terminology handling around provider translation calls.

Generic machine translation tends to render market vocabulary ("wholesale",
"counteroffer") inconsistently. For trade and negotiation conversations the
known terms are swapped for placeholders before the provider call and
replaced with the curated target-language term afterwards.
"""

import re
from typing import ClassVar, Dict, Optional, Tuple

from app.models.translation import ConversationContext


class TradeTerminology:
    """Curated trade vocabulary per language pair."""

    PLACEHOLDER_PREFIX: ClassVar[str] = "__TRADE_TERM_"

    # English source terms, keyed by target language
    TERMS_FROM_ENGLISH: ClassVar[Dict[str, Dict[str, str]]] = {
        "es": {
            "price": "precio",
            "quality": "calidad",
            "quantity": "cantidad",
            "delivery": "entrega",
            "payment": "pago",
            "discount": "descuento",
            "wholesale": "mayoreo",
            "retail": "menudeo",
            "negotiation": "negociación",
            "offer": "oferta",
            "counteroffer": "contraoferta",
            "agreement": "acuerdo",
            "contract": "contrato",
            "vendor": "vendedor",
            "customer": "cliente",
            "product": "producto",
            "service": "servicio",
            "market": "mercado",
            "trade": "comercio",
            "business": "negocio",
        },
        "fr": {
            "price": "prix",
            "quality": "qualité",
            "quantity": "quantité",
            "delivery": "livraison",
            "payment": "paiement",
            "discount": "remise",
            "wholesale": "gros",
            "retail": "détail",
            "negotiation": "négociation",
            "offer": "offre",
            "counteroffer": "contre-offre",
            "agreement": "accord",
            "contract": "contrat",
            "vendor": "vendeur",
            "customer": "client",
            "product": "produit",
            "service": "service",
            "market": "marché",
            "trade": "commerce",
            "business": "affaires",
        },
        "hi": {
            "price": "कीमत",
            "quality": "गुणवत्ता",
            "quantity": "मात्रा",
            "delivery": "डिलीवरी",
            "payment": "भुगतान",
            "discount": "छूट",
            "wholesale": "थोक",
            "retail": "खुदरा",
            "negotiation": "बातचीत",
            "offer": "प्रस्ताव",
            "counteroffer": "जवाबी प्रस्ताव",
            "agreement": "समझौता",
            "contract": "अनुबंध",
            "vendor": "विक्रेता",
            "customer": "ग्राहक",
            "product": "उत्पाद",
            "service": "सेवा",
            "market": "बाजार",
            "trade": "व्यापार",
            "business": "व्यवसाय",
        },
    }

    def __init__(self, additional_terms: Optional[Dict[str, Dict[str, str]]] = None):
        """Initialize the terminology tables.

        Args:
            additional_terms: Extra ``{"en-xx": {source: target}}`` mappings.
        """
        self.terms: Dict[str, Dict[str, str]] = {}
        for target, mapping in self.TERMS_FROM_ENGLISH.items():
            self.terms[f"en-{target}"] = dict(mapping)
            # Reverse direction so replies can be normalized back to English
            self.terms[f"{target}-en"] = {v: k for k, v in mapping.items()}
        if additional_terms:
            for pair, mapping in additional_terms.items():
                self.terms.setdefault(pair, {}).update(mapping)

        self._patterns: Dict[str, re.Pattern[str]] = {
            pair: self._build_pattern(mapping) for pair, mapping in self.terms.items()
        }

    @staticmethod
    def _build_pattern(mapping: Dict[str, str]) -> re.Pattern[str]:
        # Longest first so "counteroffer" wins over "offer"
        escaped = [re.escape(t) for t in sorted(mapping, key=len, reverse=True)]
        return re.compile(r"\b(" + "|".join(escaped) + r")\b", re.IGNORECASE)

    @staticmethod
    def applies_to(context: Optional[ConversationContext]) -> bool:
        """Only trade-flavoured conversations get terminology treatment."""
        if context is None:
            return False
        return context.product_category is not None or context.negotiation_phase is not None

    def supports_pair(self, source_lang: str, target_lang: str) -> bool:
        return f"{source_lang}-{target_lang}" in self.terms

    def protect_terms(
        self, text: str, source_lang: str, target_lang: str
    ) -> Tuple[str, Dict[str, str]]:
        """Replace known trade terms with placeholders.

        This should be called BEFORE sending text to a translation API.

        Returns:
            Tuple of (modified_text, placeholder_map) where placeholder_map maps
            each placeholder to the curated target-language term.
        """
        pair = f"{source_lang}-{target_lang}"
        pattern = self._patterns.get(pair)
        if pattern is None:
            return text, {}

        mapping = {k.lower(): v for k, v in self.terms[pair].items()}
        placeholder_map: Dict[str, str] = {}
        counter = [0]  # Use list for closure modification

        def replace_with_placeholder(match: re.Match) -> str:
            placeholder = f"{self.PLACEHOLDER_PREFIX}{counter[0]}__"
            placeholder_map[placeholder] = mapping.get(
                match.group(0).lower(), match.group(0)
            )
            counter[0] += 1
            return placeholder

        protected_text = pattern.sub(replace_with_placeholder, text)
        return protected_text, placeholder_map

    def restore_terms(self, text: str, placeholder_map: Dict[str, str]) -> str:
        """Swap placeholders for their curated translations.

        This should be called AFTER receiving translated text.
        """
        result = text
        for placeholder, translated in placeholder_map.items():
            result = result.replace(placeholder, translated)
        return result
