"""
Turn text recognised from a product label into a draft product.

Image recognition happens elsewhere; this module only sees the resulting
text and makes a best-effort guess at name, cannabinoid and terpene
amounts, and strain.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .catalog import CANNABINOIDS, TERPENES
from .config import UNKNOWN_PRODUCT_NAME, LABEL_NAME_SCAN_LINES, MENTIONED_TERPENE_DEFAULT
from .models import Product

logger = logging.getLogger(__name__)

_NUMBER = r"(\d+(?:\.\d+)?)"
_NAME_SKIP = re.compile(r"^(\d|THC|CBD|CBN|CBG)", re.IGNORECASE)
# Explicit THC/CBD lines win over the generic per-compound match
_HEADLINE_PATTERNS = {
    'thc': re.compile(rf"THC[:\s]*{_NUMBER}\s*%", re.IGNORECASE),
    'cbd': re.compile(rf"CBD[:\s]*{_NUMBER}\s*%", re.IGNORECASE),
}


def _amount_patterns(name: str) -> list[re.Pattern]:
    escaped = re.escape(name)
    return [
        re.compile(rf"{escaped}[:\s-]*{_NUMBER}\s*%", re.IGNORECASE),
        re.compile(rf"{escaped}[:\s-]*{_NUMBER}\s*mg", re.IGNORECASE),
    ]


_CANNABINOID_PATTERNS = {c.id: _amount_patterns(c.name) for c in CANNABINOIDS}
_TERPENE_PATTERNS = {t.id: _amount_patterns(t.name) for t in TERPENES}


@dataclass
class LabelDraft:
    name: str = UNKNOWN_PRODUCT_NAME
    cannabinoids: dict[str, float] = field(default_factory=dict)
    terpenes: dict[str, float] = field(default_factory=dict)
    strain: str | None = None

    def to_product(self, product_type: str = 'flower', brand: str | None = None) -> Product:
        """Convert to a Product. Amounts over 100 (milligram readings) are dropped."""
        def _percentages(amounts: dict[str, float]) -> dict[str, float]:
            kept = {}
            for key, value in amounts.items():
                if value > 100:
                    logger.warning(f"Dropping {key}={value}: not a percentage")
                    continue
                kept[key] = value
            return kept

        return Product(
            name=self.name,
            type=product_type,
            strain=self.strain,
            brand=brand,
            cannabinoids=_percentages(self.cannabinoids),
            terpenes=_percentages(self.terpenes),
        )


def _first_match(text: str, patterns: list[re.Pattern]) -> float | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None


def extract_product_name(text: str) -> str:
    """Pick the first plausible name among the label's opening lines."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    for line in lines[:LABEL_NAME_SCAN_LINES]:
        if len(line) > 3 and not _NAME_SKIP.match(line):
            return line
    return UNKNOWN_PRODUCT_NAME


def extract_cannabinoids(text: str) -> dict[str, float]:
    found = {}
    for cannabinoid_id, patterns in _CANNABINOID_PATTERNS.items():
        value = _first_match(text, patterns)
        if value is not None:
            found[cannabinoid_id] = value

    for cannabinoid_id, pattern in _HEADLINE_PATTERNS.items():
        match = pattern.search(text)
        if match:
            found[cannabinoid_id] = float(match.group(1))
    return found


def extract_terpenes(text: str) -> dict[str, float]:
    found = {}
    lower_text = text.lower()
    for terpene in TERPENES:
        value = _first_match(text, _TERPENE_PATTERNS[terpene.id])
        if value:
            found[terpene.id] = value
        elif terpene.name.lower() in lower_text:
            found[terpene.id] = MENTIONED_TERPENE_DEFAULT
    return found


def extract_strain(text: str) -> str | None:
    lower_text = text.lower()
    has_sativa = 'sativa' in lower_text
    has_indica = 'indica' in lower_text
    if has_sativa and has_indica:
        return 'hybrid'
    if has_sativa:
        return 'sativa'
    if has_indica:
        return 'indica'
    return None


def parse_label_text(text: str) -> LabelDraft:
    """Build a draft product from label text. Never raises on odd input."""
    draft = LabelDraft(
        name=extract_product_name(text or ""),
        cannabinoids=extract_cannabinoids(text or ""),
        terpenes=extract_terpenes(text or ""),
        strain=extract_strain(text or ""),
    )
    logger.debug(
        f"Parsed label '{draft.name}': {len(draft.cannabinoids)} cannabinoids, "
        f"{len(draft.terpenes)} terpenes, strain={draft.strain}"
    )
    return draft
