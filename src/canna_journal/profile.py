import logging
from collections import defaultdict
from dataclasses import dataclass, field

from .catalog import (
    Cannabinoid,
    Effect,
    StrainType,
    Terpene,
    CANNABINOIDS_BY_ID,
    EFFECTS_BY_ID,
    STRAINS_BY_ID,
    TERPENES_BY_ID,
    is_positive_effect,
)
from .config import (
    HIGH_RATING_THRESHOLD,
    TOP_EFFECTS,
    TOP_CANNABINOIDS,
    TOP_TERPENES,
)
from .models import Entry, Product

logger = logging.getLogger(__name__)


@dataclass
class PreferenceProfile:
    """Preferences learned from highly rated entries. Favorites are ordered best first."""
    total_entries: int = 0
    avg_rating: float = 0.0
    favorite_effects: dict[str, int] = field(default_factory=dict)
    favorite_cannabinoids: dict[str, float] = field(default_factory=dict)
    favorite_terpenes: dict[str, float] = field(default_factory=dict)
    favorite_strain: str | None = None


def _top_n(scores: dict, n: int) -> dict:
    """
    Keep the n highest-scoring keys, best first.

    sorted() is stable and dicts keep insertion order, so exact ties stay in
    the order the keys were first accumulated.
    """
    return dict(sorted(scores.items(), key=lambda x: -x[1])[:n])


def _accumulate_amounts(amounts: dict[str, float], rating: int, scores: dict) -> None:
    """Add rating x percentage for every compound present at a positive level."""
    for key, value in amounts.items():
        if value > 0:
            scores[key] += rating * value


def build_profile(entries: list[Entry], products: list[Product]) -> PreferenceProfile:
    """
    Build a preference profile from the journal.

    Every entry feeds the average rating. Only entries rated at or above
    HIGH_RATING_THRESHOLD feed the favorites:
    - positive effects:  +1 per occurrence
    - cannabinoids:      +rating x percentage (positive percentages only)
    - terpenes:          +rating x percentage (positive percentages only)
    - strain:            +rating

    Entries whose product no longer exists still contribute their effects.
    """
    products_by_id = {p.id: p for p in products}

    total_rating = 0
    effect_counts = defaultdict(int)
    cannabinoid_scores = defaultdict(float)
    terpene_scores = defaultdict(float)
    strain_scores = defaultdict(float)

    for entry in entries:
        total_rating += entry.rating

        if entry.rating < HIGH_RATING_THRESHOLD:
            continue

        for effect in entry.effects:
            if is_positive_effect(effect):
                effect_counts[effect] += 1

        product = products_by_id.get(entry.product_id)
        if product is None:
            continue

        _accumulate_amounts(product.cannabinoids, entry.rating, cannabinoid_scores)
        _accumulate_amounts(product.terpenes, entry.rating, terpene_scores)
        if product.strain:
            strain_scores[product.strain] += entry.rating

    top_strain = _top_n(strain_scores, 1)

    profile = PreferenceProfile(
        total_entries=len(entries),
        avg_rating=total_rating / len(entries) if entries else 0.0,
        favorite_effects=_top_n(effect_counts, TOP_EFFECTS),
        favorite_cannabinoids=_top_n(cannabinoid_scores, TOP_CANNABINOIDS),
        favorite_terpenes=_top_n(terpene_scores, TOP_TERPENES),
        favorite_strain=next(iter(top_strain), None),
    )
    logger.debug(
        f"Built profile from {len(entries)} entries: "
        f"{len(profile.favorite_cannabinoids)} cannabinoids, "
        f"{len(profile.favorite_terpenes)} terpenes, strain={profile.favorite_strain}"
    )
    return profile


@dataclass
class IdealProfile:
    """Display-ready view of a preference profile."""
    cannabinoids: list[Cannabinoid] = field(default_factory=list)
    terpenes: list[Terpene] = field(default_factory=list)
    effects: list[Effect] = field(default_factory=list)
    strain: StrainType | None = None

    def describe(self) -> str:
        """Shopping hint summarizing what to look for."""
        parts = []
        if self.cannabinoids:
            parts.append(', '.join(c.name for c in self.cannabinoids))
        if self.terpenes:
            parts.append(', '.join(t.name for t in self.terpenes))
        if not parts:
            return f"Consider {self.strain.name} strains." if self.strain else ""

        sentence = "When shopping for new products, look for items that contain " + " and ".join(parts) + "."
        if self.strain is not None:
            sentence += f" Consider {self.strain.name} strains."
        return sentence


def _resolve(ids, table: dict, kind: str) -> list:
    resolved = []
    for key in ids:
        item = table.get(key)
        if item is None:
            logger.debug(f"Unknown {kind} '{key}' dropped from ideal profile")
            continue
        resolved.append(item)
    return resolved


def build_ideal_profile(profile: PreferenceProfile) -> IdealProfile:
    """Resolve profile identifiers against the catalog, keeping rank order."""
    return IdealProfile(
        cannabinoids=_resolve(profile.favorite_cannabinoids, CANNABINOIDS_BY_ID, 'cannabinoid'),
        terpenes=_resolve(profile.favorite_terpenes, TERPENES_BY_ID, 'terpene'),
        effects=_resolve(profile.favorite_effects, EFFECTS_BY_ID, 'effect'),
        strain=STRAINS_BY_ID.get(profile.favorite_strain) if profile.favorite_strain else None,
    )
