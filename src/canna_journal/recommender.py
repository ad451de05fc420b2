from dataclasses import dataclass, field
import logging

import numpy as np

from .profile import PreferenceProfile, build_profile
from .stats import Statistics, compute_statistics
from .models import Entry, Product
from .config import (
    MIN_ENTRIES_FOR_RECOMMENDATIONS,
    NOT_ENOUGH_DATA_MESSAGE,
    DEFAULT_RECOMMENDATION_LIMIT,
    TRIED_BEFORE_MULTIPLIER,
    CANNABINOID_MATCH_WEIGHT,
    TERPENE_MATCH_WEIGHT,
    STRAIN_MATCH_BONUS,
    SCORE_DISPLAY_MAX,
)

logger = logging.getLogger(__name__)


@dataclass
class Recommendation:
    product: Product
    score: float

    @property
    def percent(self) -> int:
        return score_percent(self.score)


@dataclass
class RecommendationResult:
    """Outcome of a recommendation request. `ready` is False until enough entries exist."""
    ready: bool
    message: str = ""
    recommendations: list[Recommendation] = field(default_factory=list)
    preferences: PreferenceProfile | None = None
    stats: Statistics | None = None


def score_percent(score: float) -> int:
    """Render a raw score as a match percentage against the assumed display ceiling."""
    return round(score / SCORE_DISPLAY_MAX * 100)


def score_product(product: Product, profile: PreferenceProfile, entries: list[Entry]) -> float:
    """
    Score how well a product fits the learned preferences.

    Additive over independent signals:
    - tried before:     mean past rating x 10
    - cannabinoid hit:  favorite score x 0.3 per favorite the product contains
    - terpene hit:      favorite score x 0.5 per favorite the product contains
    - strain match:     +5 when the product's strain is the favorite strain

    Favorite scores are the raw rating x percentage sums from build_profile,
    so heavy users can exceed SCORE_DISPLAY_MAX.
    """
    score = 0.0

    if product.id is not None:
        ratings = [e.rating for e in entries if e.product_id == product.id]
        if ratings:
            score += (sum(ratings) / len(ratings)) * TRIED_BEFORE_MULTIPLIER

    for cannabinoid, pref_score in profile.favorite_cannabinoids.items():
        if product.amount('cannabinoid', cannabinoid) > 0:
            score += pref_score * CANNABINOID_MATCH_WEIGHT

    for terpene, pref_score in profile.favorite_terpenes.items():
        if product.amount('terpene', terpene) > 0:
            score += pref_score * TERPENE_MATCH_WEIGHT

    if profile.favorite_strain and product.strain == profile.favorite_strain:
        score += STRAIN_MATCH_BONUS

    return score


def rank_products(
    products: list[Product],
    profile: PreferenceProfile,
    entries: list[Entry],
    limit: int | None = None,
) -> list[Recommendation]:
    """Score every product and order by descending score, catalog order on ties."""
    if not products:
        return []

    scores = np.array([score_product(p, profile, entries) for p in products], dtype=np.float64)
    order = np.argsort(-scores, kind="stable")
    if limit is not None:
        order = order[:limit]

    return [Recommendation(product=products[i], score=float(scores[i])) for i in order]


def compute_recommendations(
    entries: list[Entry],
    products: list[Product],
    limit: int = DEFAULT_RECOMMENDATION_LIMIT,
) -> RecommendationResult:
    """
    Recommend products from one snapshot of the journal.

    With fewer than MIN_ENTRIES_FOR_RECOMMENDATIONS entries nothing is scored
    and the result carries a guidance message instead.

    Raises:
        ValueError: If limit is below 1
    """
    if limit < 1:
        raise ValueError(f"Recommendation limit must be at least 1, got {limit}")

    if len(entries) < MIN_ENTRIES_FOR_RECOMMENDATIONS:
        logger.debug(f"Only {len(entries)} entries; recommendations need {MIN_ENTRIES_FOR_RECOMMENDATIONS}")
        return RecommendationResult(ready=False, message=NOT_ENOUGH_DATA_MESSAGE)

    preferences = build_profile(entries, products)
    ranked = rank_products(products, preferences, entries, limit=limit)
    stats = compute_statistics(entries, products)

    logger.debug(f"Scored {len(products)} products, returning {len(ranked)}")
    return RecommendationResult(
        ready=True,
        recommendations=ranked,
        preferences=preferences,
        stats=stats,
    )


def get_recommendations(store, limit: int = DEFAULT_RECOMMENDATION_LIMIT) -> RecommendationResult:
    """
    Read a snapshot from `store` and recommend from it.

    `store` is a JournalStore or anything exposing list_entries() and
    list_products(); a snapshot() method is preferred when available so both
    lists come from the same read transaction.
    """
    snapshot = getattr(store, 'snapshot', None)
    if callable(snapshot):
        entries, products = snapshot()
    else:
        entries = store.list_entries()
        products = store.list_products()
    return compute_recommendations(entries, products, limit=limit)
