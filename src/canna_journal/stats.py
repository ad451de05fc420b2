import logging
from collections import defaultdict
from dataclasses import dataclass, field

from . import config
from .models import Entry, Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingAggregate:
    """Sum and count of entry ratings attributed to one identifier."""
    total: int
    count: int

    @property
    def avg_rating(self) -> float:
        return self.total / self.count


@dataclass
class Statistics:
    """Frequency and average-rating summary of the whole journal."""
    total_entries: int = 0
    total_products: int = 0
    effects: dict[str, int] = field(default_factory=dict)
    cannabinoids: dict[str, RatingAggregate] = field(default_factory=dict)
    terpenes: dict[str, RatingAggregate] = field(default_factory=dict)
    strains: dict[str, RatingAggregate] = field(default_factory=dict)

    def top_effects(self, n: int = 5) -> list[tuple[str, int]]:
        return sorted(self.effects.items(), key=lambda x: -x[1])[:n]


def compute_statistics(
    entries: list[Entry],
    products: list[Product],
    count_unrated: bool | None = None,
) -> Statistics:
    """
    Fold the journal into effect frequencies and per-compound average ratings.

    Effects are counted for every entry. Cannabinoid, terpene and strain
    aggregates only see entries whose product still exists, and a compound
    only counts when the product carries it at a positive percentage.

    Args:
        entries: Snapshot of all journal entries
        products: Snapshot of all products
        count_unrated: Whether an unrated entry (rating 0) still adds to counts.
            When False it is left out of the rating aggregates entirely.
            Defaults to config.COUNT_UNRATED_ENTRIES.
    """
    if count_unrated is None:
        count_unrated = config.COUNT_UNRATED_ENTRIES

    products_by_id = {p.id: p for p in products}

    effect_counts: dict[str, int] = defaultdict(int)
    totals = {'cannabinoid': defaultdict(int), 'terpene': defaultdict(int), 'strain': defaultdict(int)}
    counts = {k: defaultdict(int) for k in totals}
    dangling = 0

    for entry in entries:
        for effect in entry.effects:
            effect_counts[effect] += 1

        if entry.product_id is None:
            continue
        product = products_by_id.get(entry.product_id)
        if product is None:
            dangling += 1
            continue
        if not entry.rating and not count_unrated:
            continue

        for key, value in product.cannabinoids.items():
            if value > 0:
                totals['cannabinoid'][key] += entry.rating
                counts['cannabinoid'][key] += 1
        for key, value in product.terpenes.items():
            if value > 0:
                totals['terpene'][key] += entry.rating
                counts['terpene'][key] += 1
        if product.strain:
            totals['strain'][product.strain] += entry.rating
            counts['strain'][product.strain] += 1

    if dangling:
        logger.debug(f"{dangling} entries reference missing products; counted for effects only")

    def _aggregates(kind: str) -> dict[str, RatingAggregate]:
        return {
            key: RatingAggregate(total=totals[kind][key], count=count)
            for key, count in counts[kind].items()
            if count > 0
        }

    return Statistics(
        total_entries=len(entries),
        total_products=len(products),
        effects=dict(effect_counts),
        cannabinoids=_aggregates('cannabinoid'),
        terpenes=_aggregates('terpene'),
        strains=_aggregates('strain'),
    )
