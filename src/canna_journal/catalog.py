"""Static reference tables: effects, cannabinoids, terpenes, strains, product types, methods."""
from dataclasses import dataclass


@dataclass(frozen=True)
class Effect:
    id: str
    name: str
    category: str  # positive / neutral / negative
    icon: str


@dataclass(frozen=True)
class Cannabinoid:
    id: str
    name: str
    full_name: str
    description: str


@dataclass(frozen=True)
class Terpene:
    id: str
    name: str
    aroma: str
    effects: tuple[str, ...]


@dataclass(frozen=True)
class StrainType:
    id: str
    name: str
    description: str
    color: str


@dataclass(frozen=True)
class ProductType:
    id: str
    name: str
    icon: str


@dataclass(frozen=True)
class ConsumptionMethod:
    id: str
    name: str
    icon: str


CANNABINOIDS = (
    Cannabinoid('thc', 'THC', 'Delta-9-tetrahydrocannabinol', 'Primary psychoactive compound'),
    Cannabinoid('cbd', 'CBD', 'Cannabidiol', 'Non-psychoactive, therapeutic'),
    Cannabinoid('cbn', 'CBN', 'Cannabinol', 'Mildly psychoactive, sedating'),
    Cannabinoid('cbg', 'CBG', 'Cannabigerol', 'Non-psychoactive, antibacterial'),
    Cannabinoid('thcv', 'THCV', 'Tetrahydrocannabivarin', 'Appetite suppressant'),
    Cannabinoid('cbc', 'CBC', 'Cannabichromene', 'Anti-inflammatory'),
)

TERPENES = (
    Terpene('myrcene', 'Myrcene', 'Earthy, musky, herbal', ('Relaxing', 'Sedating')),
    Terpene('limonene', 'Limonene', 'Citrus, lemon', ('Uplifting', 'Stress relief')),
    Terpene('caryophyllene', 'Caryophyllene', 'Spicy, peppery', ('Anti-inflammatory', 'Pain relief')),
    Terpene('pinene', 'Pinene', 'Pine, fresh', ('Alertness', 'Memory retention')),
    Terpene('linalool', 'Linalool', 'Floral, lavender', ('Calming', 'Anti-anxiety')),
    Terpene('humulene', 'Humulene', 'Earthy, woody', ('Appetite suppressant', 'Anti-inflammatory')),
    Terpene('terpinolene', 'Terpinolene', 'Floral, herbal', ('Uplifting', 'Sedating')),
    Terpene('ocimene', 'Ocimene', 'Sweet, herbal', ('Energizing', 'Anti-inflammatory')),
)

EFFECTS = (
    Effect('relaxed', 'Relaxed', 'positive', '😌'),
    Effect('euphoric', 'Euphoric', 'positive', '😊'),
    Effect('happy', 'Happy', 'positive', '😄'),
    Effect('uplifted', 'Uplifted', 'positive', '🚀'),
    Effect('energetic', 'Energetic', 'positive', '⚡'),
    Effect('focused', 'Focused', 'positive', '🎯'),
    Effect('creative', 'Creative', 'positive', '🎨'),
    Effect('sleepy', 'Sleepy', 'neutral', '😴'),
    Effect('hungry', 'Hungry', 'neutral', '🍕'),
    Effect('talkative', 'Talkative', 'positive', '💬'),
    Effect('giggly', 'Giggly', 'positive', '😂'),
    Effect('anxious', 'Anxious', 'negative', '😰'),
    Effect('paranoid', 'Paranoid', 'negative', '😨'),
    Effect('dry_mouth', 'Dry Mouth', 'negative', '👄'),
    Effect('dry_eyes', 'Dry Eyes', 'negative', '👁️'),
    Effect('dizzy', 'Dizzy', 'negative', '😵'),
)

PRODUCT_TYPES = (
    ProductType('flower', 'Flower', '🌿'),
    ProductType('concentrate', 'Concentrate', '💎'),
    ProductType('vape', 'Vape', '💨'),
    ProductType('edible', 'Edible', '🍫'),
    ProductType('tincture', 'Tincture', '💧'),
    ProductType('topical', 'Topical', '🧴'),
    ProductType('preroll', 'Pre-roll', '🚬'),
)

CONSUMPTION_METHODS = (
    ConsumptionMethod('smoking', 'Smoking', '🔥'),
    ConsumptionMethod('vaping', 'Vaping', '💨'),
    ConsumptionMethod('edible', 'Edible', '🍴'),
    ConsumptionMethod('sublingual', 'Sublingual', '💧'),
    ConsumptionMethod('topical', 'Topical', '🧴'),
    ConsumptionMethod('dabbing', 'Dabbing', '💎'),
)

STRAIN_TYPES = (
    StrainType('sativa', 'Sativa', 'Energizing, uplifting', '#f59e0b'),
    StrainType('indica', 'Indica', 'Relaxing, sedating', '#8b5cf6'),
    StrainType('hybrid', 'Hybrid', 'Balanced effects', '#10b981'),
)

EFFECTS_BY_ID = {e.id: e for e in EFFECTS}
CANNABINOIDS_BY_ID = {c.id: c for c in CANNABINOIDS}
TERPENES_BY_ID = {t.id: t for t in TERPENES}
STRAINS_BY_ID = {s.id: s for s in STRAIN_TYPES}
PRODUCT_TYPES_BY_ID = {p.id: p for p in PRODUCT_TYPES}
METHODS_BY_ID = {m.id: m for m in CONSUMPTION_METHODS}


def is_positive_effect(effect_id: str) -> bool:
    effect = EFFECTS_BY_ID.get(effect_id)
    return effect is not None and effect.category == 'positive'
