"""Journal records: products and the entries logged against them."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any

from .config import MIN_RATING, MAX_RATING

logger = logging.getLogger(__name__)


def normalize_rating(value: Any) -> int:
    """
    Coerce a stored rating to the engine's integer scale.

    Missing or unparseable ratings become 0 ("unrated"); anything else is
    rounded and clamped to MIN_RATING..MAX_RATING.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        rating = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    if rating <= 0:
        return 0
    return max(MIN_RATING, min(MAX_RATING, rating))


def _load_amounts(raw: Any) -> dict[str, float]:
    """Parse a compound map (JSON text or dict) into identifier -> percentage."""
    if not raw:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse compound map '{raw[:50]}': {e}")
            return {}
    if not isinstance(raw, dict):
        return {}

    amounts = {}
    for key, value in raw.items():
        try:
            amounts[str(key)] = float(value)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non-numeric amount {key}={value!r}")
    return amounts


def _load_effects(raw: Any) -> tuple[str, ...]:
    if not raw:
        return ()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse effects '{raw[:50]}': {e}")
            return ()
    return tuple(str(e) for e in raw)


@dataclass(frozen=True)
class Product:
    """A catalogued product with its chemical profile."""
    name: str
    type: str = 'flower'
    strain: str | None = None
    brand: str | None = None
    cannabinoids: dict[str, float] = field(default_factory=dict)
    terpenes: dict[str, float] = field(default_factory=dict)
    notes: str = ''
    created_at: str | None = None
    id: int | None = None

    def amount(self, kind: str, compound: str) -> float:
        """Percentage of a cannabinoid or terpene, 0 when absent."""
        table = self.cannabinoids if kind == 'cannabinoid' else self.terpenes
        return table.get(compound, 0) or 0

    @classmethod
    def from_dict(cls, data: dict) -> Product:
        return cls(
            id=data.get('id'),
            name=data.get('name') or '',
            type=data.get('type') or 'flower',
            strain=data.get('strain') or None,
            brand=data.get('brand') or None,
            cannabinoids=_load_amounts(data.get('cannabinoids')),
            terpenes=_load_amounts(data.get('terpenes')),
            notes=data.get('notes') or '',
            created_at=data.get('created_at'),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Entry:
    """One logged experience with a product."""
    product_id: int | None
    rating: int = 0
    effects: tuple[str, ...] = ()
    method: str | None = None
    dosage: str = ''
    notes: str = ''
    date: str | None = None
    id: int | None = None

    @property
    def timestamp(self) -> datetime | None:
        if not self.date:
            return None
        try:
            return datetime.fromisoformat(self.date)
        except ValueError:
            return None

    @classmethod
    def from_dict(cls, data: dict) -> Entry:
        return cls(
            id=data.get('id'),
            product_id=data.get('product_id'),
            rating=normalize_rating(data.get('rating')),
            effects=_load_effects(data.get('effects')),
            method=data.get('method') or None,
            dosage=data.get('dosage') or '',
            notes=data.get('notes') or '',
            date=data.get('date'),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data['effects'] = list(self.effects)
        return data


@dataclass(frozen=True)
class Photo:
    """Image attached to a product or an entry."""
    data: bytes
    product_id: int | None = None
    entry_id: int | None = None
    created_at: str | None = None
    id: int | None = None
