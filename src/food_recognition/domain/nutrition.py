"""Nutrition domain models."""

import math
from dataclasses import dataclass
from enum import StrEnum


class PortionUnit(StrEnum):
    """Unit a portion size is expressed in."""

    MASS = "г"
    VOLUME = "мл"
    COUNT = "шт"


class ParseMethod(StrEnum):
    """Strategy that produced an interpreted estimate."""

    STRUCTURED = "structured"
    HEURISTIC = "heuristic"


class ReconciliationSource(StrEnum):
    """Origin of the numeric fields of a reconciled estimate."""

    MODEL = "model"
    REFERENCE = "reference"


@dataclass(frozen=True)
class NutritionEstimate:
    """Structured nutrition record for one food item."""

    food_name: str
    portion_size: float
    unit: PortionUnit
    calories: float | None
    protein: float | None
    fat: float | None
    carbs: float | None

    def to_payload(self) -> dict[str, object]:
        """Return the camelCase payload shape used by API clients."""
        return {
            "foodName": self.food_name,
            "portionSize": self.portion_size,
            "unit": self.unit.value,
            "calories": self.calories,
            "protein": self.protein,
            "fat": self.fat,
            "carbs": self.carbs,
        }


@dataclass(frozen=True)
class ReferenceCandidate:
    """Nutrition record sourced from the reference database."""

    food_name: str
    portion_size: float
    unit: PortionUnit
    calories: float | None
    protein: float | None
    fat: float | None
    carbs: float | None
    ingredients: tuple[str, ...] | None = None

    @property
    def populated_fields(self) -> int:
        """Count of calorie and macro fields that carry a value."""
        return sum(
            value is not None
            for value in (self.calories, self.protein, self.fat, self.carbs)
        )


@dataclass(frozen=True)
class InterpretedReply:
    """Estimate parsed from a model reply with the strategy that produced it."""

    estimate: NutritionEstimate
    method: ParseMethod


@dataclass(frozen=True)
class Reconciled:
    """Final estimate and the source its numbers came from."""

    estimate: NutritionEstimate
    source: ReconciliationSource


def round1(value: float | None) -> float | None:
    """Round half-up to one decimal place, keeping ``None``."""
    if value is None:
        return None
    return math.floor(value * 10 + 0.5) / 10


def parse_unit(token: str | None) -> PortionUnit:
    """Map a free-text unit token onto a portion unit, defaulting to mass."""
    if not token:
        return PortionUnit.MASS
    lowered = token.strip().lower()
    if "ml" in lowered or "мл" in lowered:
        return PortionUnit.VOLUME
    if "pcs" in lowered or "шт" in lowered or "piece" in lowered:
        return PortionUnit.COUNT
    return PortionUnit.MASS
