"""Models for structured model replies."""

import math

from pydantic import BaseModel, ConfigDict, Field, field_validator

from food_recognition.domain.nutrition import NutritionEstimate, parse_unit

_DEFAULT_PORTION = 100


def coerce_number(value: object) -> float | None:
    """Coerce a decoded JSON value to a finite float, or None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", "."))
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


class StructuredReply(BaseModel):
    """Strict JSON object a model is asked to return for a food photo."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    food_name: str = Field(alias="foodName")
    portion_size: float = Field(alias="portionSize")
    unit: str | None = None
    calories: float | None = None
    protein: float | None = None
    fat: float | None = None
    carbs: float | None = None

    @field_validator("food_name", mode="before")
    @classmethod
    def _require_name(cls, value: object) -> str:
        name = str(value if value is not None else "").strip()
        if not name:
            raise ValueError("foodName must not be empty")
        return name

    @field_validator("portion_size", mode="before")
    @classmethod
    def _require_finite_portion(cls, value: object) -> float:
        number = coerce_number(value)
        if number is None:
            raise ValueError("portionSize must be a finite number")
        return number

    @field_validator("unit", mode="before")
    @classmethod
    def _stringify_unit(cls, value: object) -> str | None:
        return None if value is None else str(value)

    @field_validator("calories", "protein", "fat", "carbs", mode="before")
    @classmethod
    def _optional_number(cls, value: object) -> float | None:
        return coerce_number(value)

    def to_estimate(self) -> NutritionEstimate:
        """Convert the validated reply into a nutrition estimate."""
        portion = self.portion_size
        if portion > 0:
            portion_size = max(1, math.floor(portion + 0.5))
        else:
            portion_size = _DEFAULT_PORTION
        return NutritionEstimate(
            food_name=self.food_name,
            portion_size=portion_size,
            unit=parse_unit(self.unit),
            calories=self.calories,
            protein=self.protein,
            fat=self.fat,
            carbs=self.carbs,
        )
