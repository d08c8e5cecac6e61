"""Text rendering of nutrition estimates for chat clients."""

import math

from food_recognition.domain.nutrition import NutritionEstimate


def format_nutrition_response(estimate: NutritionEstimate) -> str:
    """Render an estimate in the emphasised layout the chat UI displays."""
    portion = math.floor(estimate.portion_size + 0.5)
    lines = [
        f"**{estimate.food_name}**",
        "",
        f"Размер порции: {portion} {estimate.unit}",
        "",
    ]
    if estimate.calories is not None:
        lines.append(f"**Калории:** {_number(estimate.calories)} ккал")
    if estimate.protein is not None:
        lines.append(f"**Белки:** {_number(estimate.protein)} г")
    if estimate.fat is not None:
        lines.append(f"**Жиры:** {_number(estimate.fat)} г")
    if estimate.carbs is not None:
        lines.append(f"**Углеводы:** {_number(estimate.carbs)} г")
    return "\n".join(lines).rstrip("\n")


def _number(value: float) -> str:
    """Print whole numbers without a trailing ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)
