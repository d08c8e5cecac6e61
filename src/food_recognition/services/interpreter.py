"""Interpretation of raw model replies into nutrition estimates.

A reply is first treated as the strict JSON object the prompt asks for. When
that fails the text is scanned with ordered pattern ladders, one per field,
which tolerate the loose markdown layouts models produce in practice.
"""

import json
import logging
import re
from dataclasses import dataclass, replace

from pydantic import ValidationError

from food_recognition.domain.nutrition import (
    InterpretedReply,
    NutritionEstimate,
    ParseMethod,
    PortionUnit,
    parse_unit,
    round1,
)
from food_recognition.domain.recognition import StructuredReply

_logger = logging.getLogger(__name__)

_NUMBER = r"(\d+(?:[.,]\d+)?)"
_GRAMS = r"\s*(?:г|g)?"
_DEFAULT_PORTION = 100
_KCAL_PER_GRAM_CARBS = 4
_KCAL_PER_GRAM_PROTEIN = 4
_KCAL_PER_GRAM_FAT = 9


@dataclass(frozen=True)
class PatternRung:
    """One attempt in a field's pattern ladder."""

    pattern: re.Pattern[str]
    group: int = 1

    def extract(self, text: str) -> float | None:
        """Return the number captured by this rung, if the pattern matches."""
        match = self.pattern.search(text)
        if match is None:
            return None
        return _parse_number(match.group(self.group))


def _rung(pattern: str) -> PatternRung:
    return PatternRung(re.compile(pattern, re.IGNORECASE))


def _macro_ladder(stem: str) -> tuple[PatternRung, ...]:
    """Build the ladder for a macro label, most specific layout first."""
    title = stem.capitalize()
    return (
        _rung(rf"\*\*{title}[а-я]*\*\*[:\s]*{_NUMBER}{_GRAMS}"),
        _rung(rf"\*\*{title}[а-я]*:\*\*\s*{_NUMBER}{_GRAMS}"),
        _rung(rf"{title}[а-я]*[:\s*]*{_NUMBER}{_GRAMS}"),
        _rung(rf"{stem}[а-я]*[:\s*]+{_NUMBER}{_GRAMS}"),
        _rung(rf"{stem}[а-я]*[:\s*]*{_NUMBER}"),
    )


# Order matters: the first rung that yields a number decides the field.
FIELD_PATTERNS: dict[str, tuple[PatternRung, ...]] = {
    "calories": (
        _rung(rf"\*\*Калории?\*\*[:\s]*{_NUMBER}\s*(?:ккал|калори)?"),
        _rung(rf"\*\*Калории?:\*\*\s*{_NUMBER}\s*(?:ккал|калори)?"),
        _rung(rf"Калории?[:\s*]*{_NUMBER}\s*(?:ккал|калори)?"),
        _rung(rf"{_NUMBER}\s*(?:ккал|калори)"),
        _rung(rf"калори[ия]*[:\s*]*{_NUMBER}"),
    ),
    "protein": _macro_ladder("белк"),
    "fat": _macro_ladder("жир"),
    "carbs": _macro_ladder("углевод"),
}

PORTION_PATTERN = re.compile(
    r"Размер порции[:\s*]*(\d+(?:\.\d+)?)\s*(г|мл|шт)", re.IGNORECASE
)
_EMPHASIS_PATTERN = re.compile(r"\*\*([^*]+)\*\*")
_DECIMAL_COMMA = re.compile(r"(\d),(\d)")


def interpret(raw: str) -> InterpretedReply | None:
    """Parse a raw model reply, structured JSON first, free text second."""
    try:
        structured = _interpret_structured(raw)
        if structured is not None:
            _logger.debug("Interpreted reply: method=structured")
            return InterpretedReply(structured, ParseMethod.STRUCTURED)
        heuristic = _interpret_heuristic(raw)
    except Exception:
        _logger.exception("Failed to interpret model reply")
        return None
    if heuristic is None:
        _logger.debug("Interpreted reply: no nutrition signal")
        return None
    _logger.debug("Interpreted reply: method=heuristic")
    return InterpretedReply(heuristic, ParseMethod.HEURISTIC)


def first_match(text: str, ladder: tuple[PatternRung, ...]) -> float | None:
    """Return the value of the first rung in the ladder that yields a number."""
    for index, rung in enumerate(ladder):
        value = rung.extract(text)
        if value is not None:
            _logger.debug("Pattern rung %s matched value=%s", index, value)
            return value
    return None


def normalize_text(raw: str) -> str:
    """Replace non-breaking spaces and decimal commas before number matching."""
    text = raw.replace("\u00a0", " ").replace("\u202f", " ")
    return _DECIMAL_COMMA.sub(r"\1.\2", text)


def backfill_macros(
    calories: float | None,
    protein: float | None,
    fat: float | None,
    carbs: float | None,
) -> tuple[float | None, float | None, float | None]:
    """Fill unknown macros from calories so they are never all unknown.

    Without any usable macro, the energy is attributed entirely to
    carbohydrates. With partial macros, missing protein or fat become zero and
    missing carbs take whatever energy remains.
    """
    if calories is None:
        return protein, fat, carbs
    all_missing = protein is None and fat is None and carbs is None
    all_zero = (protein or 0) == 0 and (fat or 0) == 0 and (carbs or 0) == 0
    if all_missing or all_zero:
        return (
            protein if protein is not None else 0.0,
            fat if fat is not None else 0.0,
            max(0.0, calories / _KCAL_PER_GRAM_CARBS),
        )
    protein = protein if protein is not None else 0.0
    fat = fat if fat is not None else 0.0
    if carbs is None:
        remaining = calories - (
            protein * _KCAL_PER_GRAM_PROTEIN + fat * _KCAL_PER_GRAM_FAT
        )
        carbs = max(0.0, remaining / _KCAL_PER_GRAM_CARBS)
    return protein, fat, carbs


def _interpret_structured(raw: str) -> NutritionEstimate | None:
    """Decode a strict JSON reply, or return None to fall through."""
    trimmed = raw.strip()
    if not trimmed.startswith("{"):
        return None
    try:
        decoded = json.loads(trimmed)
        reply = StructuredReply.model_validate(decoded)
    except (ValueError, ValidationError) as exc:
        _logger.debug("Structured reply rejected, falling back: %s", exc)
        return None
    estimate = reply.to_estimate()
    if estimate.protein is None and estimate.fat is None and estimate.carbs is None:
        protein, fat, carbs = backfill_macros(estimate.calories, None, None, None)
        estimate = replace(estimate, protein=protein, fat=fat, carbs=carbs)
    return _rounded(estimate)


def _interpret_heuristic(raw: str) -> NutritionEstimate | None:
    """Extract an estimate from free-form prose."""
    text = normalize_text(raw)
    values = {
        field: first_match(text, ladder) for field, ladder in FIELD_PATTERNS.items()
    }
    if all(value is None for value in values.values()):
        return None

    portion_size: float = _DEFAULT_PORTION
    unit = PortionUnit.MASS
    portion_match = PORTION_PATTERN.search(text)
    if portion_match:
        portion_size = _parse_number(portion_match.group(1)) or _DEFAULT_PORTION
        unit = parse_unit(portion_match.group(2))

    calories = values["calories"]
    protein, fat, carbs = backfill_macros(
        calories, values["protein"], values["fat"], values["carbs"]
    )
    estimate = NutritionEstimate(
        food_name=_extract_name(text),
        portion_size=portion_size,
        unit=unit,
        calories=calories,
        protein=protein,
        fat=fat,
        carbs=carbs,
    )
    return _rounded(estimate)


def _extract_name(text: str) -> str:
    """Take the emphasised label of the first line, else the line itself."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    first_line = lines[0] if lines else ""
    emphasised = _EMPHASIS_PATTERN.search(first_line)
    if emphasised and emphasised.group(1).strip():
        return emphasised.group(1).strip()
    return first_line.replace("**", "").lstrip("#").strip()


def _rounded(estimate: NutritionEstimate) -> NutritionEstimate:
    return replace(
        estimate,
        calories=round1(estimate.calories),
        protein=round1(estimate.protein),
        fat=round1(estimate.fat),
        carbs=round1(estimate.carbs),
    )


def _parse_number(raw: str | None) -> float | None:
    """Parse a decimal with either separator, returning None on failure."""
    if not raw:
        return None
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        return None
