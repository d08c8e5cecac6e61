"""Arbitration between model estimates and reference candidates."""

import logging
from dataclasses import dataclass, field

from food_recognition.domain.keywords import (
    BRAND_KEYWORDS,
    GENERIC_DISH_KEYWORDS,
    contains_keyword,
)
from food_recognition.domain.nutrition import (
    NutritionEstimate,
    Reconciled,
    ReconciliationSource,
    ReferenceCandidate,
)
from food_recognition.services.reference_lookup import ReferenceLookupService

_logger = logging.getLogger(__name__)

_MIN_REFERENCE_FIELDS = 3


@dataclass(frozen=True)
class ArbitrationRules:
    """Keyword sets driving the brand and generic-dish checks."""

    brand_keywords: frozenset[str] = BRAND_KEYWORDS
    generic_dish_keywords: frozenset[str] = GENERIC_DISH_KEYWORDS
    min_reference_fields: int = _MIN_REFERENCE_FIELDS


def model_macros_absent(estimate: NutritionEstimate) -> bool:
    """True when protein, fat and carbs are all unknown or all exactly zero."""
    macros = (estimate.protein, estimate.fat, estimate.carbs)
    return all(value is None for value in macros) or all(
        (value or 0) == 0 for value in macros
    )


def names_corroborate(
    model_name: str, reference_name: str, rules: ArbitrationRules
) -> bool:
    """Decide whether a branded reference entry may stand in for the model."""
    model_lower = model_name.lower()
    reference_lower = reference_name.lower()
    if not contains_keyword(reference_lower, rules.brand_keywords):
        return False
    if contains_keyword(model_lower, rules.brand_keywords):
        return True
    if contains_keyword(model_lower, rules.generic_dish_keywords):
        return False
    return _first_token(reference_lower) in model_lower or (
        _first_token(model_lower) in reference_lower
    )


def arbitrate(
    model_estimate: NutritionEstimate,
    candidate: ReferenceCandidate | None,
    rules: ArbitrationRules | None = None,
) -> Reconciled:
    """Pick the numbers for the final estimate; the model's name always wins."""
    if candidate is None:
        return Reconciled(model_estimate, ReconciliationSource.MODEL)
    resolved_rules = rules or ArbitrationRules()

    if (
        model_macros_absent(model_estimate)
        and candidate.populated_fields >= resolved_rules.min_reference_fields
    ):
        _logger.info(
            "Using reference data: model has no macros (reference=%s)",
            candidate.food_name,
        )
        return _from_reference(model_estimate, candidate)

    if names_corroborate(model_estimate.food_name, candidate.food_name, resolved_rules):
        _logger.info(
            "Using reference data: brand match (reference=%s)", candidate.food_name
        )
        return _from_reference(model_estimate, candidate)

    _logger.info(
        "Using model data (general dish or no match): %s", model_estimate.food_name
    )
    return Reconciled(model_estimate, ReconciliationSource.MODEL)


@dataclass
class ReconciliationService:
    """Looks up a reference candidate and arbitrates against the model."""

    lookup_service: ReferenceLookupService
    rules: ArbitrationRules = field(default_factory=ArbitrationRules)

    async def reconcile(
        self, model_estimate: NutritionEstimate, food_name: str
    ) -> Reconciled:
        """Return the final estimate for a model estimate and lookup name."""
        candidate = await self.lookup_service.lookup(food_name)
        return arbitrate(model_estimate, candidate, self.rules)


def _from_reference(
    model_estimate: NutritionEstimate, candidate: ReferenceCandidate
) -> Reconciled:
    estimate = NutritionEstimate(
        food_name=model_estimate.food_name,
        portion_size=candidate.portion_size,
        unit=candidate.unit,
        calories=candidate.calories,
        protein=candidate.protein,
        fat=candidate.fat,
        carbs=candidate.carbs,
    )
    return Reconciled(estimate, ReconciliationSource.REFERENCE)


def _first_token(name: str) -> str:
    tokens = name.split()
    return tokens[0] if tokens else ""
