"""Nutrition reference lookup over Open Food Facts."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from food_recognition.adapters.openfoodfacts_client import ReferenceClient
from food_recognition.domain.keywords import QUERY_FILLER_WORDS
from food_recognition.domain.nutrition import (
    PortionUnit,
    ReferenceCandidate,
    parse_unit,
    round1,
)
from food_recognition.domain.recognition import coerce_number
from food_recognition.services.cache import Cache

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)

_KJ_PER_KCAL = 4.184
_PER_100 = 100.0
_MAX_LADDER_TOKENS = 3
_MIN_SERVING = 0.05

_NUTRIMENT_KEYS = {
    "calories": "energy-kcal_100g",
    "protein": "proteins_100g",
    "fat": "fat_100g",
    "carbs": "carbohydrates_100g",
}
_ENERGY_FALLBACK_KEYS = ("energy-kj_100g", "energy_100g")

_PUNCTUATION = re.compile(r"[^\w\s-]|_")
_WHITESPACE = re.compile(r"\s+")
_BRACKETED_SERVING = re.compile(
    r"\((\d+\.?\d*)\s*(g|г|гр|грамм|ml|мл|pcs|шт|piece|pieces)",
    re.IGNORECASE,
)
_LEADING_NUMBER = re.compile(r"(\d+\.?\d*)")


@dataclass
class ReferenceLookupService:
    """Finds the best reference entry for a free-text food name."""

    client: ReferenceClient
    cache: Cache
    page_size: int = 3
    cache_ttl_seconds: int = 3600
    miss_ttl_seconds: int = 300
    retry_attempts: int = 0
    retry_delay_seconds: float = 0.3

    async def lookup(self, food_name: str) -> ReferenceCandidate | None:
        """Return a scored, portion-scaled candidate, or None.

        Network and payload failures are logged and reported as no candidate.
        """
        name = food_name.strip()
        if not name:
            return None
        cache_key = f"off:lookup:{name.lower()}"
        hit, cached = self.cache.get(cache_key)
        if hit:
            return cached if isinstance(cached, ReferenceCandidate) else None

        products, failed = await self._search_ladder(name)
        candidate: ReferenceCandidate | None = None
        if products:
            best = select_best_product(products, name)
            if best is not None:
                try:
                    candidate = parse_product(best, name)
                except (TypeError, ValueError, AttributeError):
                    _logger.exception(
                        "Failed to parse reference product for %s", name
                    )
                    return None

        if candidate is not None:
            self.cache.set(cache_key, candidate, ttl_seconds=self.cache_ttl_seconds)
        elif not failed:
            self.cache.set(cache_key, None, ttl_seconds=self.miss_ttl_seconds)
        _logger.debug(
            "Reference lookup: name=%s found=%s", name, candidate is not None
        )
        return candidate

    async def _search_ladder(
        self, name: str
    ) -> tuple[list[dict[str, object]], bool]:
        """Query each rung until one returns products.

        Returns the products and whether any rung failed outright.
        """
        failed = False
        for query in build_query_ladder(name):
            try:
                payload = await self._call_with_retry(
                    lambda q=query: self.client.search_products(
                        q, page_size=self.page_size
                    ),
                    action=f"search:{query}",
                )
            except Exception as exc:
                failed = True
                _logger.warning(
                    "Reference search failed for rung %r (status=%s): %s",
                    query,
                    _status_code_from_exception(exc),
                    exc,
                )
                continue
            products = extract_products(payload)
            if products:
                _logger.debug(
                    "Reference search hit: rung=%r results=%s", query, len(products)
                )
                return products, failed
        return [], failed

    async def _call_with_retry(
        self, func: "Callable[[], Awaitable[object]]", *, action: str
    ) -> object:
        """Call an async function with a short retry."""
        attempt = 0
        while True:
            try:
                return await func()
            except Exception as exc:
                attempt += 1
                if attempt > self.retry_attempts:
                    raise
                _logger.debug(
                    "Reference %s failed (attempt %s/%s): %s",
                    action,
                    attempt,
                    self.retry_attempts + 1,
                    exc,
                )
                await asyncio.sleep(self.retry_delay_seconds)


def build_query_ladder(name: str) -> list[str]:
    """Return queries from most to least specific, without duplicates."""
    original = name.strip()
    if not original:
        return []
    cleaned = _WHITESPACE.sub(" ", _PUNCTUATION.sub(" ", original.lower())).strip()
    tokens = [
        token
        for token in cleaned.split(" ")
        if token and token not in QUERY_FILLER_WORDS
    ]
    rungs = [original] + [
        " ".join(tokens[:count]) for count in range(_MAX_LADDER_TOKENS, 0, -1)
    ]
    ladder: list[str] = []
    for rung in rungs:
        if rung and rung not in ladder:
            ladder.append(rung)
    return ladder


def extract_products(payload: object) -> list[dict[str, object]]:
    """Pull the product list out of a search payload; bad shapes yield []."""
    if not isinstance(payload, dict):
        return []
    products = payload.get("products")
    if not isinstance(products, list):
        return []
    return [product for product in products if isinstance(product, dict)]


def score_product(product: dict[str, object], food_name: str) -> int:
    """Score a product by macro completeness plus a name-match bonus."""
    nutriments = _nutriments(product)
    score = sum(
        1 for key in _NUTRIMENT_KEYS.values() if nutriments.get(key) is not None
    )
    product_name = str(product.get("product_name") or "").strip().lower()
    search_name = food_name.strip().lower()
    if product_name and (product_name in search_name or search_name in product_name):
        score += 2
    return score


def select_best_product(
    products: list[dict[str, object]], food_name: str
) -> dict[str, object] | None:
    """Keep the highest-scoring product; ties keep the first, zero never wins."""
    best: dict[str, object] | None = None
    best_score = 0
    for product in products:
        score = score_product(product, food_name)
        if score > best_score:
            best, best_score = product, score
    return best


def parse_product(
    product: dict[str, object], original_name: str
) -> ReferenceCandidate:
    """Convert a product into a candidate expressed at its own portion."""
    name = str(
        product.get("product_name") or product.get("product_name_ru") or original_name
    ).strip()
    portion_size, unit = parse_serving(
        product.get("serving_size")
        or product.get("quantity")
        or product.get("product_quantity")
    )
    nutriments = _nutriments(product)
    values = {
        field: coerce_number(nutriments.get(key))
        for field, key in _NUTRIMENT_KEYS.items()
    }
    if nutriments.get(_NUTRIMENT_KEYS["calories"]) is None:
        values["calories"] = _calories_from_energy(nutriments)

    if portion_size != _PER_100:
        multiplier = portion_size / _PER_100
        values = {
            field: None if value is None else value * multiplier
            for field, value in values.items()
        }

    return ReferenceCandidate(
        food_name=name or original_name,
        portion_size=round1(portion_size),
        unit=unit,
        calories=_non_negative(values["calories"]),
        protein=_non_negative(values["protein"]),
        fat=_non_negative(values["fat"]),
        carbs=_non_negative(values["carbs"]),
        ingredients=_ingredients(product),
    )


def parse_serving(serving: object) -> tuple[float, PortionUnit]:
    """Parse a serving-size field, defaulting to 100 g.

    Sizes that would round to zero are treated as missing.
    """
    if serving is None or serving == "":
        return _PER_100, PortionUnit.MASS
    text = str(serving).lower()
    bracketed = _BRACKETED_SERVING.search(text)
    if bracketed:
        size, unit = float(bracketed.group(1)), parse_unit(bracketed.group(2))
    else:
        leading = _LEADING_NUMBER.search(text)
        if leading is None:
            return _PER_100, PortionUnit.MASS
        size, unit = float(leading.group(1)), parse_unit(text)
    if size < _MIN_SERVING:
        return _PER_100, PortionUnit.MASS
    return size, unit


def _calories_from_energy(nutriments: dict[str, object]) -> float | None:
    """Convert the first present kJ energy field into kcal."""
    for key in _ENERGY_FALLBACK_KEYS:
        if nutriments.get(key) is not None:
            kilojoules = coerce_number(nutriments[key])
            return None if kilojoules is None else kilojoules / _KJ_PER_KCAL
    return None


def _nutriments(product: dict[str, object]) -> dict[str, object]:
    nutriments = product.get("nutriments")
    return nutriments if isinstance(nutriments, dict) else {}


def _ingredients(product: dict[str, object]) -> tuple[str, ...] | None:
    text = product.get("ingredients_text_ru") or product.get("ingredients_text")
    if not isinstance(text, str) or not text.strip():
        return None
    return tuple(item.strip() for item in text.split(",") if item.strip())


def _non_negative(value: float | None) -> float | None:
    rounded = round1(value)
    if rounded is None:
        return None
    return max(0.0, rounded)


def _status_code_from_exception(exc: Exception) -> str:
    """Extract HTTP status code from an exception, if available."""
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return str(status_code)
    return "n/a"
