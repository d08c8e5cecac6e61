"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field

import pytest

from food_recognition.adapters.openfoodfacts_client import ReferenceClient
from food_recognition.config import Settings
from food_recognition.containers import AppContainer
from food_recognition.services.cache import InMemoryCache
from food_recognition.services.gate import ConcurrencyGate
from food_recognition.services.recognition import (
    ChatMessage,
    InferenceClient,
    RecognitionService,
)
from food_recognition.services.reconciliation import ReconciliationService
from food_recognition.services.reference_lookup import ReferenceLookupService


def off_product(  # noqa: PLR0913
    name: str,
    *,
    kcal: float | None = None,
    protein: float | None = None,
    fat: float | None = None,
    carbs: float | None = None,
    serving_size: str | None = None,
    **extra: object,
) -> dict[str, object]:
    """Build an Open Food Facts product payload."""
    nutriments: dict[str, object] = {}
    if kcal is not None:
        nutriments["energy-kcal_100g"] = kcal
    if protein is not None:
        nutriments["proteins_100g"] = protein
    if fat is not None:
        nutriments["fat_100g"] = fat
    if carbs is not None:
        nutriments["carbohydrates_100g"] = carbs
    product: dict[str, object] = {"product_name": name, "nutriments": nutriments}
    if serving_size is not None:
        product["serving_size"] = serving_size
    product.update(extra)
    return product


@dataclass
class FakeReferenceClient(ReferenceClient):
    """Reference client answering from a query-to-payload map."""

    responses: dict[str, object] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)
    queries: list[str] = field(default_factory=list)

    async def search_products(self, query: str, page_size: int = 3) -> object:
        self.queries.append(query)
        if query in self.failures:
            raise self.failures[query]
        return self.responses.get(query, {"products": []})


@dataclass
class FakeInferenceClient(InferenceClient):
    """Inference client returning a fixed reply and recording requests."""

    reply: str = ""
    error: Exception | None = None
    delay_seconds: float = 0.0
    calls: list[dict[str, object]] = field(default_factory=list)

    async def complete(  # noqa: PLR0913
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        self.calls.append(
            {
                "messages": messages,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
            }
        )
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="openai-key")


@pytest.fixture
def reference_client() -> FakeReferenceClient:
    return FakeReferenceClient()


@pytest.fixture
def inference_client() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def lookup_service(reference_client: FakeReferenceClient) -> ReferenceLookupService:
    return ReferenceLookupService(client=reference_client, cache=InMemoryCache())


@pytest.fixture
def container(
    settings: Settings,
    lookup_service: ReferenceLookupService,
    inference_client: FakeInferenceClient,
) -> AppContainer:
    gate = ConcurrencyGate(settings.openai_concurrency)
    reconciliation_service = ReconciliationService(lookup_service)
    recognition_service = RecognitionService(
        client=inference_client,
        gate=gate,
        reconciliation_service=reconciliation_service,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        gate=gate,
        lookup_service=lookup_service,
        reconciliation_service=reconciliation_service,
        recognition_service=recognition_service,
        close_resources=close_resources,
    )
