"""Dependency container wiring for the application."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from food_recognition.adapters.openai_client import OpenAIChatClient
from food_recognition.adapters.openfoodfacts_client import HttpxOpenFoodFactsClient
from food_recognition.config import Settings
from food_recognition.services.cache import InMemoryCache
from food_recognition.services.gate import ConcurrencyGate
from food_recognition.services.recognition import RecognitionService
from food_recognition.services.reconciliation import ReconciliationService
from food_recognition.services.reference_lookup import ReferenceLookupService

_logger = logging.getLogger(__name__)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    gate: ConcurrencyGate
    lookup_service: ReferenceLookupService
    reconciliation_service: ReconciliationService
    recognition_service: RecognitionService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    gate = ConcurrencyGate(resolved_settings.openai_concurrency)
    reference_client = HttpxOpenFoodFactsClient.create(
        base_url=resolved_settings.openfoodfacts_base_url,
        timeout_seconds=resolved_settings.openfoodfacts_timeout_seconds,
        user_agent=resolved_settings.openfoodfacts_user_agent,
    )
    lookup_service = ReferenceLookupService(
        client=reference_client,
        cache=InMemoryCache(),
        page_size=resolved_settings.openfoodfacts_page_size,
        cache_ttl_seconds=resolved_settings.reference_cache_ttl_seconds,
        miss_ttl_seconds=resolved_settings.reference_miss_ttl_seconds,
        retry_attempts=resolved_settings.reference_retry_attempts,
        retry_delay_seconds=resolved_settings.reference_retry_delay_seconds,
    )
    reconciliation_service = ReconciliationService(lookup_service)
    inference_client = None
    if resolved_settings.openai_api_key:
        inference_client = OpenAIChatClient.create(resolved_settings.openai_api_key)
    else:
        _logger.warning("OPENAI_API_KEY is not set; recognition is unavailable")
    recognition_service = RecognitionService(
        client=inference_client,
        gate=gate,
        reconciliation_service=reconciliation_service,
        vision_model=resolved_settings.openai_vision_model,
        chat_model=resolved_settings.openai_chat_model,
        max_tokens=resolved_settings.openai_max_tokens,
    )

    async def close_resources() -> None:
        await reference_client.close()
        if inference_client is not None:
            await inference_client.client.close()

    return AppContainer(
        settings=resolved_settings,
        gate=gate,
        lookup_service=lookup_service,
        reconciliation_service=reconciliation_service,
        recognition_service=recognition_service,
        close_resources=close_resources,
    )
