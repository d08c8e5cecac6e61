"""Tests for the recognition flow."""

import asyncio
import base64

import pytest

from food_recognition.domain.nutrition import ParseMethod, ReconciliationSource
from food_recognition.services.gate import ConcurrencyGate
from food_recognition.services.recognition import (
    InferenceUnavailableError,
    RecognitionService,
    _to_data_url,
)
from tests.conftest import FakeInferenceClient, FakeReferenceClient, off_product

BANANA_REPLY = (
    '{"foodName":"Банан","portionSize":120,"unit":"г","calories":107,'
    '"protein":1.3,"fat":0.4,"carbs":27.6}'
)


def test_analyze_image_returns_model_estimate_without_reference(
    container, inference_client: FakeInferenceClient
) -> None:
    inference_client.reply = BANANA_REPLY
    service = container.recognition_service

    result = asyncio.run(service.analyze_image("aGVsbG8=", request_id="req-1"))

    assert result.parse_method is ParseMethod.STRUCTURED
    assert result.source is ReconciliationSource.MODEL
    assert result.nutrition is not None
    assert result.nutrition.food_name == "Банан"
    assert result.response_text.startswith("**Банан**\n\nРазмер порции: 120 г")
    call = inference_client.calls[0]
    assert call["model"] == "gpt-4o"
    assert call["json_mode"] is True
    assert call["temperature"] == 0.0
    image_part = call["messages"][1]["content"][1]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert container.gate.active == 0


def test_analyze_image_uses_reference_when_model_has_no_macros(
    container,
    inference_client: FakeInferenceClient,
    reference_client: FakeReferenceClient,
) -> None:
    inference_client.reply = (
        '{"foodName":"Даниссимо","portionSize":130,"unit":"г","calories":180,'
        '"protein":0,"fat":0,"carbs":0}'
    )
    reference_client.responses["Даниссимо"] = {
        "products": [
            off_product(
                "Даниссимо",
                kcal=140,
                protein=5,
                fat=6,
                carbs=17,
                serving_size="1 pot (130 g)",
            )
        ]
    }

    result = asyncio.run(container.recognition_service.analyze_image("aGVsbG8="))

    assert result.source is ReconciliationSource.REFERENCE
    assert result.nutrition is not None
    assert result.nutrition.food_name == "Даниссимо"
    assert result.nutrition.calories == 182.0
    assert result.nutrition.protein == 6.5
    assert "**Калории:** 182 ккал" in result.response_text


def test_analyze_image_returns_raw_text_when_uninterpretable(
    container,
    inference_client: FakeInferenceClient,
    reference_client: FakeReferenceClient,
) -> None:
    inference_client.reply = "Не удалось распознать блюдо на фото."

    result = asyncio.run(container.recognition_service.analyze_image("aGVsbG8="))

    assert result.nutrition is None
    assert result.response_text == "Не удалось распознать блюдо на фото."
    assert reference_client.queries == []


def test_chat_trims_history_and_skips_reference_lookup(
    container,
    inference_client: FakeInferenceClient,
    reference_client: FakeReferenceClient,
) -> None:
    inference_client.reply = "**Гречка**\nКалории: 330 ккал\nБелки: 12 г"
    history = [{"role": "user", "content": f"m{index}"} for index in range(15)]

    result = asyncio.run(
        container.recognition_service.chat(
            "Сколько калорий в гречке?",
            system_prompt="Ты нутрициолог",
            history=history,
        )
    )

    messages = inference_client.calls[0]["messages"]
    assert messages[0] == {"role": "system", "content": "Ты нутрициолог"}
    assert messages[1]["content"] == "m5"
    assert messages[-1] == {"role": "user", "content": "Сколько калорий в гречке?"}
    assert len(messages) == 12
    assert inference_client.calls[0]["model"] == "gpt-4"
    assert result.parse_method is ParseMethod.HEURISTIC
    assert result.nutrition is not None
    assert result.nutrition.food_name == "Гречка"
    assert result.response_text == inference_client.reply
    assert reference_client.queries == []


def test_chat_without_nutrition_signal(
    container, inference_client: FakeInferenceClient
) -> None:
    inference_client.reply = "Привет! Чем помочь?"

    result = asyncio.run(container.recognition_service.chat("Привет"))

    assert result.nutrition is None
    assert result.parse_method is None


def test_missing_backend_raises_unavailable(container) -> None:
    service = RecognitionService(
        client=None,
        gate=ConcurrencyGate(1),
        reconciliation_service=container.reconciliation_service,
    )

    assert service.is_available is False
    with pytest.raises(InferenceUnavailableError):
        asyncio.run(service.analyze_image("aGVsbG8="))


def test_upstream_failure_propagates_and_frees_gate(
    container, inference_client: FakeInferenceClient
) -> None:
    inference_client.error = RuntimeError("rate limited")

    with pytest.raises(RuntimeError):
        asyncio.run(container.recognition_service.analyze_image("aGVsbG8="))

    assert container.gate.active == 0


def test_concurrent_requests_respect_gate(container) -> None:
    client = FakeInferenceClient(reply=BANANA_REPLY, delay_seconds=0.01)
    gate = ConcurrencyGate(2)
    service = RecognitionService(
        client=client,
        gate=gate,
        reconciliation_service=container.reconciliation_service,
    )
    peak = 0

    async def observe() -> None:
        nonlocal peak
        while len(client.calls) < 6 or gate.active:
            peak = max(peak, gate.active)
            await asyncio.sleep(0.001)

    async def scenario() -> list[object]:
        watcher = asyncio.create_task(observe())
        results = await asyncio.gather(
            *(service.chat(f"q{index}") for index in range(6))
        )
        await watcher
        return results

    results = asyncio.run(scenario())

    assert len(results) == 6
    assert peak <= 2
    assert len(client.calls) == 6


def test_to_data_url_detects_png_and_keeps_existing_urls() -> None:
    png = base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"rest-of-image").decode()

    assert _to_data_url(png).startswith("data:image/png;base64,")
    assert _to_data_url("data:image/webp;base64,AAAA") == "data:image/webp;base64,AAAA"
    assert _to_data_url("!!!").startswith("data:image/jpeg;base64,")
