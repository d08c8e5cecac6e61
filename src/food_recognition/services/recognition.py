"""Food recognition flow: gated inference, interpretation, reconciliation."""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Protocol

from food_recognition.domain.nutrition import (
    NutritionEstimate,
    ParseMethod,
    ReconciliationSource,
)
from food_recognition.services.formatting import format_nutrition_response
from food_recognition.services.gate import ConcurrencyGate
from food_recognition.services.interpreter import interpret
from food_recognition.services.reconciliation import ReconciliationService

_logger = logging.getLogger(__name__)

ChatMessage = dict[str, object]

VISION_SYSTEM_PROMPT = (
    "Ты эксперт по питанию. Определи блюдо или продукт на фото и верни ТОЛЬКО "
    "JSON-объект без markdown и пояснений:\n"
    '{"foodName": строка, "portionSize": число, "unit": "г" | "мл" | "шт", '
    '"calories": число, "protein": число, "fat": число, "carbs": число}\n'
    "Пиши реальное название продукта, а не заглушку. Если на упаковке видно "
    "КБЖУ, используй его, иначе справочные значения."
)
VISION_USER_PROMPT = "Верни только JSON-объект по схеме из системного сообщения."


class InferenceUnavailableError(RuntimeError):
    """Raised when no inference backend is configured."""


class InferenceClient(Protocol):
    """Interface for chat-style model inference."""

    async def complete(  # noqa: PLR0913
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        """Return the model's reply text."""


@dataclass(frozen=True)
class RecognitionResult:
    """Reply text plus the structured nutrition extracted from it, if any."""

    response_text: str
    nutrition: NutritionEstimate | None
    parse_method: ParseMethod | None = None
    source: ReconciliationSource | None = None


@dataclass
class RecognitionService:
    """Runs upstream inference behind the gate and structures the reply."""

    client: InferenceClient | None
    gate: ConcurrencyGate
    reconciliation_service: ReconciliationService
    vision_model: str = "gpt-4o"
    chat_model: str = "gpt-4"
    max_tokens: int = 1000
    chat_temperature: float = 0.7
    history_limit: int = 10

    @property
    def is_available(self) -> bool:
        """Whether an inference backend is configured."""
        return self.client is not None

    async def analyze_image(
        self, image_base64: str, request_id: str | None = None
    ) -> RecognitionResult:
        """Recognise a food photo and reconcile it with the reference database."""
        client = self._require_client()
        messages: list[ChatMessage] = [
            {"role": "system", "content": VISION_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": VISION_USER_PROMPT},
                    {
                        "type": "image_url",
                        "image_url": {"url": _to_data_url(image_base64)},
                    },
                ],
            },
        ]
        raw = await self.gate.run(
            lambda: client.complete(
                messages,
                model=self.vision_model,
                temperature=0.0,
                max_tokens=self.max_tokens,
                json_mode=True,
            )
        )
        _logger.debug(
            "Vision reply received: request_id=%s length=%s", request_id, len(raw)
        )

        interpreted = interpret(raw)
        if interpreted is None:
            _logger.info(
                "No nutrition data in vision reply: request_id=%s", request_id
            )
            return RecognitionResult(response_text=raw, nutrition=None)

        reconciled = await self.reconciliation_service.reconcile(
            interpreted.estimate, interpreted.estimate.food_name
        )
        _logger.info(
            "Vision analysis completed: request_id=%s method=%s source=%s",
            request_id,
            interpreted.method,
            reconciled.source,
        )
        return RecognitionResult(
            response_text=format_nutrition_response(reconciled.estimate),
            nutrition=reconciled.estimate,
            parse_method=interpreted.method,
            source=reconciled.source,
        )

    async def chat(
        self,
        message: str,
        system_prompt: str | None = None,
        history: list[ChatMessage] | None = None,
        request_id: str | None = None,
    ) -> RecognitionResult:
        """Send a chat message and extract nutrition data from the reply."""
        client = self._require_client()
        messages: list[ChatMessage] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        if history:
            messages.extend(history[-self.history_limit :])
        messages.append({"role": "user", "content": message})

        raw = await self.gate.run(
            lambda: client.complete(
                messages,
                model=self.chat_model,
                temperature=self.chat_temperature,
                max_tokens=self.max_tokens,
            )
        )
        interpreted = interpret(raw)
        _logger.debug(
            "Chat reply parsed: request_id=%s method=%s",
            request_id,
            interpreted.method if interpreted else "none",
        )
        return RecognitionResult(
            response_text=raw,
            nutrition=interpreted.estimate if interpreted else None,
            parse_method=interpreted.method if interpreted else None,
            source=ReconciliationSource.MODEL if interpreted else None,
        )

    def _require_client(self) -> InferenceClient:
        if self.client is None:
            raise InferenceUnavailableError("Inference backend is not configured")
        return self.client


def _to_data_url(image_base64: str) -> str:
    """Wrap raw base64 image data in a data URL, detecting the MIME type."""
    if image_base64.startswith("data:"):
        return image_base64
    try:
        header = base64.b64decode(image_base64[:24], validate=False)
    except (binascii.Error, ValueError):
        header = b""
    return f"data:{_detect_mime_type(header)};base64,{image_base64}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"
