"""Recognition endpoints backed by the upstream language model."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING
from uuid import uuid4

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from food_recognition.api.models import (
    AnalyzeImageRequest,
    ChatRequest,
    NutritionData,
    RecognitionResponse,
)
from food_recognition.services.recognition import (
    InferenceUnavailableError,
    RecognitionResult,
)

if TYPE_CHECKING:
    from food_recognition.containers import AppContainer

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gpt", tags=["gpt"])


def _to_response(result: RecognitionResult) -> JSONResponse:
    payload = RecognitionResponse(
        response=result.response_text,
        nutrition_data=(
            NutritionData.from_estimate(result.nutrition)
            if result.nutrition is not None
            else None
        ),
    )
    return JSONResponse(payload.model_dump(by_alias=True))


def _error_response(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": str(exc)},
    )


@router.post("/analyze-image")
async def analyze_image(body: AnalyzeImageRequest, request: Request) -> JSONResponse:
    """Recognise a food photo and return reconciled nutrition data."""
    container: AppContainer = request.app.state.container
    request_id = str(uuid4())
    started = time.perf_counter()
    _logger.info(
        "Image analysis request received: request_id=%s size=%s",
        request_id,
        len(body.image_base64),
    )
    try:
        result = await container.recognition_service.analyze_image(
            body.image_base64, request_id=request_id
        )
    except InferenceUnavailableError as exc:
        _logger.error("Inference backend unavailable: request_id=%s", request_id)
        return _error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Inference service unavailable", exc
        )
    except Exception as exc:
        _logger.exception("Image analysis failed: request_id=%s", request_id)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Image analysis failed", exc
        )
    _logger.info(
        "Image analysis request completed: request_id=%s duration_ms=%.0f "
        "has_result=%s",
        request_id,
        (time.perf_counter() - started) * 1000,
        result.nutrition is not None,
    )
    return _to_response(result)


@router.post("/chat")
async def chat(body: ChatRequest, request: Request) -> JSONResponse:
    """Forward a chat message and extract nutrition data from the reply."""
    container: AppContainer = request.app.state.container
    request_id = str(uuid4())
    history = [
        {"role": item.role, "content": item.content}
        for item in body.conversation_history or []
    ]
    try:
        result = await container.recognition_service.chat(
            body.message,
            system_prompt=body.system_prompt,
            history=history,
            request_id=request_id,
        )
    except InferenceUnavailableError as exc:
        _logger.error("Inference backend unavailable: request_id=%s", request_id)
        return _error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE, "Inference service unavailable", exc
        )
    except Exception as exc:
        _logger.exception("Chat request failed: request_id=%s", request_id)
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Chat request failed", exc
        )
    return _to_response(result)
