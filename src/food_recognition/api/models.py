"""Pydantic models for recognition API payloads."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from food_recognition.domain.nutrition import NutritionEstimate


class ConversationMessage(BaseModel):
    """One prior chat turn."""

    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Chat request payload."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    conversation_history: list[ConversationMessage] | None = Field(
        default=None, alias="conversationHistory"
    )


class AnalyzeImageRequest(BaseModel):
    """Food photo analysis payload."""

    model_config = ConfigDict(populate_by_name=True)

    image_base64: str = Field(min_length=1, alias="imageBase64")


class NutritionData(BaseModel):
    """Structured nutrition record returned to clients."""

    model_config = ConfigDict(populate_by_name=True)

    food_name: str = Field(alias="foodName")
    portion_size: float = Field(alias="portionSize")
    unit: str
    calories: float | None
    protein: float | None
    fat: float | None
    carbs: float | None

    @classmethod
    def from_estimate(cls, estimate: NutritionEstimate) -> "NutritionData":
        """Build the response model from a domain estimate."""
        return cls.model_validate(estimate.to_payload())


class RecognitionResponse(BaseModel):
    """Reply text with optional structured nutrition data."""

    model_config = ConfigDict(populate_by_name=True)

    response: str
    nutrition_data: NutritionData | None = Field(default=None, alias="nutritionData")
