"""OpenAI Chat Completions client for food recognition."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from food_recognition.services.recognition import ChatMessage, InferenceClient


@dataclass
class OpenAIChatClient(InferenceClient):
    """Inference client backed by the OpenAI Chat Completions API."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAIChatClient":
        """Create an OpenAI chat client."""
        return cls(client=AsyncOpenAI(api_key=api_key))

    async def complete(  # noqa: PLR0913
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        """Send messages and return the first choice's text."""
        request_payload: dict[str, object] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request_payload["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**request_payload)
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
