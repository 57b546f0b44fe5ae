import logging
from typing import List, Optional, Type, TypeVar
from openai import AsyncOpenAI
from pydantic import BaseModel

from ..interface import LLMProvider
from ...config import settings

T = TypeVar("T", bound=BaseModel)

logger = logging.getLogger(__name__)


class OpenAIAdapter(LLMProvider):
    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = settings.OPENAI_MODEL,
        max_retries: int = settings.MAX_RETRIES,
    ):
        # Retries on rate limits and 5xx are delegated to the SDK client.
        self.client = AsyncOpenAI(api_key=api_key or settings.OPENAI_API_KEY, max_retries=max_retries)
        self.model_name = model_name

    async def generate_structured_output(
        self,
        messages: List[dict],
        response_model: Type[T],
        temperature: float = settings.LLM_TEMPERATURE
    ) -> T:
        completion = await self.client.chat.completions.parse(
            model=self.model_name,
            messages=messages,
            response_format=response_model,
            temperature=temperature,
        )

        message = completion.choices[0].message
        if message.parsed is None:
            logger.warning(f"Model {self.model_name} returned no parsed output: {message.refusal}")
            raise ValueError(f"Structured output refused: {message.refusal}")
        return message.parsed
