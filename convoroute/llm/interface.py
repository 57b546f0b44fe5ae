from abc import ABC, abstractmethod
from typing import List, Type, TypeVar

from pydantic import BaseModel

# Generic type variable for the Pydantic model expected in structured responses.
T = TypeVar("T", bound=BaseModel)


class LLMProvider(ABC):
    """
    Abstract Base Class interface for the AI provider collaborator
    (OpenAI, Anthropic, a local model, a test fake...).

    Retries and model fallback are the provider's own business; the routing
    core only consumes the parsed structured output.
    """

    @abstractmethod
    async def generate_structured_output(
        self,
        messages: List[dict],
        response_model: Type[T],
        temperature: float = 0.0
    ) -> T:
        """
        Generates a response strictly matching the Pydantic 'response_model'.

        Args:
            messages: Chat messages as {"role": ..., "content": ...} dicts.
            response_model: The schema the output must be parsed into.
            temperature: Sampling temperature.
        """
        pass
