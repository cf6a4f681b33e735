"""
ContentGenerator Protocol - the contract the agent CLI codes against.

This is the WHAT (interface), not the HOW (implementation).
See ollama.py for the local-inference implementation.
"""

from typing import Any, Optional, Protocol, runtime_checkable

from ollama_bridge.normalizer import GenerationStream
from ollama_bridge.schema import (
    ConversationTurn,
    CountTokensResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    ModelTag,
)


@runtime_checkable
class ContentGenerator(Protocol):
    """
    Contract for inference backends.

    Responses come back in the provider SDK's shape (GenerateContentResponse)
    so callers do not care which backend produced them.
    """

    async def generate_content(self, request: GenerateContentRequest) -> GenerateContentResponse:
        """Run one generation to completion."""
        ...

    async def generate_content_stream(self, request: GenerateContentRequest) -> GenerationStream:
        """
        Start a streaming generation.

        Raises on a failed request before any event is produced. The returned
        stream must be consumed or closed by the caller.
        """
        ...

    async def count_tokens(self, request: GenerateContentRequest) -> CountTokensResponse:
        ...

    async def embed_content(
        self,
        contents: list[ConversationTurn],
        model: Optional[str] = None,
    ) -> list[float]:
        ...

    async def generate_json(
        self,
        contents: list[ConversationTurn],
        schema: dict[str, Any],
        model: Optional[str] = None,
    ) -> dict[str, Any]:
        ...

    async def get_available_models(self) -> list[ModelTag]:
        ...
