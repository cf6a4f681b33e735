"""ollama-bridge: run a provider-SDK-shaped agent CLI against a local Ollama server."""

from ollama_bridge.adapters.ollama import OllamaContentGenerator, OllamaError
from ollama_bridge.normalizer import GenerationStream, StreamReadError, normalize_once
from ollama_bridge.prompt import encode

__all__ = [
    "GenerationStream",
    "OllamaContentGenerator",
    "OllamaError",
    "StreamReadError",
    "encode",
    "normalize_once",
]
