"""
Adapters for inference backends.

Protocol defines WHAT, implementations define HOW.
"""

from .base import ContentGenerator
from .ollama import OllamaContentGenerator, OllamaError

__all__ = ["ContentGenerator", "OllamaContentGenerator", "OllamaError"]
