"""
OllamaContentGenerator - ContentGenerator backed by a local Ollama server.

Conversations are flattened with the prompt encoder and sent to
/api/generate; responses are normalized and rendered in the provider SDK's
response shape.
"""

import json
import logging
import math
import re
from typing import Any, Optional, cast

import httpx
from pydantic import ValidationError

from ollama_bridge.config import (
    CHARS_PER_TOKEN,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_JSON_MODEL,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
    get_default_model,
    get_ollama_base_url,
    get_timeout_seconds,
)
from ollama_bridge.normalizer import GenerationStream, normalize_once
from ollama_bridge.prompt import encode
from ollama_bridge.schema import (
    ConversationTurn,
    CountTokensResponse,
    GenerateContentRequest,
    GenerateContentResponse,
    ModelTag,
)

logger = logging.getLogger(__name__)


class OllamaError(Exception):
    """
    Human-readable error from the Ollama API.

    status_code and reason are set when the server answered with a
    non-success status; both are None for connection failures.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason

    @classmethod
    def from_response(cls, response: httpx.Response) -> "OllamaError":
        message = f"Ollama API error: {response.status_code} {response.reason_phrase}"
        detail = parse_ollama_error(response)
        if detail:
            message = f"{message}: {detail}"
        return cls(message, status_code=response.status_code, reason=response.reason_phrase)


def parse_ollama_error(response: httpx.Response) -> str:
    """Extract the server's error text. Ollama returns {"error": "..."}."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict):
            return str(error.get("message", ""))
    return ""


def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """
    Recover a JSON object from model output.

    Handles bare JSON, JSON wrapped in a markdown code block, and JSON
    surrounded by prose (first '{' to last '}').
    """
    match = re.search(r"```(?:json)?\s*({.*?})\s*```", text, re.DOTALL)
    if match:
        text = match.group(1)

    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(text[start:end + 1])
        except (ValueError, RecursionError):
            return None
    if not isinstance(data, dict):
        return None
    return cast(dict[str, Any], data)


class OllamaContentGenerator:
    """
    Ollama implementation of the ContentGenerator protocol.

    Holds one httpx.AsyncClient for its lifetime (created lazily unless one
    is injected). Use as an async context manager or call aclose().
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or get_ollama_base_url()).rstrip("/")
        self._timeout = timeout_seconds if timeout_seconds is not None else get_timeout_seconds()
        self._client = client
        self._owns_client = client is None

    # ─────────────────────────────────────────────────────────────────
    # HTTP plumbing
    # ─────────────────────────────────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request_json(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        url = self._url(path)
        logger.debug("%s %s", method, url)
        try:
            response = await self._get_client().request(method, url, json=payload)
        except httpx.HTTPError as e:
            raise OllamaError(f"Ollama request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise OllamaError.from_response(response)

        try:
            data = response.json()
        except ValueError as e:
            raise OllamaError(f"Ollama returned a non-JSON body from {path}") from e
        if not isinstance(data, dict):
            raise OllamaError(f"Ollama returned an unexpected body from {path}")
        return data

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "OllamaContentGenerator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ─────────────────────────────────────────────────────────────────
    # Generation
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _generate_payload(request: GenerateContentRequest, stream: bool) -> dict[str, Any]:
        return {
            "model": request.model,
            "prompt": encode(request.contents),
            "stream": stream,
            "options": {
                "temperature": request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE,
                "top_p": request.top_p if request.top_p is not None else DEFAULT_TOP_P,
            },
        }

    async def generate_content(self, request: GenerateContentRequest) -> GenerateContentResponse:
        """Run a non-streaming generation and return it in the SDK shape."""
        payload = self._generate_payload(request, stream=False)
        result = await self._request_json("POST", "/api/generate", payload)
        return normalize_once(result).to_response()

    async def generate_content_stream(self, request: GenerateContentRequest) -> GenerationStream:
        """
        Start a streaming generation.

        Raises:
            OllamaError: if the request fails or the server answers with a
                non-success status. Raised here, before any event exists.

        Returns:
            A GenerationStream that owns the open response. Iterate it to the
            end, or close it (aclose() / async with) to release the connection.
        """
        payload = self._generate_payload(request, stream=True)
        client = self._get_client()
        url = self._url("/api/generate")
        logger.debug("POST %s (stream) model=%s", url, request.model)

        try:
            response = await client.send(client.build_request("POST", url, json=payload), stream=True)
        except httpx.HTTPError as e:
            raise OllamaError(f"Ollama request to {url} failed: {e}") from e

        if response.status_code >= 400:
            try:
                await response.aread()
            finally:
                await response.aclose()
            raise OllamaError.from_response(response)

        return GenerationStream(response)

    async def count_tokens(self, request: GenerateContentRequest) -> CountTokensResponse:
        """Estimate prompt tokens (~4 characters per token). No HTTP call."""
        prompt = encode(request.contents)
        return CountTokensResponse(total_tokens=math.ceil(len(prompt) / CHARS_PER_TOKEN))

    async def embed_content(
        self,
        contents: list[ConversationTurn],
        model: Optional[str] = None,
    ) -> list[float]:
        """Embed the encoded conversation via /api/embeddings."""
        payload = {
            "model": model or DEFAULT_EMBEDDING_MODEL,
            "prompt": encode(contents),
        }
        result = await self._request_json("POST", "/api/embeddings", payload)
        embedding = result.get("embedding")
        if not isinstance(embedding, list):
            raise OllamaError("Ollama embedding response has no 'embedding' field")
        return [float(v) for v in embedding]

    async def generate_json(
        self,
        contents: list[ConversationTurn],
        schema: dict[str, Any],
        model: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Generate a JSON object matching `schema`.

        Asks for Ollama's JSON format first. Models that reject the format
        constraint (HTTP 400) are retried once without it; the answer is then
        recovered from free text.

        Raises:
            OllamaError: on request failure or if no JSON object can be parsed
        """
        prompt = encode(contents)
        json_prompt = f"{prompt}\n\nPlease respond with valid JSON that matches this schema: {json.dumps(schema)}"
        payload: dict[str, Any] = {
            "model": model or get_default_model() or DEFAULT_JSON_MODEL,
            "prompt": json_prompt,
            "stream": False,
            "format": "json",
        }

        try:
            result = await self._request_json("POST", "/api/generate", payload)
        except OllamaError as e:
            if e.status_code != 400:
                raise
            logger.warning("JSON format rejected for %s, retrying without it", payload["model"])
            payload.pop("format")
            result = await self._request_json("POST", "/api/generate", payload)

        text = normalize_once(result).text
        parsed = extract_json_object(text)
        if parsed is None:
            raise OllamaError(f"Failed to parse JSON from Ollama response: {text[:200]}")
        return parsed

    # ─────────────────────────────────────────────────────────────────
    # Discovery
    # ─────────────────────────────────────────────────────────────────

    async def get_available_models(self) -> list[ModelTag]:
        """Return installed models from /api/tags."""
        data = await self._request_json("GET", "/api/tags")
        models = []
        for entry in data.get("models") or []:
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                continue
            try:
                models.append(ModelTag.model_validate(entry))
            except ValidationError as e:
                logger.debug("Skipping malformed model entry %r: %s", entry.get("name"), e)
        return models
