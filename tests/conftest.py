"""Shared test fixtures for ollama-bridge tests."""

import json

import pytest


# ─────────────────────────────────────────────────────────────────────
# MOCK DATA
# ─────────────────────────────────────────────────────────────────────

MOCK_BASE_URL = "http://ollama.test:11434"
MOCK_GENERATE_URL = f"{MOCK_BASE_URL}/api/generate"
MOCK_TAGS_URL = f"{MOCK_BASE_URL}/api/tags"
MOCK_EMBEDDINGS_URL = f"{MOCK_BASE_URL}/api/embeddings"

MOCK_MODEL_1 = "llama3.1:latest"
MOCK_MODEL_2 = "phi4-mini:latest"

MOCK_COMPLETION_RESPONSE = {
    "model": MOCK_MODEL_1,
    "created_at": "2025-07-01T10:00:00.123456789Z",
    "response": "The capital of France is Paris.",
    "done": True,
    "done_reason": "stop",
    "prompt_eval_count": 12,
    "eval_count": 8,
}

MOCK_STREAM_RECORDS = [
    {"model": MOCK_MODEL_1, "response": "", "thinking": "Let me think", "done": False},
    {"model": MOCK_MODEL_1, "response": "The", "done": False},
    {"model": MOCK_MODEL_1, "response": " capital", "done": False},
    {"model": MOCK_MODEL_1, "response": " is Paris.", "done": False},
    {
        "model": MOCK_MODEL_1,
        "response": "",
        "done": True,
        "done_reason": "stop",
        "prompt_eval_count": 12,
        "eval_count": 3,
    },
]

MOCK_TAGS_RESPONSE = {
    "models": [
        {
            "name": MOCK_MODEL_1,
            "size": 4920753328,
            "modified_at": "2025-06-30T18:21:07.123456789-07:00",
        },
        {
            "name": MOCK_MODEL_2,
            "size": 2491876774,
            "modified_at": "2025-05-02T09:00:00Z",
        },
    ]
}


def ndjson(records: list[dict]) -> bytes:
    """Encode records the way Ollama streams them: one JSON object per line."""
    return "".join(json.dumps(r) + "\n" for r in records).encode("utf-8")


# ─────────────────────────────────────────────────────────────────────
# TEST DOUBLES
# ─────────────────────────────────────────────────────────────────────

class FakeByteSource:
    """
    In-memory response body that counts releases.

    If `error` is set it is raised when the reader asks for chunk number
    `fail_at` (0-based), after the earlier chunks have been delivered.
    """

    def __init__(self, chunks: list[bytes], error: Exception | None = None, fail_at: int | None = None):
        self.chunks = list(chunks)
        self.error = error
        self.fail_at = len(self.chunks) if fail_at is None else fail_at
        self.release_count = 0
        self.chunks_read = 0

    async def aiter_bytes(self):
        for i, chunk in enumerate(self.chunks):
            if self.error is not None and i == self.fail_at:
                raise self.error
            self.chunks_read += 1
            yield chunk
        if self.error is not None and self.fail_at >= len(self.chunks):
            raise self.error

    async def aclose(self) -> None:
        self.release_count += 1


# ─────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────

@pytest.fixture
def completion_response():
    """Return a copy of a finished non-streaming /api/generate body."""
    return dict(MOCK_COMPLETION_RESPONSE)


@pytest.fixture
def stream_body():
    """Return the mock stream as NDJSON bytes."""
    return ndjson(MOCK_STREAM_RECORDS)


@pytest.fixture
def sample_turns():
    """Return a short conversation with every fragment kind the encoder knows."""
    from ollama_bridge.schema import (
        ConversationTurn,
        FunctionCallFragment,
        FunctionResponseFragment,
        TextFragment,
    )
    return [
        ConversationTurn.from_text("system", "You are a helpful assistant."),
        ConversationTurn.from_text("user", "What is the weather in Paris?"),
        ConversationTurn(
            role="model",
            parts=[
                TextFragment(text="Let me check."),
                FunctionCallFragment(name="get_weather", args={"city": "Paris"}),
            ],
        ),
        ConversationTurn(
            role="user",
            parts=[FunctionResponseFragment(name="get_weather", response={"temp_c": 21})],
        ),
    ]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove ollama-bridge environment variables for the test."""
    for key in (
        "OLLAMA_BASE_URL",
        "OLLAMA_MODEL",
        "OLLAMA_TIMEOUT_SECONDS",
        "OLLAMA_BRIDGE_AUTH_TYPE",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch
