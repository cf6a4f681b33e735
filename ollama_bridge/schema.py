"""
Data models shared by the prompt encoder, the response normalizer and the
content generator.

Three groups:
- Conversation input (ConversationTurn and its content fragments)
- Ollama wire records (RawInferenceEvent) and the normalized events built from them
- The provider-SDK response shape (GenerateContentResponse) handed to callers
"""

import json
import math
import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    NonNegativeInt,
    Tag,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# ─────────────────────────────────────────────────────────────────────
# CONVERSATION INPUT
# ─────────────────────────────────────────────────────────────────────

class TextFragment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    text: str


class FunctionCallFragment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["function_call"] = "function_call"
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResponseFragment(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["function_response"] = "function_response"
    name: Optional[str] = None
    response: Any = None


class UnknownFragment(BaseModel):
    """Any fragment kind this adapter cannot render (images, code results...)."""
    model_config = ConfigDict(frozen=True, extra="allow")

    kind: str = "unknown"


def _fragment_tag(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("kind")
    else:
        kind = getattr(value, "kind", None)
    if kind in ("text", "function_call", "function_response"):
        return kind
    return "unknown"


ContentFragment = Annotated[
    Union[
        Annotated[TextFragment, Tag("text")],
        Annotated[FunctionCallFragment, Tag("function_call")],
        Annotated[FunctionResponseFragment, Tag("function_response")],
        Annotated[UnknownFragment, Tag("unknown")],
    ],
    Discriminator(_fragment_tag),
]


class ConversationTurn(BaseModel):
    """One message in a conversation, immutable once built."""
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "model"]
    parts: tuple[ContentFragment, ...] = ()

    @classmethod
    def from_text(cls, role: str, text: str) -> "ConversationTurn":
        return cls(role=role, parts=(TextFragment(text=text),))


class GenerateContentRequest(BaseModel):
    """Input to OllamaContentGenerator.generate_content / generate_content_stream."""
    model: str
    contents: list[ConversationTurn] = Field(default_factory=list)
    temperature: Optional[float] = None
    top_p: Optional[float] = None


# ─────────────────────────────────────────────────────────────────────
# OLLAMA WIRE RECORDS
# ─────────────────────────────────────────────────────────────────────

class RawInferenceEvent(BaseModel):
    """
    One JSON record from /api/generate, streaming or not.

    Every field is optional on the wire. Defaults: text "", flag False,
    counters 0. Values of the wrong type fall back to those defaults instead
    of failing validation, so a single odd field never drops a record.
    """
    model_config = ConfigDict(extra="ignore")

    response: str = ""
    done: bool = False
    prompt_eval_count: int = 0
    eval_count: int = 0
    model: Optional[str] = None
    done_reason: Optional[str] = None
    thinking: Optional[str] = None

    @field_validator("response", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("done", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)

    @field_validator("prompt_eval_count", "eval_count", mode="before")
    @classmethod
    def _count_or_zero(cls, value: Any) -> int:
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        try:
            count = int(value)
        except (TypeError, ValueError):
            return 0
        return max(count, 0)

    @field_validator("model", "done_reason", "thinking", mode="before")
    @classmethod
    def _str_or_none(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @classmethod
    def parse_line(cls, line: str) -> Optional["RawInferenceEvent"]:
        """Parse one NDJSON line. Returns None unless it holds a JSON object."""
        try:
            data = json.loads(line)
        except (ValueError, RecursionError):
            return None
        if not isinstance(data, dict):
            return None
        return cls.model_validate(data)

    @property
    def carries_content(self) -> bool:
        """True if the record has text to show or signals completion."""
        return bool(self.response) or self.done


# ─────────────────────────────────────────────────────────────────────
# PROVIDER RESPONSE SHAPE
# ─────────────────────────────────────────────────────────────────────

class _SDKModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FinishReason(str, Enum):
    FINISH_REASON_UNSPECIFIED = "FINISH_REASON_UNSPECIFIED"
    STOP = "STOP"


class Part(_SDKModel):
    text: str = ""


class Content(_SDKModel):
    role: str = "model"
    parts: list[Part] = Field(default_factory=list)


class Candidate(_SDKModel):
    content: Content
    finish_reason: Optional[FinishReason] = None


class UsageMetadata(_SDKModel):
    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0


class GenerateContentResponse(_SDKModel):
    candidates: list[Candidate] = Field(default_factory=list)
    usage_metadata: Optional[UsageMetadata] = None
    function_calls: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def text(self) -> str:
        """Concatenated text of the first candidate."""
        if not self.candidates:
            return ""
        return "".join(p.text for p in self.candidates[0].content.parts)


class CountTokensResponse(_SDKModel):
    total_tokens: int


# ─────────────────────────────────────────────────────────────────────
# NORMALIZED EVENTS
# ─────────────────────────────────────────────────────────────────────

class UsageCounters(BaseModel):
    """Token accounting for one finished generation."""
    model_config = ConfigDict(frozen=True)

    prompt_tokens: NonNegativeInt = 0
    completion_tokens: NonNegativeInt = 0
    total_tokens: NonNegativeInt = 0

    @model_validator(mode="after")
    def _total_is_sum(self) -> "UsageCounters":
        if self.total_tokens != self.prompt_tokens + self.completion_tokens:
            raise ValueError(
                f"total_tokens ({self.total_tokens}) must equal prompt_tokens + "
                f"completion_tokens ({self.prompt_tokens} + {self.completion_tokens})"
            )
        return self

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int) -> "UsageCounters":
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )


class NormalizedGenerationEvent(BaseModel):
    """Uniform output of the normalizer, independent of streaming mode."""
    model_config = ConfigDict(frozen=True)

    text: str = ""
    is_final: bool = False
    usage: Optional[UsageCounters] = None

    def to_response(self) -> GenerateContentResponse:
        """Render as the provider SDK's single-candidate response."""
        usage_metadata = None
        if self.usage is not None:
            usage_metadata = UsageMetadata(
                prompt_token_count=self.usage.prompt_tokens,
                candidates_token_count=self.usage.completion_tokens,
                total_token_count=self.usage.total_tokens,
            )
        return GenerateContentResponse(
            candidates=[
                Candidate(
                    content=Content(role="model", parts=[Part(text=self.text)]),
                    finish_reason=FinishReason.STOP if self.is_final else None,
                )
            ],
            usage_metadata=usage_metadata,
        )


# ─────────────────────────────────────────────────────────────────────
# MODEL CATALOG
# ─────────────────────────────────────────────────────────────────────

class ModelTag(BaseModel):
    """One installed model as reported by /api/tags."""
    model_config = ConfigDict(extra="ignore")

    name: str
    size: Optional[int] = None  # bytes
    modified_at: Optional[datetime] = None

    @field_validator("modified_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Optional[datetime]:
        # Ollama reports nanosecond fractions; datetime holds microseconds
        if isinstance(value, datetime) or value is None:
            return value
        if not isinstance(value, str):
            return None
        text = re.sub(r"(\.\d{6})\d+", r"\1", value.strip())
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None

    @property
    def size_gb(self) -> Optional[float]:
        if not self.size:
            return None
        return self.size / 1024 / 1024 / 1024
