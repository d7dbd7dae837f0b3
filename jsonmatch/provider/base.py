from __future__ import annotations

from typing import Any, Callable, Dict, List, Literal, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .telemetry import LLMTelemetry

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class CompletionOptions(BaseModel):
    """Request options shared by every adapter.

    ``extra`` carries provider-specific keyword arguments; adapters pass it
    through verbatim.
    """

    model_config = ConfigDict(frozen=True)

    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    json_mode: bool = False
    extra: Dict[str, Any] = Field(default_factory=dict)


class CompletionResult(BaseModel):
    """Normalized provider answer: a single text payload plus bookkeeping."""

    content: Optional[str]
    provider: str
    model: str
    warnings: List[str] = Field(default_factory=list)
    telemetry: Optional[LLMTelemetry] = None


@runtime_checkable
class CompletionAdapter(Protocol):
    """One provider family's mapping of the uniform request onto its transport."""

    provider: str

    def create_completion(
        self,
        *,
        messages: Sequence[ChatMessage],
        model: str,
        options: CompletionOptions,
    ) -> CompletionResult:  # pragma: no cover - Protocol stub
        ...


AdapterFactory = Callable[..., CompletionAdapter]


def coerce_messages(messages: Sequence[ChatMessage | Dict[str, Any]]) -> List[ChatMessage]:
    """Accept ChatMessage instances or plain ``{"role", "content"}`` dicts."""

    return [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages]


__all__ = [
    "AdapterFactory",
    "ChatMessage",
    "CompletionAdapter",
    "CompletionOptions",
    "CompletionResult",
    "Role",
    "coerce_messages",
]
