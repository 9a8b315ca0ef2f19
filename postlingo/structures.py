"""Core data structures for the Postlingo translation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")

Path = Tuple[str, ...]


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by the text generation service."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def sum(cls, usages: "List[Optional[TokenUsage]]") -> "TokenUsage":
        total = cls()
        for usage in usages:
            if usage is not None:
                total = total + usage
        return total


@dataclass(frozen=True)
class TextUnit:
    """A translatable leaf string addressed by its path in a document."""

    index: int
    path: Path
    original: str


@dataclass(frozen=True)
class TranslatedTextUnit:
    """A text unit together with its translation."""

    index: int
    path: Path
    original: str
    translated: str

    @classmethod
    def from_unit(cls, unit: TextUnit, translated: str) -> "TranslatedTextUnit":
        return cls(
            index=unit.index,
            path=unit.path,
            original=unit.original,
            translated=translated,
        )


@dataclass
class Batch:
    """A fixed-size group of text units translated by one service call."""

    batch_id: int
    units: List[TextUnit]


@dataclass
class UnitResult(Generic[T]):
    """What a single dispatched unit produced."""

    value: T
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class TranslationResult(Generic[T]):
    """Slot content for one unit after the dispatcher has joined."""

    value: Optional[T] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    error: Optional[BaseException] = None


@dataclass
class DispatchOutcome(Generic[T]):
    """Ordered results of a successful dispatch plus aggregated usage."""

    results: List[T]
    usage: TokenUsage


@dataclass
class GenerationResponse:
    """Generated text and token usage returned by a provider."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    raw: Any = None


@dataclass(frozen=True)
class ResponseSchema:
    """A named JSON schema the service must follow when answering."""

    name: str
    schema: dict
    description: str = ""
    strict: bool = True


@dataclass
class GenerationRequest:
    """One call to the text generation service."""

    system_instruction: str
    user_prompt: str
    response_schema: Optional[ResponseSchema] = None
    temperature: float = 0.1
    model: Optional[str] = None
