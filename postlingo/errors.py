"""Error definitions for the Postlingo translation engine."""

from __future__ import annotations

from enum import Enum, auto
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .structures import TokenUsage


class ErrorCategory(Enum):
    """Categorises runtime errors so callers can map them to responses."""

    ARGUMENT = auto()
    CONFIGURATION = auto()
    FORMAT = auto()
    PRECONDITION = auto()
    TRANSLATION = auto()
    REINSERTION = auto()
    NETWORK = auto()
    CANCELLED = auto()
    OTHER = auto()


class PostlingoError(Exception):
    """Base exception for all custom errors."""

    category = ErrorCategory.OTHER


class OverwriteRefusedError(PostlingoError):
    """Raised when attempting to overwrite an output without consent."""

    category = ErrorCategory.ARGUMENT


class DocumentFormatError(PostlingoError):
    """Raised when a structured document cannot be parsed or serialised."""

    category = ErrorCategory.FORMAT


class TranslationProviderConfigurationError(PostlingoError):
    """Raised when the translation provider is misconfigured."""

    category = ErrorCategory.CONFIGURATION


class TranslationProviderError(PostlingoError):
    """Raised when the text generation service fails or answers nothing usable."""

    category = ErrorCategory.NETWORK


class TranslationCancelled(PostlingoError):
    """Raised when a unit is skipped because the run was cancelled."""

    category = ErrorCategory.CANCELLED


class InputTooLargeError(PostlingoError):
    """Raised before dispatch when a request splits into too many units."""

    category = ErrorCategory.PRECONDITION

    def __init__(self, message: str, *, unit_count: int, limit: int) -> None:
        super().__init__(message)
        self.unit_count = unit_count
        self.limit = limit


class BatchMismatchError(PostlingoError):
    """Raised when a structured batch response does not match its request."""

    category = ErrorCategory.TRANSLATION

    def __init__(
        self,
        message: str,
        *,
        usage: Optional["TokenUsage"] = None,
    ) -> None:
        super().__init__(message)
        # Tokens were spent even though the answer is unusable.
        self.usage = usage


class UnitTranslationError(PostlingoError):
    """Raised when one dispatched unit fails; fails the whole request."""

    category = ErrorCategory.TRANSLATION

    def __init__(
        self,
        ordinal: int,
        cause: BaseException,
        *,
        usage: "TokenUsage",
        label: str = "unit",
    ) -> None:
        super().__init__(f"{label} {ordinal} translation failed: {cause}")
        self.ordinal = ordinal
        self.cause = cause
        self.usage = usage
        self.label = label


class PatchError(PostlingoError):
    """Raised when a translation cannot be written back at its path."""

    category = ErrorCategory.REINSERTION

    def __init__(self, message: str, *, path: Sequence[str]) -> None:
        super().__init__(f"{message} (path: {format_path(path)})")
        self.path = tuple(path)


def format_path(path: Sequence[str]) -> str:
    """Render a document path the way it appears in error messages."""

    if not path:
        return "<root>"
    return "/".join(str(segment) for segment in path)
