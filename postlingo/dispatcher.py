"""Concurrent fan-out of translation units with ordered fan-in."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

from .errors import InputTooLargeError, TranslationCancelled, UnitTranslationError
from .structures import DispatchOutcome, TokenUsage, TranslationResult, UnitResult

logger = logging.getLogger(__name__)

U = TypeVar("U")
R = TypeVar("R")


class CancellationToken:
    """Cooperative cancellation flag with an optional deadline."""

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = (
            time.monotonic() + timeout if timeout is not None else None
        )

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when there is none."""

        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TranslationCancelled("Translation was cancelled.")
        if self.cancelled:
            raise TranslationCancelled("Translation deadline exceeded.")


TranslateOne = Callable[[U, Optional[CancellationToken]], UnitResult[R]]


class Dispatcher(Generic[U, R]):
    """Runs one translation call per unit on a bounded worker pool.

    Every unit owns a pre-allocated result slot, so workers never share
    mutable state. The dispatcher always waits for all submitted units,
    then reports the first failure in unit order together with the token
    usage of everything that did complete.
    """

    def __init__(
        self,
        *,
        max_workers: int = 8,
        max_units: int | None = None,
        unit_label: str = "unit",
    ) -> None:
        self.max_workers = max(1, max_workers)
        self.max_units = max_units
        self.unit_label = unit_label

    def check_unit_count(self, count: int) -> None:
        if self.max_units is not None and count > self.max_units:
            raise InputTooLargeError(
                f"Content too long: {count} {self.unit_label}s exceed the "
                f"limit of {self.max_units}.",
                unit_count=count,
                limit=self.max_units,
            )

    def dispatch(
        self,
        units: Sequence[U],
        translate_one: TranslateOne,
        *,
        cancellation: CancellationToken | None = None,
    ) -> DispatchOutcome[R]:
        self.check_unit_count(len(units))
        if not units:
            return DispatchOutcome(results=[], usage=TokenUsage())

        slots: List[TranslationResult[R]] = [
            TranslationResult() for _ in units
        ]

        def run(position: int, unit: U) -> None:
            slot = slots[position]
            try:
                if cancellation is not None:
                    cancellation.raise_if_cancelled()
                result = translate_one(unit, cancellation)
            except Exception as exc:
                slot.error = exc
                usage = getattr(exc, "usage", None)
                if isinstance(usage, TokenUsage):
                    slot.usage = usage
                logger.warning(
                    "%s %d translation failed: %s", self.unit_label, position, exc
                )
                return
            slot.value = result.value
            slot.usage = result.usage
            logger.debug(
                "%s %d done (%d tokens)",
                self.unit_label,
                position,
                result.usage.total_tokens,
            )

        workers = min(self.max_workers, len(units))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="postlingo"
        ) as executor:
            futures = [
                executor.submit(run, position, unit)
                for position, unit in enumerate(units)
            ]
            wait(futures)

        usage = TokenUsage.sum([slot.usage for slot in slots])
        for position, slot in enumerate(slots):
            if slot.error is not None:
                raise UnitTranslationError(
                    position, slot.error, usage=usage, label=self.unit_label
                ) from slot.error

        logger.info(
            "Dispatched %d %ss using %d tokens",
            len(units),
            self.unit_label,
            usage.total_tokens,
        )
        return DispatchOutcome(
            results=[slot.value for slot in slots],  # type: ignore[misc]
            usage=usage,
        )
