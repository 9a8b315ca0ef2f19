"""High-level orchestration for HTML and structured document translation."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .configuration import TranslationLimits
from .costs import CostEstimate, estimate_cost, estimate_cost_for_usage
from .dispatcher import CancellationToken, Dispatcher
from .documents import (
    DEFAULT_KEY_POLICY,
    KeyPolicy,
    collect_text_units,
    parse_document,
    patch_document,
    serialise_document,
)
from .errors import BatchMismatchError
from .prompts import (
    TEXT_UNIT_SYSTEM_INSTRUCTION,
    TEXT_UNIT_TRANSLATION_SCHEMA,
    build_html_prompts,
    build_text_unit_prompt,
)
from .providers import TextGenerationProvider
from .segmenter import BatchBuilder, Segmenter
from .structures import (
    Batch,
    GenerationRequest,
    TextUnit,
    TokenUsage,
    TranslatedTextUnit,
    UnitResult,
)

logger = logging.getLogger(__name__)


@dataclass
class HtmlTranslation:
    """Report returned after translating HTML content."""

    text: str
    usage: TokenUsage
    chunk_count: int
    cost: CostEstimate

    @property
    def tokens_used(self) -> int:
        return self.usage.total_tokens


@dataclass
class DocumentTranslation:
    """Report returned after translating a structured document."""

    document: Any
    usage: TokenUsage
    unit_count: int
    batch_count: int
    cost: CostEstimate
    units: List[TranslatedTextUnit] = field(default_factory=list)

    @property
    def tokens_used(self) -> int:
        return self.usage.total_tokens

    def to_json(self) -> str:
        return serialise_document(self.document)


def _reattach_whitespace(original: str, translated: str) -> str:
    """Give the translation the same leading/trailing whitespace as the original."""

    core = original.strip()
    if not core:
        return original
    leading = original[: original.index(core)]
    trailing = original[len(leading) + len(core) :]
    return leading + translated.strip() + trailing


def parse_batch_response(
    batch: Batch,
    content: str,
    usage: TokenUsage | None = None,
) -> Dict[int, str]:
    """Validate a structured batch answer and map item index to translation."""

    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise BatchMismatchError(
            f"Batch {batch.batch_id} returned invalid JSON: {exc}", usage=usage
        ) from exc

    items = payload.get("items") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise BatchMismatchError(
            f"Batch {batch.batch_id} response malformed: missing items list.",
            usage=usage,
        )
    if len(items) != len(batch.units):
        raise BatchMismatchError(
            f"Translation count mismatch: got {len(items)}, "
            f"expected {len(batch.units)}",
            usage=usage,
        )

    mapping: Dict[int, str] = {}
    for item in items:
        if not isinstance(item, dict):
            raise BatchMismatchError(
                f"Batch {batch.batch_id} response malformed: expected objects.",
                usage=usage,
            )
        index = item.get("index")
        translated = item.get("translated")
        if isinstance(index, bool) or not isinstance(index, int):
            raise BatchMismatchError(
                f"Batch {batch.batch_id} response malformed: item without index.",
                usage=usage,
            )
        if not isinstance(translated, str):
            raise BatchMismatchError(
                f"Batch {batch.batch_id} response malformed: "
                f"item {index} has no translation.",
                usage=usage,
            )
        mapping[index] = translated

    expected = {unit.index for unit in batch.units}
    if set(mapping) != expected:
        missing = sorted(expected - set(mapping))
        unexpected = sorted(set(mapping) - expected)
        raise BatchMismatchError(
            f"Translation index mismatch in batch {batch.batch_id}: "
            f"missing {missing}, unexpected {unexpected}",
            usage=usage,
        )
    return mapping


class ContentTranslator:
    """Coordinates segmentation, concurrent translation, and reassembly."""

    def __init__(
        self,
        provider: TextGenerationProvider,
        *,
        limits: TranslationLimits | None = None,
        policy: KeyPolicy = DEFAULT_KEY_POLICY,
        model: str | None = None,
    ) -> None:
        self.provider = provider
        self.limits = limits if limits is not None else TranslationLimits()
        self.policy = policy
        self.model = model

    def _cancellation(
        self, cancellation: CancellationToken | None
    ) -> CancellationToken | None:
        if cancellation is not None:
            return cancellation
        if self.limits.request_timeout is not None:
            return CancellationToken(timeout=self.limits.request_timeout)
        return None

    # HTML

    def translate_html(
        self,
        html: str,
        source_language: str,
        target_language: str,
        *,
        max_chunk_size: int | None = None,
        max_chunk_count: int | None = None,
        cancellation: CancellationToken | None = None,
    ) -> HtmlTranslation:
        limits = self.limits.with_overrides(
            max_chunk_size=max_chunk_size, max_chunk_count=max_chunk_count
        )
        chunks = Segmenter(limits.max_chunk_size).segment(html)
        logger.info(
            "Translating HTML (%d chars) %s -> %s in %d chunks",
            len(html),
            source_language,
            target_language,
            len(chunks),
        )

        dispatcher: Dispatcher[str, str] = Dispatcher(
            max_workers=limits.max_workers,
            max_units=limits.max_chunk_count,
            unit_label="chunk",
        )

        def translate_chunk(
            chunk: str, token: CancellationToken | None
        ) -> UnitResult[str]:
            if not chunk.strip():
                # Nothing to translate; blank chunks pass through as-is.
                return UnitResult(value=chunk)
            system_instruction, user_prompt = build_html_prompts(
                chunk, source_language, target_language
            )
            response = self.provider.generate(
                GenerationRequest(
                    system_instruction=system_instruction,
                    user_prompt=user_prompt,
                    temperature=limits.temperature,
                    model=self.model,
                ),
                cancellation=token,
            )
            return UnitResult(value=response.text, usage=response.usage)

        outcome = dispatcher.dispatch(
            chunks, translate_chunk, cancellation=self._cancellation(cancellation)
        )
        return HtmlTranslation(
            text="".join(outcome.results),
            usage=outcome.usage,
            chunk_count=len(chunks),
            cost=estimate_cost(outcome.usage.total_tokens, limits.rates),
        )

    # Structured documents

    def translate_document(
        self,
        document: Any,
        source_language: str,
        target_language: str,
        *,
        batch_size: int | None = None,
        cancellation: CancellationToken | None = None,
    ) -> DocumentTranslation:
        """Translate a parsed JSON-like document; the input is left untouched."""

        limits = self.limits.with_overrides(batch_size=batch_size)
        units = collect_text_units(document, policy=self.policy)
        if not units:
            return DocumentTranslation(
                document=copy.deepcopy(document),
                usage=TokenUsage(),
                unit_count=0,
                batch_count=0,
                cost=estimate_cost_for_usage(TokenUsage(), self.limits.rates),
            )

        batches = BatchBuilder(limits.batch_size).build(units)
        logger.info(
            "Translating %d text units %s -> %s in %d batches",
            len(units),
            source_language,
            target_language,
            len(batches),
        )

        dispatcher: Dispatcher[Batch, List[TranslatedTextUnit]] = Dispatcher(
            max_workers=self.limits.max_workers,
            max_units=self.limits.max_batch_count,
            unit_label="batch",
        )

        def translate_batch(
            batch: Batch, token: CancellationToken | None
        ) -> UnitResult[List[TranslatedTextUnit]]:
            return self._translate_batch(
                batch, source_language, target_language, token
            )

        outcome = dispatcher.dispatch(
            batches, translate_batch, cancellation=self._cancellation(cancellation)
        )

        translated_units = [unit for batch in outcome.results for unit in batch]
        translated_document = copy.deepcopy(document)
        patch_document(
            translated_document,
            [(unit.path, unit.translated) for unit in translated_units],
        )
        return DocumentTranslation(
            document=translated_document,
            usage=outcome.usage,
            unit_count=len(units),
            batch_count=len(batches),
            cost=estimate_cost_for_usage(outcome.usage, self.limits.rates),
            units=translated_units,
        )

    def translate_document_json(
        self,
        content: str,
        source_language: str,
        target_language: str,
        **kwargs: Any,
    ) -> DocumentTranslation:
        """Translate a document given as JSON text."""

        return self.translate_document(
            parse_document(content), source_language, target_language, **kwargs
        )

    def _translate_batch(
        self,
        batch: Batch,
        source_language: str,
        target_language: str,
        cancellation: Optional[CancellationToken],
    ) -> UnitResult[List[TranslatedTextUnit]]:
        response = self.provider.generate(
            GenerationRequest(
                system_instruction=TEXT_UNIT_SYSTEM_INSTRUCTION,
                user_prompt=build_text_unit_prompt(
                    batch.units, source_language, target_language
                ),
                response_schema=TEXT_UNIT_TRANSLATION_SCHEMA,
                temperature=self.limits.temperature,
                model=self.model,
            ),
            cancellation=cancellation,
        )
        mapping = parse_batch_response(batch, response.text.strip(), response.usage)
        return UnitResult(
            value=_merge_batch(batch.units, mapping),
            usage=response.usage,
        )


def _merge_batch(
    units: Sequence[TextUnit],
    mapping: Dict[int, str],
) -> List[TranslatedTextUnit]:
    return [
        TranslatedTextUnit.from_unit(
            unit, _reattach_whitespace(unit.original, mapping[unit.index])
        )
        for unit in units
    ]
