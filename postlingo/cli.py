"""Command line interface for the Postlingo translator."""

from __future__ import annotations

import argparse
import logging
import pathlib
import re
import sys
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from .configuration import TranslationLimits, get_settings
from .documents import serialise_document
from .errors import (
    ErrorCategory,
    OverwriteRefusedError,
    PostlingoError,
    TranslationProviderConfigurationError,
)
from .providers import build_provider
from .translator import ContentTranslator


@dataclass
class RunSummary:
    """Report printed once a command completes."""

    input_path: pathlib.Path
    output_path: pathlib.Path
    mode: str
    unit_count: int
    request_count: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    total_cost: float
    source_language: str
    target_language: str
    provider_name: str
    model: str | None
    elapsed_seconds: float


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="postlingo",
        description=(
            "Translate blog HTML or structured editor documents while preserving "
            "their structure."
        ),
    )
    subparsers = parser.add_subparsers(dest="mode", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("input_file", help="Path to the content to translate.")
    common.add_argument(
        "-s",
        "--source-language",
        required=True,
        help="Language the content is written in.",
    )
    common.add_argument(
        "-t",
        "--target-language",
        required=True,
        help="Destination language.",
    )
    common.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the target language.",
    )
    common.add_argument(
        "-p",
        "--provider",
        help="Text generation provider identifier (default: openai).",
    )
    common.add_argument("-m", "--model", help="Model or deployment identifier.")
    common.add_argument(
        "--workers",
        type=int,
        help="Maximum concurrent requests.",
    )
    common.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress information.",
    )
    common.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )

    html_parser = subparsers.add_parser(
        "html", parents=[common], help="Translate an HTML file."
    )
    html_parser.add_argument(
        "--max-chunk-size",
        type=int,
        help="Maximum characters per translation request.",
    )
    html_parser.add_argument(
        "--max-chunks",
        type=int,
        help="Reject content splitting into more chunks than this.",
    )

    json_parser = subparsers.add_parser(
        "json", parents=[common], help="Translate a structured JSON document."
    )
    json_parser.add_argument(
        "--batch-size",
        type=int,
        help="Text items per translation request.",
    )
    return parser


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(input_path: pathlib.Path, language: str) -> pathlib.Path:
    addition = sanitise_language_for_filename(language)
    return input_path.with_name(f"{input_path.stem}_{addition}{input_path.suffix}")


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.is_file():
        raise FileNotFoundError(f"Input file not found: {input_path}")
    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input file. Refusing to overwrite the source."
        )
    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use --force."
        )


def configure_logging(level: str, *, verbose: bool, provider_debug: bool) -> None:
    if provider_debug:
        resolved = logging.DEBUG
    elif verbose:
        resolved = logging.INFO
    else:
        resolved = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run(args: argparse.Namespace) -> RunSummary:
    settings = get_settings()
    limits = TranslationLimits.from_settings(settings).with_overrides(
        max_workers=args.workers,
        max_chunk_size=getattr(args, "max_chunk_size", None),
        max_chunk_count=getattr(args, "max_chunks", None),
        batch_size=getattr(args, "batch_size", None),
    )

    input_path = pathlib.Path(args.input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(args.output).expanduser().resolve()
        if args.output
        else derive_output_path(input_path, args.target_language)
    )
    validate_paths(input_path, output_path, force_overwrite=args.force)

    provider = build_provider(
        args.provider,
        settings=settings,
        model=args.model,
        debug=bool(args.debug_provider or settings.POSTLINGO_PROVIDER_DEBUG),
    )
    translator = ContentTranslator(provider, limits=limits, model=args.model)
    content = input_path.read_text(encoding="utf-8")

    start_time = time.time()
    if args.mode == "html":
        html_result = translator.translate_html(
            content, args.source_language, args.target_language
        )
        output_text = html_result.text
        usage, cost = html_result.usage, html_result.cost
        unit_count = request_count = html_result.chunk_count
    else:
        doc_result = translator.translate_document_json(
            content, args.source_language, args.target_language
        )
        output_text = serialise_document(doc_result.document)
        usage, cost = doc_result.usage, doc_result.cost
        unit_count, request_count = doc_result.unit_count, doc_result.batch_count

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(output_text, encoding="utf-8")

    return RunSummary(
        input_path=input_path,
        output_path=output_path,
        mode=args.mode,
        unit_count=unit_count,
        request_count=request_count,
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        total_tokens=usage.total_tokens,
        total_cost=cost.total_cost,
        source_language=args.source_language,
        target_language=args.target_language,
        provider_name=args.provider or "openai",
        model=args.model or getattr(provider, "model", None),
        elapsed_seconds=time.time() - start_time,
    )


def print_summary(summary: RunSummary) -> None:
    """Output a friendly report once processing completes."""

    units = "chunks" if summary.mode == "html" else "text units"
    print("\nTranslation complete.")
    print(f"  Input file:      {summary.input_path}")
    print(f"  Output file:     {summary.output_path}")
    print(f"  Content:         {summary.unit_count} {units}")
    print(f"  Requests:        {summary.request_count}")
    print(
        f"  Provider:        {summary.provider_name}"
        + (f" ({summary.model})" if summary.model else "")
    )
    print(f"  Languages:       {summary.source_language} -> {summary.target_language}")
    print(
        f"  Tokens:          {summary.total_tokens} "
        f"({summary.input_tokens} in / {summary.output_tokens} out)"
    )
    print(f"  Estimated cost:  ${summary.total_cost:.6f}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        settings = get_settings()
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return 1
    configure_logging(
        settings.POSTLINGO_LOG_LEVEL,
        verbose=args.verbose,
        provider_debug=bool(args.debug_provider or settings.POSTLINGO_PROVIDER_DEBUG),
    )

    try:
        summary = run(args)
    except (FileNotFoundError, OSError) as exc:
        print(exc)
        return 1
    except PostlingoError as exc:
        print(exc)
        cause = getattr(exc, "cause", exc)
        categories = {exc.category, getattr(cause, "category", None)}
        return 2 if ErrorCategory.CANCELLED in categories else 1
    except KeyboardInterrupt:
        print("Translation interrupted by user.")
        return 2

    print_summary(summary)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
