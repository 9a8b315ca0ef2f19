"""Prompt builders and response schemas for translation requests.

Every builder is a pure function of its arguments so prompts can be
snapshot-tested without a live service.
"""

from __future__ import annotations

import json
from typing import Sequence, Tuple

from .structures import ResponseSchema, TextUnit

TEXT_UNIT_SYSTEM_INSTRUCTION = (
    "You are a professional translator that preserves the exact meaning, "
    "formatting and whitespace positions of every text item."
)


def build_html_prompts(
    chunk: str,
    source_language: str,
    target_language: str,
) -> Tuple[str, str]:
    """Return the (system instruction, user prompt) pair for one HTML chunk."""

    system_instruction = (
        f"You are a professional {source_language}-to-{target_language} translator "
        "specialised in blog posts with complex HTML structures.\n\n"
        "Translate the HTML content you receive while preserving its exact structure.\n\n"
        "Rules:\n"
        "1. Translate every human-readable text node, however small.\n"
        "2. Never omit, merge or remove HTML elements, including embedded "
        "components, carousels and interactive widgets.\n"
        "3. Keep all tags, attributes, class names and data attributes exactly as "
        "they are.\n"
        "4. Do not modify URLs, file paths, image sources or technical attributes.\n"
        "5. Translate button texts, labels and alt texts.\n"
        f"6. The translation must read naturally in {target_language}.\n"
        "7. The content may be a fragment of a larger document: do not close "
        "tags that are open or open tags that are closed elsewhere."
    )
    user_prompt = (
        f"Translate the following blog post HTML content from {source_language} "
        f"to {target_language}.\n"
        "Preserve the HTML structure completely and translate only the text content.\n"
        "Return the translated HTML as plain text, without markdown or code blocks.\n\n"
        "HTML Content:\n"
        f"{chunk}"
    )
    return system_instruction, user_prompt


def text_unit_payload(units: Sequence[TextUnit]) -> dict:
    """Describe a batch of text units the way the model receives them."""

    items = []
    for unit in units:
        items.append(
            {
                "index": unit.index,
                "path": list(unit.path),
                "original": unit.original.strip(),
                "startsWithSpace": unit.original[:1].isspace(),
                "endsWithSpace": unit.original[-1:].isspace(),
            }
        )
    return {"items": items}


def build_text_unit_prompt(
    units: Sequence[TextUnit],
    source_language: str,
    target_language: str,
) -> str:
    """Return the user prompt asking for a batch of text units."""

    input_json = json.dumps(text_unit_payload(units), ensure_ascii=False, indent=2)
    return (
        "You are a professional translator. You must preserve the exact meaning, "
        "style, and formatting of the text.\n\n"
        'Below is a JSON object with an "items" array. Each item has "index", '
        '"path", "original", "startsWithSpace", and "endsWithSpace" fields.\n'
        f'Translate the "original" field of each item from {source_language} '
        f"to {target_language}.\n"
        'Return the same JSON object, adding a "translated" field to each item.\n\n'
        "Rules:\n"
        "1. Do not change the order or any other fields.\n"
        "2. Do not add, remove, merge, or split any items.\n"
        "3. Do not add or remove spaces around HTML tags or links.\n"
        "4. Preserve line breaks, bullet points, and headings.\n"
        "5. Keep HTML tags and links intact.\n"
        "6. Return only the JSON object, without any explanation.\n\n"
        f"Input:\n{input_json}\n\nOutput:"
    )


TEXT_UNIT_TRANSLATION_SCHEMA = ResponseSchema(
    name="TextItemTranslation",
    description=(
        "Translation of text items with index, path, original and translated text."
    ),
    schema={
        "type": "object",
        "properties": {
            "items": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "index": {
                            "type": "integer",
                            "description": "Index of the text item in the request",
                        },
                        "path": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Path to the text item in the document",
                        },
                        "original": {
                            "type": "string",
                            "description": "Original text to be translated",
                        },
                        "translated": {
                            "type": "string",
                            "description": "Translated text",
                        },
                    },
                    "required": ["index", "path", "original", "translated"],
                    "additionalProperties": False,
                },
            },
        },
        "required": ["items"],
        "additionalProperties": False,
    },
    strict=True,
)
