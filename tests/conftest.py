"""Shared fixtures: a scripted text generation provider with no network access."""

from __future__ import annotations

import json
import re
import threading
from typing import Callable, List, Optional

import pytest

from postlingo.providers import TextGenerationProvider
from postlingo.structures import GenerationRequest, GenerationResponse, TokenUsage

INPUT_BLOCK = re.compile(r"Input:\n(?P<json>.*)\n\nOutput:", re.DOTALL)
HTML_BLOCK = re.compile(r"HTML Content:\n(?P<html>.*)\Z", re.DOTALL)


def batch_items(request: GenerationRequest) -> list[dict]:
    """Recover the items a structured request asked to translate."""

    match = INPUT_BLOCK.search(request.user_prompt)
    assert match, "structured prompt has no input block"
    return json.loads(match.group("json"))["items"]


def html_chunk(request: GenerationRequest) -> str:
    match = HTML_BLOCK.search(request.user_prompt)
    assert match, "HTML prompt has no content block"
    return match.group("html")


class ScriptedProvider(TextGenerationProvider):
    """Answers each request through a handler and records what it received."""

    name = "scripted"

    def __init__(
        self,
        handler: Callable[[GenerationRequest], str],
        *,
        usage: Optional[TokenUsage] = None,
    ) -> None:
        self.handler = handler
        self.usage = usage or TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15)
        self.requests: List[GenerationRequest] = []
        self._lock = threading.Lock()

    def generate(self, request, *, cancellation=None):
        with self._lock:
            self.requests.append(request)
        return GenerationResponse(text=self.handler(request), usage=self.usage)


def upper_html(request: GenerationRequest) -> str:
    return html_chunk(request).upper()


def upper_items(request: GenerationRequest) -> str:
    items = [
        {
            "index": item["index"],
            "path": item["path"],
            "original": item["original"],
            "translated": item["original"].upper(),
        }
        for item in batch_items(request)
    ]
    return json.dumps({"items": items})


@pytest.fixture
def html_provider() -> ScriptedProvider:
    return ScriptedProvider(upper_html)


@pytest.fixture
def items_provider() -> ScriptedProvider:
    return ScriptedProvider(upper_items)


@pytest.fixture
def tiptap_document() -> dict:
    return {
        "type": "doc",
        "content": [
            {
                "type": "heading",
                "attrs": {"level": 2, "textAlign": "left", "id": "intro"},
                "content": [{"type": "text", "text": "Welcome to Dubai"}],
            },
            {
                "type": "paragraph",
                "content": [
                    {"type": "text", "text": "The desert "},
                    {
                        "type": "text",
                        "marks": [{"type": "link", "attrs": {"href": "https://example.com"}}],
                        "text": "safari",
                    },
                    {"type": "text", "text": " starts at dawn."},
                ],
            },
            {
                "type": "image",
                "attrs": {
                    "src": "https://cdn.example.com/dune.jpg",
                    "alt": "Sand dunes at sunrise",
                    "title": "Dunes",
                    "width": 640,
                },
            },
            {
                "type": "instagramCarousel",
                "attrs": {
                    "cards": [
                        {
                            "imageUrl": "https://cdn.example.com/1.jpg",
                            "caption": "Camel ride",
                            "username": "guide",
                            "likesCount": 12,
                        },
                        {
                            "imageUrl": "https://cdn.example.com/2.jpg",
                            "caption": "   ",
                            "createdAt": "2024-01-01",
                        },
                    ]
                },
            },
        ],
    }
