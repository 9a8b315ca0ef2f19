"""Structured document extraction and reinsertion utilities."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Sequence, Tuple

from .errors import DocumentFormatError, PatchError
from .structures import Path, TextUnit

DEFAULT_TRANSLATABLE_KEYS = frozenset(
    {"text", "caption", "alt", "title", "label", "description"}
)

DEFAULT_PROTECTED_KEYS = frozenset(
    {
        # Editor node technical fields
        "type", "marks", "level", "class", "rel", "target", "href",
        # Media and style attributes
        "src", "imageUrl", "postUrl", "userProfileImage", "url", "link",
        "objectFit", "size", "alignment", "textAlign", "width", "height",
        "style", "className", "id", "name",
        # Dates and times
        "timestamp", "date", "time", "datetime", "publishedAt", "createdAt",
        "updatedAt",
        # Counters and numeric fields
        "likesCount", "commentsCount", "viewsCount", "sharesCount", "count",
        "index", "order", "length", "position", "duration", "weight",
        # Identity
        "username", "userId", "uuid", "email",
        # Location
        "location", "coordinates", "latitude", "longitude",
        # Enumerations and flags
        "status", "language", "code", "color", "enabled", "visible",
        "selected", "default",
    }
)


@dataclass(frozen=True)
class KeyPolicy:
    """Decides which map keys hold translatable text and which are off limits."""

    translatable_keys: frozenset[str] = DEFAULT_TRANSLATABLE_KEYS
    protected_keys: frozenset[str] = DEFAULT_PROTECTED_KEYS

    def is_protected(self, key: str) -> bool:
        return key in self.protected_keys

    def is_translatable(self, key: str) -> bool:
        return key in self.translatable_keys and key not in self.protected_keys

    def extend(
        self,
        *,
        translatable: Iterable[str] = (),
        protected: Iterable[str] = (),
    ) -> "KeyPolicy":
        """Return a new policy with additional keys on either list."""

        return KeyPolicy(
            translatable_keys=self.translatable_keys | frozenset(translatable),
            protected_keys=self.protected_keys | frozenset(protected),
        )


DEFAULT_KEY_POLICY = KeyPolicy()


def collect_text_units(
    node: Any,
    path: Sequence[str] = (),
    *,
    policy: KeyPolicy = DEFAULT_KEY_POLICY,
) -> List[TextUnit]:
    """Enumerate translatable leaf strings depth-first, in document order."""

    units: List[TextUnit] = []
    _collect(node, tuple(path), policy, units)
    return units


def _collect(node: Any, path: Path, policy: KeyPolicy, units: List[TextUnit]) -> None:
    if isinstance(node, dict):
        for key, value in node.items():
            if (
                policy.is_translatable(key)
                and isinstance(value, str)
                and value.strip()
            ):
                units.append(
                    TextUnit(index=len(units), path=path + (key,), original=value)
                )
            elif not policy.is_protected(key):
                _collect(value, path + (key,), policy, units)
    elif isinstance(node, list):
        for position, value in enumerate(node):
            _collect(value, path + (str(position),), policy, units)


def _array_index(container: list, segment: str, path: Sequence[str]) -> int:
    try:
        position = int(segment)
    except (TypeError, ValueError) as exc:
        raise PatchError(f"Invalid array index '{segment}'", path=path) from exc
    # Only canonical decimal indices ("3", never "+3" or "03") address a slot.
    if str(position) != segment or position < 0 or position >= len(container):
        raise PatchError(f"Invalid array index '{segment}'", path=path)
    return position


def _step(current: Any, segment: str, path: Sequence[str], depth: int) -> Any:
    prefix = tuple(path[: depth + 1])
    if isinstance(current, dict):
        if segment not in current:
            raise PatchError(f"Key not found: '{segment}'", path=prefix)
        return current[segment]
    if isinstance(current, list):
        return current[_array_index(current, segment, prefix)]
    raise PatchError(
        f"Unexpected {type(current).__name__} where a map or array was expected",
        path=prefix,
    )


def resolve_path(document: Any, path: Sequence[str]) -> Any:
    """Read the value stored at path using the patcher's addressing rules."""

    current = document
    for depth, segment in enumerate(path):
        current = _step(current, segment, path, depth)
    return current


def set_value_at_path(document: Any, path: Sequence[str], value: str) -> None:
    """Overwrite the value at path in place."""

    if not path:
        raise PatchError("Empty path", path=path)

    parent = resolve_path(document, path[:-1])
    last = path[-1]
    if isinstance(parent, dict):
        parent[last] = value
    elif isinstance(parent, list):
        parent[_array_index(parent, last, path)] = value
    else:
        raise PatchError(
            f"Unexpected {type(parent).__name__} where a map or array was expected",
            path=path,
        )


def patch_document(
    document: Any,
    translations: Iterable[Tuple[Sequence[str], str]],
) -> None:
    """Write every (path, text) pair into the document, stopping at the first failure."""

    for path, text in translations:
        set_value_at_path(document, path, text)


def parse_document(content: str) -> Any:
    """Parse JSON document text."""

    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise DocumentFormatError(f"Document is not valid JSON: {exc}") from exc


def serialise_document(document: Any) -> str:
    """Serialise a document the way translated documents are returned."""

    try:
        return json.dumps(document, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as exc:
        raise DocumentFormatError(f"Document could not be serialised: {exc}") from exc
