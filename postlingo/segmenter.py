"""Markup segmentation and batching utilities."""

from __future__ import annotations

from typing import List, Sequence

from .structures import Batch, TextUnit

# Closing block containers first, then inline tags, then any tag end, then
# statement terminators.
SAFE_BOUNDARY_MARKERS: tuple[str, ...] = (
    "</div>",
    "</p>",
    "</h1>",
    "</h2>",
    "</h3>",
    "</h4>",
    "</h5>",
    "</h6>",
    "</span>",
    "</a>",
    "</li>",
    "</ul>",
    "</ol>",
    ">",
    ";",
    ".",
)

WORD_BOUNDARY_WINDOW = 50


def _last_marker_end(text: str, marker: str, max_pos: int) -> int:
    """Return the end offset of the last marker ending at or before max_pos."""

    last_end = -1
    pos = 0
    while pos < max_pos:
        index = text.find(marker, pos)
        if index == -1:
            break
        end = index + len(marker)
        if end > max_pos:
            break
        last_end = end
        pos = end
    return last_end


def find_safe_split_point(
    text: str,
    max_pos: int,
    markers: Sequence[str] = SAFE_BOUNDARY_MARKERS,
) -> int:
    """Locate an offset to cut the text without breaking its structure.

    Markers are tried in priority order; the first one that occurs at all
    inside the window wins and its last occurrence is used. When no marker
    matches, the nearest space within ``WORD_BOUNDARY_WINDOW`` characters of
    ``max_pos`` is used (the cut lands before the space). Returns ``-1`` when
    nothing safe was found.
    """

    if max_pos >= len(text):
        return len(text)

    for marker in markers:
        if not marker:
            continue
        end = _last_marker_end(text, marker, max_pos)
        if end > 0:
            return end

    lower = max_pos - WORD_BOUNDARY_WINDOW
    for index in range(max_pos, max(lower, 0), -1):
        if text[index] == " ":
            return index

    return -1


def segment_markup(
    markup: str,
    max_chunk_size: int,
    markers: Sequence[str] = SAFE_BOUNDARY_MARKERS,
) -> List[str]:
    """Split markup into ordered chunks that concatenate back to the input."""

    budget = max(1, max_chunk_size)
    if len(markup) <= budget:
        return [markup]

    chunks: List[str] = []
    remaining = markup
    while remaining:
        if len(remaining) <= budget:
            chunks.append(remaining)
            break
        split_at = find_safe_split_point(remaining, budget, markers)
        if split_at <= 0:
            # Degenerate input: no boundary in the window, cut hard.
            split_at = budget
        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:]
    return chunks


class Segmenter:
    """Turns markup into size-limited translation chunks."""

    def __init__(
        self,
        max_chunk_size: int,
        markers: Sequence[str] = SAFE_BOUNDARY_MARKERS,
    ) -> None:
        self.max_chunk_size = max(1, max_chunk_size)
        self.markers = tuple(markers)

    def segment(self, markup: str) -> List[str]:
        return segment_markup(markup, self.max_chunk_size, self.markers)


class BatchBuilder:
    """Groups text units into consecutive fixed-size batches."""

    def __init__(self, batch_size: int) -> None:
        self.batch_size = max(1, batch_size)

    def build(self, units: Sequence[TextUnit]) -> List[Batch]:
        batches: List[Batch] = []
        for batch_id, start in enumerate(
            range(0, len(units), self.batch_size), start=1
        ):
            batches.append(
                Batch(
                    batch_id=batch_id,
                    units=list(units[start : start + self.batch_size]),
                )
            )
        return batches
