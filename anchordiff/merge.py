from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from .models import DiffChunk


def merge_lines(
    chunks: Sequence[DiffChunk],
    accepted_indices: Iterable[int],
    overrides: Mapping[int, Sequence[str]] | None = None,
) -> list[str]:
    accepted = set(accepted_indices)
    overrides = overrides or {}
    lines: list[str] = []
    for index, chunk in enumerate(chunks):
        if chunk.type == "equal":
            lines.extend(chunk.lines)
        elif chunk.type == "insert":
            if index in accepted:
                lines.extend(overrides[index] if index in overrides else chunk.lines)
        elif chunk.type == "delete":
            # Accepting a deletion confirms the removal.
            if index not in accepted:
                lines.extend(chunk.lines)
    return lines


def merge_diff(
    chunks: Sequence[DiffChunk],
    accepted_indices: Iterable[int],
    overrides: Mapping[int, Sequence[str]] | None = None,
) -> str:
    """Rebuild text from diff chunks and the set of accepted chunk indices.

    ``overrides`` maps an insert chunk index to replacement lines that are
    emitted instead of the chunk's own lines when that chunk is accepted.
    """

    return "\n".join(merge_lines(chunks, accepted_indices, overrides))
