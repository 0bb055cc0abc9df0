from __future__ import annotations

import logging
import re

from diff_match_patch import diff_match_patch

from .models import DiffChunk

MAX_DIFF_LINES = 2000
LINE_SPLIT_RE = re.compile(r"\r?\n")

logger = logging.getLogger(__name__)


def split_lines(text: str) -> list[str]:
    return LINE_SPLIT_RE.split(text)


def diff_is_oversized(original_lines: list[str], modified_lines: list[str], max_lines: int = MAX_DIFF_LINES) -> bool:
    return len(original_lines) > max_lines or len(modified_lines) > max_lines


def _lcs_table(old_lines: list[str], new_lines: list[str]) -> list[list[int]]:
    n = len(old_lines)
    m = len(new_lines)
    table = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(1, n + 1):
        row = table[i]
        prev = table[i - 1]
        old_line = old_lines[i - 1]
        for j in range(1, m + 1):
            if old_line == new_lines[j - 1]:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = max(row[j - 1], prev[j])
    return table


def compute_line_diff(original: str, modified: str, *, max_lines: int = MAX_DIFF_LINES) -> list[DiffChunk]:
    """Line-level LCS diff of two texts.

    Backtracking prefers ``equal`` on a match, then ``insert`` whenever
    ``C[i][j-1] >= C[i-1][j]``, so on ties an insertion is emitted after
    (i.e. below) the deletion it competes with.  Inputs above ``max_lines`` on
    either side degrade to one delete-everything chunk followed by one
    insert-everything chunk.
    """

    old_lines = split_lines(original)
    new_lines = split_lines(modified)

    if diff_is_oversized(old_lines, new_lines, max_lines):
        logger.info(
            "Line diff input exceeds %d lines (old=%d, new=%d); using coarse diff.",
            max_lines,
            len(old_lines),
            len(new_lines),
        )
        return [
            DiffChunk(type="delete", lines=list(old_lines), original_index=0, modified_index=0),
            DiffChunk(type="insert", lines=list(new_lines), original_index=len(old_lines), modified_index=0),
        ]

    table = _lcs_table(old_lines, new_lines)

    # (type, line) pairs collected in reverse order.
    steps: list[tuple[str, str]] = []
    i = len(old_lines)
    j = len(new_lines)
    while i > 0 or j > 0:
        if i > 0 and j > 0 and old_lines[i - 1] == new_lines[j - 1]:
            steps.append(("equal", old_lines[i - 1]))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or table[i][j - 1] >= table[i - 1][j]):
            steps.append(("insert", new_lines[j - 1]))
            j -= 1
        else:
            steps.append(("delete", old_lines[i - 1]))
            i -= 1
    steps.reverse()

    chunks: list[DiffChunk] = []
    old_cursor = 0
    new_cursor = 0
    for kind, line in steps:
        if chunks and chunks[-1].type == kind:
            chunks[-1].lines.append(line)
        else:
            chunks.append(DiffChunk(type=kind, lines=[line], original_index=old_cursor, modified_index=new_cursor))
        if kind in {"equal", "delete"}:
            old_cursor += 1
        if kind in {"equal", "insert"}:
            new_cursor += 1
    return chunks


def original_lines(chunks: list[DiffChunk]) -> list[str]:
    lines: list[str] = []
    for chunk in chunks:
        if chunk.type in {"equal", "delete"}:
            lines.extend(chunk.lines)
    return lines


def modified_lines(chunks: list[DiffChunk]) -> list[str]:
    lines: list[str] = []
    for chunk in chunks:
        if chunk.type in {"equal", "insert"}:
            lines.extend(chunk.lines)
    return lines


def change_indices(chunks: list[DiffChunk]) -> list[int]:
    return [index for index, chunk in enumerate(chunks) if chunk.type != "equal"]


def _patch_engine() -> diff_match_patch:
    engine = diff_match_patch()
    engine.Diff_Timeout = 0
    return engine


def create_text_patch(original: str, modified: str) -> str:
    engine = _patch_engine()
    patches = engine.patch_make(original, modified)
    return engine.patch_toText(patches)


def apply_text_patch(original: str, patch_text: str) -> tuple[str, list[str]]:
    """Apply a patch produced by :func:`create_text_patch`.

    Hunks that no longer apply are reported in the returned warnings; the
    rest of the patch is still applied.
    """

    engine = _patch_engine()
    try:
        patches = engine.patch_fromText(patch_text)
    except ValueError as error:
        raise RuntimeError(f"Invalid text patch: {error}") from error
    result, applied = engine.patch_apply(patches, original)
    warnings = [f"Patch hunk #{index + 1} did not apply." for index, ok in enumerate(applied) if not ok]
    return result, warnings
