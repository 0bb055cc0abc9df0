from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .content import (
    DECORATION_CLASSES,
    SEGMENT_CLASS,
    ContentDocument,
    is_structured_content,
    parse_content,
    render_content,
)
from .models import Annotation, Label

logger = logging.getLogger(__name__)


class AnchorError(RuntimeError):
    pass


def strip(content: str) -> str:
    """Remove annotation markers and decorations, keeping bare line markup.

    Content without markers or decorations is returned unchanged.
    """

    if not is_structured_content(content) or not has_markup(content):
        return content
    document = parse_content(content)
    return render_content(document, annotations=False)


def has_markup(content: str) -> bool:
    return any(name in content for name in (SEGMENT_CLASS, *DECORATION_CLASSES))


def plain_lines(content: str) -> list[str]:
    return parse_content(content).plain_lines()


def plain_text(content: str) -> str:
    return parse_content(content).plain_text()


def _apply_annotation(document: ContentDocument, annotation: Annotation) -> None:
    text_length = sum(len(line.text) for line in document.lines)
    if not annotation.has_valid_range(text_length):
        raise AnchorError(
            f"Annotation {annotation.id} has malformed range "
            f"[{annotation.start_offset},{annotation.end_offset}) for text length {text_length}."
        )

    # Plan every segment first so a conflict leaves the document untouched.
    segments: list[tuple[Any, int, int]] = []
    for line, line_start, line_end in document.line_spans():
        if line_end <= annotation.start_offset or line_start >= annotation.end_offset:
            continue
        local_start = max(annotation.start_offset, line_start) - line_start
        local_end = min(annotation.end_offset, line_end) - line_start
        if local_start == local_end:
            continue
        position = 0
        for run in line.runs:
            run_end = position + len(run.text)
            overlaps = position < local_end and run_end > local_start
            if overlaps and run.annotation_id is not None and run.annotation_id != annotation.id:
                raise AnchorError(f"Annotation {annotation.id} overlaps annotation {run.annotation_id}.")
            position = run_end
        segments.append((line, local_start, local_end))

    for line, local_start, local_end in segments:
        line.split_at(local_end)
        line.split_at(local_start)
        for run in line.runs_between(local_start, local_end):
            run.annotation_id = annotation.id
            run.label_id = annotation.label_id
        line.normalize()


def restore_with_warnings(
    plain_content: str,
    annotations: Iterable[Annotation],
    labels: Iterable[Label],
) -> tuple[str, list[str]]:
    annotation_list = list(annotations)
    if not annotation_list:
        return plain_content, []

    label_map = {label.id: label for label in labels}
    document = parse_content(plain_content)
    warnings: list[str] = []
    for annotation in annotation_list:
        if annotation.label_id not in label_map:
            warnings.append(f"Skipped annotation {annotation.id}: label not found: {annotation.label_id}")
            continue
        try:
            _apply_annotation(document, annotation)
        except AnchorError as error:
            warnings.append(f"Skipped annotation {annotation.id}: {error}")
    for warning in warnings:
        logger.debug(warning)
    return render_content(document, labels=label_map), warnings


def restore(plain_content: str, annotations: Iterable[Annotation], labels: Iterable[Label]) -> str:
    """Wrap each annotation's offset range in a coded-segment marker.

    Ranges crossing line boundaries are wrapped once per line. Annotations
    with a missing label, a malformed range, or an overlap with an already
    restored annotation are skipped individually.
    """

    content, _warnings = restore_with_warnings(plain_content, annotations, labels)
    return content


def remove_label_markers(content: str, label_id: str, labels: Iterable[Label] = ()) -> str:
    document = parse_content(content)
    document.clear_annotations(lambda run: run.label_id == label_id)
    return render_content(document, labels={label.id: label for label in labels})


def annotation_runs(content: str) -> list[dict[str, Any]]:
    """Read marker positions back as ``{annotationId, labelId, startOffset, endOffset}``."""

    found: dict[str, dict[str, Any]] = {}
    for line, line_start, _line_end in parse_content(content).line_spans():
        position = line_start
        for run in line.runs:
            run_end = position + len(run.text)
            if run.annotation_id is not None:
                entry = found.get(run.annotation_id)
                if entry is None:
                    found[run.annotation_id] = {
                        "annotationId": run.annotation_id,
                        "labelId": run.label_id,
                        "startOffset": position,
                        "endOffset": run_end,
                    }
                else:
                    entry["startOffset"] = min(entry["startOffset"], position)
                    entry["endOffset"] = max(entry["endOffset"], run_end)
            position = run_end
    return sorted(found.values(), key=lambda item: (item["startOffset"], item["endOffset"], item["annotationId"]))


def decorate(annotated_content: str, annotations: Iterable[Annotation], labels: Iterable[Label]) -> str:
    """Add margin summaries and note bubbles to annotated content.

    Each line lists the labels of the annotations it contains; a note bubble
    appears only on the first line of its annotation.
    """

    label_map = {label.id: label for label in labels}
    annotation_map = {annotation.id: annotation for annotation in annotations}
    document = parse_content(annotated_content)
    noted: set[str] = set()
    for line in document.lines:
        seen: list[str] = []
        for run in line.runs:
            if run.annotation_id is not None and run.annotation_id not in seen:
                seen.append(run.annotation_id)
        line_notes: list[str] = []
        for annotation_id in seen:
            annotation = annotation_map.get(annotation_id)
            label = label_map.get(annotation.label_id if annotation is not None else "")
            if annotation is None or label is None:
                continue
            line.margin.append(label)
            if annotation.note and annotation.id not in noted and annotation.note not in line_notes:
                line.notes.append((label, annotation.note))
                line_notes.append(annotation.note)
                noted.add(annotation.id)
    return render_content(document, labels=label_map, decorations=True)
