from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from .anchor_store import plain_lines
from .models import Annotation, Label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineMeta:
    start: int
    end: int
    changed: bool


@dataclass
class ReconcileReport:
    annotations: list[Annotation]
    kept_ids: list[str] = field(default_factory=list)
    dropped_ids: list[str] = field(default_factory=list)
    shifted_ids: list[str] = field(default_factory=list)
    structural_mismatch: bool = False
    warnings: list[str] = field(default_factory=list)


def _line_meta(old_lines: list[str], new_lines: list[str]) -> tuple[list[LineMeta], list[int]]:
    metas: list[LineMeta] = []
    deltas = [0]
    offset = 0
    for old_line, new_line in zip(old_lines, new_lines):
        metas.append(LineMeta(start=offset, end=offset + len(old_line), changed=old_line != new_line))
        offset += len(old_line)
        deltas.append(deltas[-1] + (len(new_line) - len(old_line)))
    return metas, deltas


def _start_line_index(metas: list[LineMeta], offset: int) -> int:
    line_index = 0
    for index, meta in enumerate(metas):
        if offset >= meta.start:
            line_index = index
        else:
            break
    return line_index


def reconcile_with_report(
    old_content: str,
    new_content: str,
    annotations: Iterable[Annotation],
    document_id: str,
) -> ReconcileReport:
    """Prune and shift one document's annotations after an edit.

    Annotations of other documents are passed through untouched and the input
    order is preserved.  When the line count changes, every annotation of the
    document is dropped.  Otherwise an annotation survives only if it touches
    no changed line, and is shifted by the length delta of the lines before it.
    """

    all_annotations = list(annotations)
    mine = [annotation for annotation in all_annotations if annotation.document_id == document_id]
    if not mine:
        return ReconcileReport(annotations=all_annotations)

    old_lines = plain_lines(old_content)
    new_lines = plain_lines(new_content)

    if len(old_lines) != len(new_lines):
        message = (
            f"Line count changed for document {document_id} ({len(old_lines)} -> {len(new_lines)}); "
            f"dropped {len(mine)} annotation(s)."
        )
        logger.info(message)
        return ReconcileReport(
            annotations=[annotation for annotation in all_annotations if annotation.document_id != document_id],
            dropped_ids=[annotation.id for annotation in mine],
            structural_mismatch=True,
            warnings=[message],
        )

    metas, deltas = _line_meta(old_lines, new_lines)
    text_length = metas[-1].end if metas else 0

    report = ReconcileReport(annotations=[])
    for annotation in all_annotations:
        if annotation.document_id != document_id:
            report.annotations.append(annotation)
            continue
        if not annotation.has_valid_range(text_length):
            report.dropped_ids.append(annotation.id)
            report.warnings.append(
                f"Dropped annotation {annotation.id}: malformed range "
                f"[{annotation.start_offset},{annotation.end_offset}) for text length {text_length}."
            )
            continue
        touches_changed = any(
            meta.changed and annotation.start_offset < meta.end and annotation.end_offset > meta.start
            for meta in metas
        )
        if touches_changed:
            report.dropped_ids.append(annotation.id)
            continue
        delta = deltas[_start_line_index(metas, annotation.start_offset)]
        report.annotations.append(annotation.shifted(delta))
        report.kept_ids.append(annotation.id)
        if delta:
            report.shifted_ids.append(annotation.id)

    for warning in report.warnings:
        logger.debug(warning)
    return report


def reconcile(
    old_content: str,
    new_content: str,
    annotations: Iterable[Annotation],
    document_id: str,
) -> list[Annotation]:
    return reconcile_with_report(old_content, new_content, annotations, document_id).annotations


def drop_annotations_for_document(annotations: Iterable[Annotation], document_id: str) -> list[Annotation]:
    return [annotation for annotation in annotations if annotation.document_id != document_id]


def descendant_label_ids(labels: Iterable[Label], label_id: str) -> set[str]:
    children: dict[str, list[str]] = {}
    for label in labels:
        if label.parent_id:
            children.setdefault(label.parent_id, []).append(label.id)
    found: set[str] = set()
    stack = [label_id]
    while stack:
        current = stack.pop()
        if current in found:
            continue
        found.add(current)
        stack.extend(children.get(current, []))
    return found


def drop_annotations_for_label(
    annotations: Iterable[Annotation],
    label_id: str,
    *,
    labels: Iterable[Label] = (),
    include_descendants: bool = False,
) -> list[Annotation]:
    removed = descendant_label_ids(labels, label_id) if include_descendants else {label_id}
    return [annotation for annotation in annotations if annotation.label_id not in removed]
