from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

CHUNK_TYPES = {"equal", "insert", "delete"}
VALID_RESOLUTIONS = {"pending", "accepted", "rejected"}


@dataclass(frozen=True)
class Label:
    id: str
    name: str
    color: str
    parent_id: str | None = None


@dataclass(frozen=True)
class Annotation:
    id: str
    document_id: str
    label_id: str
    start_offset: int
    end_offset: int
    text_snapshot: str = ""
    timestamp: int = 0
    note: str | None = None

    def shifted(self, delta: int) -> Annotation:
        if delta == 0:
            return self
        return Annotation(
            id=self.id,
            document_id=self.document_id,
            label_id=self.label_id,
            start_offset=self.start_offset + delta,
            end_offset=self.end_offset + delta,
            text_snapshot=self.text_snapshot,
            timestamp=self.timestamp,
            note=self.note,
        )

    def has_valid_range(self, text_length: int | None = None) -> bool:
        if self.start_offset < 0 or self.start_offset >= self.end_offset:
            return False
        if text_length is not None and self.end_offset > text_length:
            return False
        return True


@dataclass
class DiffChunk:
    type: str  # equal|insert|delete
    lines: list[str] = field(default_factory=list)
    original_index: int = 0
    modified_index: int = 0


@dataclass(frozen=True)
class VisualChunk:
    """Read-only grouping of diff chunks for review.

    ``replace`` units point at both underlying diff indices; every other kind
    points at exactly one (``equal`` units carry ``None``).
    """

    kind: str  # equal|insert|delete|replace
    old_lines: tuple[str, ...] = ()
    new_lines: tuple[str, ...] = ()
    delete_index: int | None = None
    insert_index: int | None = None

    @property
    def indices(self) -> tuple[int, ...]:
        return tuple(index for index in (self.delete_index, self.insert_index) if index is not None)

    @property
    def lines(self) -> tuple[str, ...]:
        if self.kind == "insert":
            return self.new_lines
        return self.old_lines


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None


def label_from_dict(record: dict[str, Any]) -> Label:
    label_id = str(record.get("id", "")).strip()
    if not label_id:
        raise RuntimeError("Label record is missing `id`.")
    return Label(
        id=label_id,
        name=str(record.get("name", label_id)),
        color=str(record.get("color", "")),
        parent_id=_optional_str(record.get("parentId")),
    )


def label_to_dict(label: Label) -> dict[str, Any]:
    record: dict[str, Any] = {"id": label.id, "name": label.name, "color": label.color}
    if label.parent_id:
        record["parentId"] = label.parent_id
    return record


def annotation_from_dict(record: dict[str, Any]) -> Annotation:
    annotation_id = str(record.get("id", "")).strip()
    if not annotation_id:
        raise RuntimeError("Annotation record is missing `id`.")
    try:
        start = int(record["startOffset"])
        end = int(record["endOffset"])
    except (KeyError, TypeError, ValueError) as error:
        raise RuntimeError(f"Annotation {annotation_id} has invalid offsets: {error}") from error
    try:
        timestamp = int(record.get("timestamp", 0) or 0)
    except (TypeError, ValueError):
        timestamp = 0
    return Annotation(
        id=annotation_id,
        document_id=str(record.get("documentId", "")),
        label_id=str(record.get("labelId", "")),
        start_offset=start,
        end_offset=end,
        text_snapshot=str(record.get("textSnapshot", "")),
        timestamp=timestamp,
        note=_optional_str(record.get("note")),
    )


def annotation_to_dict(annotation: Annotation) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": annotation.id,
        "documentId": annotation.document_id,
        "labelId": annotation.label_id,
        "startOffset": annotation.start_offset,
        "endOffset": annotation.end_offset,
        "textSnapshot": annotation.text_snapshot,
        "timestamp": annotation.timestamp,
    }
    if annotation.note:
        record["note"] = annotation.note
    return record


def load_annotations(records: list[Any]) -> tuple[list[Annotation], list[str]]:
    annotations: list[Annotation] = []
    warnings: list[str] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            warnings.append(f"Annotation record #{index} must be object.")
            continue
        try:
            annotations.append(annotation_from_dict(record))
        except RuntimeError as error:
            warnings.append(str(error))
    return annotations, warnings


def load_labels(records: list[Any]) -> tuple[list[Label], list[str]]:
    labels: list[Label] = []
    warnings: list[str] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            warnings.append(f"Label record #{index} must be object.")
            continue
        try:
            labels.append(label_from_dict(record))
        except RuntimeError as error:
            warnings.append(str(error))
    return labels, warnings
