from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from html import escape

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from .line_diff import split_lines
from .models import Label

LINE_CLASS = "transcript-line"
BREAK_CLASS = "transcript-paragraph-break"
SEGMENT_CLASS = "coded-segment"
MARGIN_CLASS = "line-codes-gutter"
NOTE_CLASS = "line-annotation-gutter"
DECORATION_CLASSES = (MARGIN_CLASS, NOTE_CLASS)

# Spellings of quote characters in text nodes, preferred first.
QUOTE_ENTITIES = (
    ('"', ("&quot;", "&#34;", "&#x22;")),
    ("'", ("&#x27;", "&#39;", "&apos;")),
)

# Text of a flattened margin summary ("{ Label") leaking into a line.
MARGIN_ARTIFACT_RE = re.compile(r"^(\s*\{\s+[^{}]+\s*)+")

logger = logging.getLogger(__name__)


@dataclass
class TextRun:
    text: str
    annotation_id: str | None = None
    label_id: str | None = None


@dataclass
class ContentLine:
    runs: list[TextRun] = field(default_factory=list)
    paragraph_break: bool = False
    # Render-only decorations; never read back from content.
    margin: list[Label] = field(default_factory=list)
    notes: list[tuple[Label, str]] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(run.text for run in self.runs)

    def append(self, text: str, annotation_id: str | None = None, label_id: str | None = None) -> None:
        if not text:
            return
        if self.runs and self.runs[-1].annotation_id == annotation_id and self.runs[-1].label_id == label_id:
            self.runs[-1].text += text
            return
        self.runs.append(TextRun(text=text, annotation_id=annotation_id, label_id=label_id))

    def split_at(self, offset: int) -> None:
        """Make sure a run boundary exists at ``offset`` (line-local)."""

        position = 0
        for index, run in enumerate(self.runs):
            end = position + len(run.text)
            if position < offset < end:
                cut = offset - position
                tail = TextRun(text=run.text[cut:], annotation_id=run.annotation_id, label_id=run.label_id)
                run.text = run.text[:cut]
                self.runs.insert(index + 1, tail)
                return
            position = end

    def runs_between(self, start: int, end: int) -> list[TextRun]:
        selected: list[TextRun] = []
        position = 0
        for run in self.runs:
            run_end = position + len(run.text)
            if position >= start and run_end <= end and run.text:
                selected.append(run)
            position = run_end
        return selected

    def normalize(self) -> None:
        merged: list[TextRun] = []
        for run in self.runs:
            if not run.text:
                continue
            if merged and merged[-1].annotation_id == run.annotation_id and merged[-1].label_id == run.label_id:
                merged[-1].text += run.text
                continue
            merged.append(run)
        self.runs = merged


@dataclass
class ContentDocument:
    blocks: list[ContentLine] = field(default_factory=list)
    structured: bool = True
    # Entity spelling of quote characters in the source text, e.g. {'"': "&quot;"}.
    quote_entities: dict[str, str] = field(default_factory=dict)

    @property
    def lines(self) -> list[ContentLine]:
        return [block for block in self.blocks if not block.paragraph_break]

    def plain_lines(self) -> list[str]:
        return [line.text for line in self.lines]

    def plain_text(self) -> str:
        return "".join(self.plain_lines())

    def line_spans(self) -> list[tuple[ContentLine, int, int]]:
        spans: list[tuple[ContentLine, int, int]] = []
        offset = 0
        for line in self.lines:
            length = len(line.text)
            spans.append((line, offset, offset + length))
            offset += length
        return spans

    def clear_annotations(self, predicate=None) -> None:
        for line in self.lines:
            for run in line.runs:
                if run.annotation_id is None:
                    continue
                if predicate is None or predicate(run):
                    run.annotation_id = None
                    run.label_id = None
            line.normalize()


def _has_class(tag: Tag, name: str) -> bool:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return name in classes


def is_compressed_content(content: str) -> bool:
    stripped = content.strip()
    return stripped.startswith('["') and stripped.endswith('"]')


def hydrate_content(content: str) -> str:
    """Expand a JSON array of line inner-HTML strings into line blocks."""

    if not is_compressed_content(content):
        return content
    try:
        lines = json.loads(content)
    except json.JSONDecodeError as error:
        logger.warning("Failed to hydrate compressed content: %s", error)
        return content
    if not isinstance(lines, list):
        return content
    return "".join(
        f'<div class="{LINE_CLASS}" data-line="{index + 1}">{line}</div>' for index, line in enumerate(lines)
    )


def is_structured_content(content: str) -> bool:
    if not content:
        return False
    if is_compressed_content(content):
        return True
    return LINE_CLASS in content


def _collect_runs(node: Tag, line: ContentLine, annotation_id: str | None, label_id: str | None) -> None:
    for child in node.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, NavigableString):
            line.append(str(child), annotation_id, label_id)
            continue
        if not isinstance(child, Tag):
            continue
        if any(_has_class(child, name) for name in DECORATION_CLASSES):
            continue
        if _has_class(child, SEGMENT_CLASS):
            child_annotation = child.get("data-selection-id") or annotation_id
            child_label = child.get("data-code-id") or label_id
            _collect_runs(child, line, child_annotation, child_label)
            continue
        _collect_runs(child, line, annotation_id, label_id)


def _is_block(tag: Tag) -> bool:
    return _has_class(tag, LINE_CLASS) or _has_class(tag, BREAK_CLASS)


def parse_content(content: str) -> ContentDocument:
    """Read transcript content into a line/run arena.

    Decorations are discarded; coded-segment markers become run annotations.
    Content without line blocks is split on newlines.
    """

    if not content:
        return ContentDocument(blocks=[], structured=False)
    source = hydrate_content(content)
    soup = BeautifulSoup(source, "html.parser")
    for name in DECORATION_CLASSES:
        for tag in soup.find_all(class_=name):
            tag.decompose()

    block_tags = [
        tag
        for tag in soup.find_all(_is_block)
        if not any(isinstance(parent, Tag) and _has_class(parent, LINE_CLASS) for parent in tag.parents)
    ]
    if not block_tags:
        text = soup.get_text()
        return ContentDocument(
            blocks=[ContentLine(runs=[TextRun(text=line)] if line else []) for line in split_lines(text)],
            structured=False,
        )

    blocks: list[ContentLine] = []
    for tag in block_tags:
        if _has_class(tag, BREAK_CLASS) and not _has_class(tag, LINE_CLASS):
            blocks.append(ContentLine(paragraph_break=True))
            continue
        line = ContentLine()
        _collect_runs(tag, line, None, None)
        blocks.append(line)
    return ContentDocument(blocks=blocks, structured=True, quote_entities=_quote_entities(source))


def _quote_entities(source: str) -> dict[str, str]:
    found: dict[str, str] = {}
    for char, spellings in QUOTE_ENTITIES:
        for spelling in spellings:
            if spelling in source:
                found[char] = spelling
                break
    return found


def escape_text(text: str, quote_entities: Mapping[str, str] | None = None) -> str:
    """Escape a text node; quotes stay literal unless the source spelled them as entities."""

    escaped = escape(text, quote=False)
    for char, spelling in (quote_entities or {}).items():
        escaped = escaped.replace(char, spelling)
    return escaped


def _segment_attrs(run: TextRun, labels: Mapping[str, Label]) -> str:
    attrs = [
        f'class="{SEGMENT_CLASS}"',
        f'data-code-id="{escape(run.label_id or "", quote=True)}"',
        f'data-selection-id="{escape(run.annotation_id or "", quote=True)}"',
    ]
    label = labels.get(run.label_id or "")
    if label is not None:
        attrs.append(f'title="{escape(label.name, quote=True)}"')
        if label.color:
            color = escape(label.color, quote=True)
            attrs.append(
                f'style="text-decoration: underline; text-decoration-color: {color}; background-color: {color}40"'
            )
    return " ".join(attrs)


def _render_margin(labels: list[Label]) -> str:
    markers = "".join(
        f'<div class="gutter-marker" style="color:{escape(label.color, quote=True)}">'
        f'<span class="bracket">{{</span> <span class="label">{escape(label.name)}</span></div>'
        for label in labels
    )
    return f'<div class="{MARGIN_CLASS}" contenteditable="false">{markers}</div>'


def _render_notes(notes: list[tuple[Label, str]]) -> str:
    bubbles = "".join(
        f'<div class="annotation-bubble" style="border-left-color:{escape(label.color, quote=True)}">'
        f'<span class="annotation-code-label" style="color:{escape(label.color, quote=True)}">{escape(label.name)}</span>'
        f'<span class="annotation-text">{escape(note)}</span></div>'
        for label, note in notes
    )
    return f'<div class="{NOTE_CLASS}" contenteditable="false">{bubbles}</div>'


def render_content(
    document: ContentDocument,
    *,
    labels: Mapping[str, Label] | None = None,
    annotations: bool = True,
    decorations: bool = False,
) -> str:
    label_map = labels or {}
    parts: list[str] = []
    line_number = 1
    for block in document.blocks:
        if block.paragraph_break:
            parts.append(f'<div class="{BREAK_CLASS}" aria-hidden="true"></div>')
            continue
        inner: list[str] = []
        if decorations and block.margin:
            inner.append(_render_margin(block.margin))
        for run in block.runs:
            text = escape_text(run.text, document.quote_entities)
            if annotations and run.annotation_id is not None:
                inner.append(f"<span {_segment_attrs(run, label_map)}>{text}</span>")
            else:
                inner.append(text)
        if decorations and block.notes:
            inner.append(_render_notes(block.notes))
        parts.append(f'<div class="{LINE_CLASS}" data-line="{line_number}">{"".join(inner)}</div>')
        line_number += 1
    return "".join(parts)


def render_lines(lines: Iterable[str]) -> str:
    return render_content(ContentDocument(blocks=[ContentLine(runs=[TextRun(text=line)] if line else []) for line in lines]))


def parse_plain_text(raw_text: str) -> str:
    """Import raw text: trimmed non-blank lines, one paragraph break per blank run."""

    blocks: list[ContentLine] = []
    last_was_blank = False
    for raw in split_lines(raw_text):
        trimmed = raw.strip()
        if not trimmed:
            if not last_was_blank and blocks:
                blocks.append(ContentLine(paragraph_break=True))
            last_was_blank = True
            continue
        last_was_blank = False
        blocks.append(ContentLine(runs=[TextRun(text=trimmed)]))
    # Same entities as the transcript importer, which escapes double quotes only.
    return render_content(ContentDocument(blocks=blocks, quote_entities={'"': "&quot;"}))


def compress_content(content: str) -> str:
    if is_compressed_content(content):
        return content
    if not content:
        return "[]"
    document = parse_content(content)
    if not document.structured:
        return json.dumps(split_lines(content), ensure_ascii=False)
    inner: list[str] = []
    for line in document.lines:
        rendered = render_content(ContentDocument(blocks=[line], quote_entities=document.quote_entities))
        start = rendered.index(">") + 1
        inner.append(rendered[start : -len("</div>")])
    return json.dumps(inner, ensure_ascii=False)
