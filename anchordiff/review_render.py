from __future__ import annotations

from diff_match_patch import diff_match_patch
from rapidfuzz import fuzz
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import VisualChunk
from .review_session import DiffReviewSession


def status_style(status: str | None) -> str:
    if status == "accepted":
        return "green"
    if status == "rejected":
        return "red"
    if status == "pending":
        return "yellow"
    return "dim"


def line_similarity(left: str, right: str) -> float:
    if not left and not right:
        return 1.0
    return float(fuzz.ratio(left, right)) / 100.0


def build_intraline_pairs(
    old_lines: tuple[str, ...] | list[str],
    new_lines: tuple[str, ...] | list[str],
    *,
    threshold: float = 0.20,
) -> dict[tuple[str, int], str]:
    """Pair old and new lines of a replace unit by similarity, best first.

    Keys are ``("delete", row)`` / ``("insert", row)``; the value is the text
    of the paired line on the other side.  Pairs below ``threshold`` stay
    unpaired.
    """

    candidates: list[tuple[float, int, int]] = []
    for old_row, old_text in enumerate(old_lines):
        for new_row, new_text in enumerate(new_lines):
            candidates.append((line_similarity(old_text, new_text), old_row, new_row))
    candidates.sort(key=lambda item: item[0], reverse=True)

    pairs: dict[tuple[str, int], str] = {}
    used_old: set[int] = set()
    used_new: set[int] = set()
    for score, old_row, new_row in candidates:
        if old_row in used_old or new_row in used_new:
            continue
        if score < threshold:
            continue
        pairs[("delete", old_row)] = new_lines[new_row]
        pairs[("insert", new_row)] = old_lines[old_row]
        used_old.add(old_row)
        used_new.add(new_row)
    return pairs


def render_line_text(kind: str, text: str, *, pair_text: str | None = None) -> Text:
    prefix = {"equal": "  ", "insert": "+ ", "delete": "- "}.get(kind, "? ")
    base_style = {"equal": "#c7d4e8", "insert": "bold #c4f8d1", "delete": "bold #ffd3d7"}.get(kind, "#c7d4e8")
    rendered = Text(prefix + text, style=base_style)
    if kind not in {"insert", "delete"} or pair_text is None:
        return rendered

    old_text = pair_text if kind == "insert" else text
    new_text = text if kind == "insert" else pair_text
    engine = diff_match_patch()
    engine.Diff_Timeout = 0
    diffs = engine.diff_main(old_text, new_text, False)
    engine.diff_cleanupSemantic(diffs)
    offset = len(prefix)
    old_pos = 0
    new_pos = 0
    for op, segment in diffs:
        length = len(segment)
        if op == 0:
            old_pos += length
            new_pos += length
        elif op < 0:
            if kind == "delete":
                rendered.stylize("bold #300008 on #ff93a0", offset + old_pos, offset + old_pos + length)
            old_pos += length
        else:
            if kind == "insert":
                rendered.stylize("bold #01150a on #69d28f", offset + new_pos, offset + new_pos + length)
            new_pos += length
    return rendered


def _preview(lines: tuple[str, ...], width: int = 60) -> str:
    if not lines:
        return ""
    first = lines[0]
    if len(first) > width:
        first = first[: width - 3] + "..."
    if len(lines) > 1:
        return f"{first} (+{len(lines) - 1} line(s))"
    return first


def render_review_summary(console: Console, session: DiffReviewSession, title: str) -> None:
    counts = session.counts()
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Title", Text(title or "-"))
    table.add_row("Original lines", str(len(session.original_lines)))
    table.add_row("Modified lines", str(len(session.modified_lines)))
    table.add_row("Diff chunks", str(len(session.chunks)))
    table.add_row("Review units", str(sum(1 for item in session.visual if item.kind != "equal")))
    table.add_row("Pending", str(counts["pending"]))
    table.add_row("Accepted", str(counts["accepted"]))
    table.add_row("Rejected", str(counts["rejected"]))
    table.add_row("Resolved", "yes" if session.is_fully_resolved() else "no")
    console.print(Panel(table, title="Revision Review", border_style="blue"))


def render_visual_chunks(console: Console, session: DiffReviewSession) -> None:
    table = Table(title=f"Review units ({len(session.visual)})", header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("kind", no_wrap=True)
    table.add_column("status", no_wrap=True)
    table.add_column("diff", no_wrap=True)
    table.add_column("old", overflow="ellipsis")
    table.add_column("new", overflow="ellipsis")
    for position, item in enumerate(session.visual):
        status = session.visual_status(item)
        table.add_row(
            str(position),
            item.kind,
            Text(status or "-", style=status_style(status)),
            ",".join(str(index) for index in item.indices) or "-",
            Text(_preview(item.old_lines) if item.kind != "insert" else ""),
            Text(_preview(item.new_lines) if item.kind not in {"delete", "equal"} else ""),
        )
    console.print(table)


def render_visual_detail(
    console: Console,
    session: DiffReviewSession,
    item: VisualChunk,
    *,
    max_lines: int = 120,
    pairing_threshold: float = 0.20,
) -> None:
    status = session.visual_status(item)
    table = Table(title=f"{item.kind} ({status or '-'})", header_style="bold magenta", show_header=False)
    table.add_column("content")
    if item.kind == "equal":
        for line in item.old_lines[:max_lines]:
            table.add_row(render_line_text("equal", line))
        console.print(table)
        return

    pairs = build_intraline_pairs(item.old_lines, item.new_lines, threshold=pairing_threshold)
    for row, line in enumerate(item.old_lines[:max_lines]):
        table.add_row(render_line_text("delete", line, pair_text=pairs.get(("delete", row))))
    new_lines = item.new_lines
    if item.insert_index is not None:
        new_lines = session.override_for(item.insert_index) or item.new_lines
    for row, line in enumerate(new_lines[:max_lines]):
        table.add_row(render_line_text("insert", line, pair_text=pairs.get(("insert", row))))
    hidden = max(len(item.old_lines), len(new_lines)) - max_lines
    if hidden > 0:
        table.add_row(Text(f"... {hidden} more lines", style="italic #9db0c8"))
    console.print(table)


def render_warnings(console: Console, warnings: list[str]) -> None:
    for warning in warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")
