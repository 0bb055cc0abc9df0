from __future__ import annotations

from pathlib import Path

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import DataTable, Footer, Header, Static

from .models import VisualChunk
from .review_render import build_intraline_pairs, render_line_text, status_style
from .review_session import DiffReviewSession


class RevisionReviewApp(App[int]):
    CSS = """
    Screen { layout: vertical; }
    #topbar { height: 3; border: round #3a86ff; padding: 0 1; }
    #main { height: 1fr; }
    #left { width: 40%; border: round #4cc9f0; }
    #right { width: 60%; border: round #f72585; }
    #units { height: 1fr; }
    #meta { height: 5; border: round #8338ec; padding: 0 1; }
    #lines { height: 1fr; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("a", "accept", "Accept"),
        Binding("r", "reject", "Reject"),
        Binding("A", "accept_all", "Accept All"),
        Binding("R", "reject_all", "Reject All"),
        Binding("s", "save", "Save"),
    ]

    def __init__(
        self,
        session: DiffReviewSession,
        *,
        title: str = "",
        output_path: Path | None = None,
        max_lines: int = 120,
        pairing_threshold: float = 0.20,
    ) -> None:
        super().__init__()
        self.session = session
        self.review_title = title
        self.output_path = output_path
        self.max_lines = max_lines
        self.pairing_threshold = pairing_threshold
        self.units: list[VisualChunk] = [item for item in session.visual if item.kind != "equal"]
        self.resolved_notices = 0
        self._has_unsaved_changes = False
        session.on_all_resolved = self._on_all_resolved

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="topbar")
        with Horizontal(id="main"):
            with Vertical(id="left"):
                yield DataTable(id="units", cursor_type="row")
            with Vertical(id="right"):
                yield Static("Select a change from the left.", id="meta")
                yield DataTable(id="lines", cursor_type="row", show_header=False)
        yield Footer()

    def on_mount(self) -> None:
        units = self.query_one("#units", DataTable)
        units.add_columns("#", "kind", "status", "preview")
        self.query_one("#lines", DataTable).add_columns("content")
        self._refresh_units()
        self._refresh_topbar()
        self._show_selected()
        units.focus()

    def _on_all_resolved(self) -> None:
        self.resolved_notices += 1
        self._safe_notify("All changes resolved.")

    def _safe_notify(self, message: str, *, severity: str = "information") -> None:
        try:
            self.notify(message, timeout=1.5, severity=severity)
        except Exception:  # noqa: BLE001
            pass

    def selected_unit(self) -> VisualChunk | None:
        if not self.units:
            return None
        row = self.query_one("#units", DataTable).cursor_row
        if row < 0 or row >= len(self.units):
            return None
        return self.units[row]

    def _refresh_topbar(self) -> None:
        counts = self.session.counts()
        resolved = "resolved" if self.session.is_fully_resolved() else "open"
        dirty = "save=dirty" if self._has_unsaved_changes else "save=clean"
        self.query_one("#topbar", Static).update(
            f"{self.review_title or 'Revision review'} | pending={counts['pending']} "
            f"accepted={counts['accepted']} rejected={counts['rejected']} | {resolved} | {dirty}"
        )

    def _refresh_units(self) -> None:
        table = self.query_one("#units", DataTable)
        row = table.cursor_row
        table.clear()
        for position, item in enumerate(self.units):
            status = self.session.visual_status(item)
            lines = item.new_lines or item.old_lines
            table.add_row(
                str(position),
                item.kind,
                Text(status or "-", style=status_style(status)),
                Text(lines[0] if lines else ""),
                key=str(position),
            )
        if self.units:
            table.move_cursor(row=min(max(row, 0), len(self.units) - 1))

    def _show_selected(self) -> None:
        lines_table = self.query_one("#lines", DataTable)
        lines_table.clear()
        item = self.selected_unit()
        meta = self.query_one("#meta", Static)
        if item is None:
            meta.update("No changes to review.")
            return
        status = self.session.visual_status(item)
        meta.update(f"{item.kind} | diff={','.join(str(index) for index in item.indices)} | status={status}")
        pairs = build_intraline_pairs(item.old_lines, item.new_lines, threshold=self.pairing_threshold)
        for row, line in enumerate(item.old_lines[: self.max_lines]):
            lines_table.add_row(render_line_text("delete", line, pair_text=pairs.get(("delete", row))))
        new_lines = item.new_lines
        if item.insert_index is not None:
            new_lines = self.session.override_for(item.insert_index) or item.new_lines
        for row, line in enumerate(new_lines[: self.max_lines]):
            lines_table.add_row(render_line_text("insert", line, pair_text=pairs.get(("insert", row))))

    def _after_change(self) -> None:
        self._has_unsaved_changes = True
        self._refresh_units()
        self._refresh_topbar()
        self._show_selected()

    def action_accept(self) -> None:
        item = self.selected_unit()
        if item is not None and self.session.accept_visual(item):
            self._after_change()

    def action_reject(self) -> None:
        item = self.selected_unit()
        if item is not None and self.session.reject_visual(item):
            self._after_change()

    def action_accept_all(self) -> None:
        if self.session.accept_all():
            self._after_change()

    def action_reject_all(self) -> None:
        if self.session.reject_all():
            self._after_change()

    def action_save(self) -> None:
        if self.output_path is None:
            self._safe_notify("No output path given.", severity="warning")
            return
        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self.output_path.write_text(self.session.merged_content() + "\n", encoding="utf-8")
        except OSError as error:
            self._safe_notify(f"Save failed: {error}", severity="error")
            return
        self._has_unsaved_changes = False
        self._refresh_topbar()
        self._safe_notify(f"Saved: {self.output_path}")

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table.id == "units":
            self._show_selected()


def launch_review_app(
    session: DiffReviewSession,
    *,
    title: str,
    output_path: Path | None,
    max_lines: int,
    pairing_threshold: float,
) -> int:
    app = RevisionReviewApp(
        session,
        title=title,
        output_path=output_path,
        max_lines=max_lines,
        pairing_threshold=pairing_threshold,
    )
    app.run()
    return 0
