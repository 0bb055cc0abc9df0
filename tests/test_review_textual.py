import asyncio
import tempfile
import unittest
from pathlib import Path

from textual.widgets import DataTable

from anchordiff.content import render_lines
from anchordiff.review_session import DiffReviewSession
from anchordiff.review_textual import RevisionReviewApp


def make_session() -> DiffReviewSession:
    return DiffReviewSession("a\nb\nc\nd", "a\nB\nc\nD")


class TestRevisionReviewApp(unittest.TestCase):
    def test_units_table_lists_changes(self):
        app = RevisionReviewApp(make_session(), title="Keys")

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.pause()
                table = app.query_one("#units", DataTable)
                self.assertEqual(table.row_count, 2)
                self.assertEqual(app.selected_unit(), app.units[0])

        asyncio.run(_run())

    def test_accept_and_reject_keys_resolve_units(self):
        session = make_session()
        app = RevisionReviewApp(session)

        async def _run() -> None:
            async with app.run_test() as pilot:
                await pilot.press("a")
                await pilot.press("down")
                await pilot.press("r")
                await pilot.pause()

        asyncio.run(_run())
        self.assertEqual(session.statuses(), {1: "accepted", 2: "accepted", 4: "rejected", 5: "rejected"})
        self.assertEqual(session.merged_text(), "a\nB\nc\nd")
        self.assertEqual(app.resolved_notices, 1)

    def test_accept_all_then_save(self):
        session = make_session()
        with tempfile.TemporaryDirectory() as tmp:
            output = Path(tmp) / "merged.html"
            app = RevisionReviewApp(session, output_path=output)

            async def _run() -> None:
                async with app.run_test() as pilot:
                    app.action_accept_all()
                    await pilot.press("s")
                    await pilot.pause()

            asyncio.run(_run())
            self.assertTrue(session.is_fully_resolved())
            self.assertEqual(output.read_text(encoding="utf-8"), render_lines(["a", "B", "c", "D"]) + "\n")


if __name__ == "__main__":
    unittest.main()
