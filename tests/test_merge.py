import unittest

from anchordiff.line_diff import change_indices, compute_line_diff
from anchordiff.merge import merge_diff, merge_lines
from anchordiff.models import DiffChunk


CASES = [
    ("line1\nline2\nline3", "line1\nlineX\nline3"),
    ("a\nb\nc", "a\nc\nd"),
    ("", "fresh\ncontent"),
    ("gone\nentirely", ""),
    ("x\ny\nx\ny", "y\nx\ny\nx"),
]


class TestMergeDiff(unittest.TestCase):
    def test_accepting_every_change_yields_modified_text(self):
        for original, modified in CASES:
            with self.subTest(original=original, modified=modified):
                chunks = compute_line_diff(original, modified)
                self.assertEqual(merge_diff(chunks, change_indices(chunks)), modified)

    def test_accepting_nothing_yields_original_text(self):
        for original, modified in CASES:
            with self.subTest(original=original, modified=modified):
                chunks = compute_line_diff(original, modified)
                self.assertEqual(merge_diff(chunks, set()), original)

    def test_partial_acceptance_mixes_sides(self):
        chunks = compute_line_diff("a\nb\nc\nd", "a\nB\nc\nD")
        self.assertEqual(merge_lines(chunks, {1, 2}), ["a", "B", "c", "d"])
        self.assertEqual(merge_lines(chunks, {2}), ["a", "b", "B", "c", "d"])
        self.assertEqual(merge_lines(chunks, {1, 4, 5}), ["a", "c", "D"])

    def test_override_replaces_accepted_insert_only(self):
        chunks = [
            DiffChunk(type="equal", lines=["a"]),
            DiffChunk(type="delete", lines=["b"]),
            DiffChunk(type="insert", lines=["B"]),
        ]
        overrides = {2: ["Bee", "Buzz"]}
        self.assertEqual(merge_lines(chunks, {1, 2}, overrides), ["a", "Bee", "Buzz"])
        self.assertEqual(merge_lines(chunks, set(), overrides), ["a", "b"])


if __name__ == "__main__":
    unittest.main()
