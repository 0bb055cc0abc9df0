import unittest

from anchordiff.anchor_store import (
    annotation_runs,
    decorate,
    plain_lines,
    plain_text,
    remove_label_markers,
    restore,
    restore_with_warnings,
    strip,
)
from anchordiff.content import compress_content, parse_plain_text, render_lines
from anchordiff.models import Annotation, Label

LABELS = [
    Label(id="L1", name="Theme", color="#ff0000"),
    Label(id="L2", name="Emotion", color="#00aa00"),
]


def make_annotation(annotation_id, label_id, start, end, note=None, document_id="d1"):
    return Annotation(
        id=annotation_id,
        document_id=document_id,
        label_id=label_id,
        start_offset=start,
        end_offset=end,
        note=note,
    )


class TestRestore(unittest.TestCase):
    def setUp(self):
        self.plain = render_lines(["Hello world", "Second line"])

    def test_single_line_marker(self):
        content = restore(render_lines(["Hello world"]), [make_annotation("a1", "L1", 0, 5)], LABELS)
        self.assertEqual(
            content,
            '<div class="transcript-line" data-line="1">'
            '<span class="coded-segment" data-code-id="L1" data-selection-id="a1" title="Theme" '
            'style="text-decoration: underline; text-decoration-color: #ff0000; background-color: #ff000040">'
            "Hello</span> world</div>",
        )

    def test_cross_line_range_is_wrapped_per_line(self):
        annotations = [make_annotation("a1", "L1", 0, 5), make_annotation("a2", "L2", 8, 15)]
        content = restore(self.plain, annotations, LABELS)
        self.assertEqual(content.count('data-selection-id="a2"'), 2)
        self.assertEqual(
            annotation_runs(content),
            [
                {"annotationId": "a1", "labelId": "L1", "startOffset": 0, "endOffset": 5},
                {"annotationId": "a2", "labelId": "L2", "startOffset": 8, "endOffset": 15},
            ],
        )

    def test_strip_restore_round_trip(self):
        annotations = [make_annotation("a1", "L1", 0, 5), make_annotation("a2", "L2", 8, 15)]
        content = restore(self.plain, annotations, LABELS)
        self.assertEqual(strip(content), self.plain)
        self.assertEqual(plain_text(content), "Hello worldSecond line")

    def test_orphan_label_is_skipped(self):
        annotations = [make_annotation("a1", "missing", 0, 5), make_annotation("a2", "L2", 6, 11)]
        content, warnings = restore_with_warnings(self.plain, annotations, LABELS)
        self.assertNotIn('data-selection-id="a1"', content)
        self.assertIn('data-selection-id="a2"', content)
        self.assertEqual(len(warnings), 1)
        self.assertIn("label not found", warnings[0])

    def test_malformed_ranges_are_skipped(self):
        annotations = [
            make_annotation("empty", "L1", 5, 5),
            make_annotation("negative", "L1", -1, 3),
            make_annotation("past_end", "L1", 0, 999),
            make_annotation("ok", "L2", 0, 5),
        ]
        content, warnings = restore_with_warnings(self.plain, annotations, LABELS)
        self.assertEqual([item["annotationId"] for item in annotation_runs(content)], ["ok"])
        self.assertEqual(len(warnings), 3)

    def test_overlapping_annotation_is_skipped(self):
        annotations = [make_annotation("a1", "L1", 0, 5), make_annotation("a3", "L2", 3, 8)]
        content, warnings = restore_with_warnings(self.plain, annotations, LABELS)
        self.assertEqual([item["annotationId"] for item in annotation_runs(content)], ["a1"])
        self.assertIn("overlaps", warnings[0])

    def test_adjacent_annotations_do_not_overlap(self):
        annotations = [make_annotation("a1", "L1", 0, 5), make_annotation("a2", "L2", 5, 11)]
        content = restore(self.plain, annotations, LABELS)
        self.assertEqual([item["annotationId"] for item in annotation_runs(content)], ["a1", "a2"])

    def test_no_annotations_returns_input(self):
        self.assertEqual(restore(self.plain, [], LABELS), self.plain)

    def test_paragraph_breaks_do_not_count_toward_offsets(self):
        plain = parse_plain_text("Hello\n\nWorld")
        content = restore(plain, [make_annotation("a1", "L1", 5, 10)], LABELS)
        self.assertIn('data-selection-id="a1" title="Theme" style="text-decoration: underline; '
                      'text-decoration-color: #ff0000; background-color: #ff000040">World</span>', content)
        self.assertEqual(strip(content), plain)

    def test_compressed_content_keeps_markers(self):
        content = restore(self.plain, [make_annotation("a2", "L2", 8, 15)], LABELS)
        compressed = compress_content(content)
        self.assertEqual(annotation_runs(compressed), annotation_runs(content))


class TestStrip(unittest.TestCase):
    def test_strip_is_idempotent(self):
        content = restore(render_lines(["Hello world"]), [make_annotation("a1", "L1", 0, 5)], LABELS)
        once = strip(content)
        self.assertEqual(strip(once), once)
        self.assertNotIn("coded-segment", once)

    def test_plain_text_without_markup_is_unchanged(self):
        self.assertEqual(strip("Hello world\nSecond"), "Hello world\nSecond")
        self.assertEqual(strip(""), "")

    def test_marker_free_markup_is_unchanged(self):
        content = (
            '<div class="transcript-line" data-line="1">It\'s a "test"</div>'
            '<div class="transcript-paragraph-break" aria-hidden="true"></div>'
            '<div class="transcript-line" data-line="5">a &gt; b</div>'
        )
        self.assertEqual(strip(content), content)


class TestRoundTripWithQuotes(unittest.TestCase):
    def test_literal_quotes_survive_restore_and_strip(self):
        plain = (
            '<div class="transcript-line" data-line="1">It\'s a "test"</div>'
            '<div class="transcript-line" data-line="2">Don\'t &amp; won\'t</div>'
        )
        annotations = [make_annotation("a1", "L1", 0, 4), make_annotation("a2", "L2", 13, 18)]
        content = restore(plain, annotations, LABELS)
        self.assertIn("It\'s</span>", content)
        self.assertEqual(strip(content), plain)

    def test_imported_transcript_round_trips(self):
        plain = parse_plain_text('She said "no."\n\nIt\'s fine & done')
        self.assertIn("&quot;no.&quot;", plain)
        self.assertIn("It\'s fine &amp; done", plain)
        content = restore(plain, [make_annotation("a1", "L1", 0, 3), make_annotation("a2", "L2", 14, 18)], LABELS)
        self.assertEqual(strip(content), plain)

    def test_numeric_apostrophe_entities_are_kept(self):
        plain = '<div class="transcript-line" data-line="1">It&#39;s here</div>'
        content = restore(plain, [make_annotation("a1", "L1", 5, 9)], LABELS)
        self.assertIn("It&#39;s ", content)
        self.assertEqual(strip(content), plain)


class TestRawTextInput(unittest.TestCase):
    def test_restore_converts_raw_text_to_line_markup(self):
        raw = "Hello world\nSecond \"line\""
        content = restore(raw, [make_annotation("a1", "L1", 0, 5)], LABELS)
        self.assertTrue(content.startswith('<div class="transcript-line" data-line="1">'))
        self.assertEqual(strip(content), render_lines(["Hello world", 'Second "line"']))
        self.assertEqual(plain_lines(strip(content)), raw.split("\n"))

    def test_raw_text_without_annotations_is_unchanged(self):
        self.assertEqual(restore("Hello world", [], LABELS), "Hello world")


class TestMarkerHelpers(unittest.TestCase):
    def setUp(self):
        self.plain = render_lines(["Hello world", "Second line"])
        self.annotations = [
            make_annotation("a1", "L1", 0, 5),
            make_annotation("a2", "L2", 8, 15, note="Shifts tone here"),
        ]
        self.content = restore(self.plain, self.annotations, LABELS)

    def test_remove_label_markers_keeps_other_labels(self):
        content = remove_label_markers(self.content, "L1", LABELS)
        self.assertEqual([item["annotationId"] for item in annotation_runs(content)], ["a2"])
        self.assertEqual(strip(content), self.plain)

    def test_decorate_adds_margin_and_single_note(self):
        decorated = decorate(self.content, self.annotations, LABELS)
        self.assertEqual(decorated.count('class="gutter-marker"'), 3)
        self.assertEqual(decorated.count('class="annotation-bubble"'), 1)
        self.assertIn("Shifts tone here", decorated)

    def test_decorations_are_removed_by_strip(self):
        decorated = decorate(self.content, self.annotations, LABELS)
        self.assertEqual(strip(decorated), self.plain)
        self.assertEqual(annotation_runs(decorated), annotation_runs(self.content))


if __name__ == "__main__":
    unittest.main()
