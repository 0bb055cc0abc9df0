import unittest

from anchordiff.anchor_store import restore
from anchordiff.content import render_lines
from anchordiff.models import Annotation, Label
from anchordiff.reconcile import (
    descendant_label_ids,
    drop_annotations_for_document,
    drop_annotations_for_label,
    reconcile,
    reconcile_with_report,
)


def make_annotation(annotation_id, start, end, *, document_id="d1", label_id="L1"):
    return Annotation(
        id=annotation_id,
        document_id=document_id,
        label_id=label_id,
        start_offset=start,
        end_offset=end,
    )


class TestReconcile(unittest.TestCase):
    def test_annotation_on_changed_line_is_dropped(self):
        result = reconcile("Hello world", "Hi there world", [make_annotation("a1", 0, 5)], "d1")
        self.assertEqual(result, [])

    def test_annotation_after_changed_line_is_shifted(self):
        old = render_lines(["A cat sat.", "A dog ran."])
        new = render_lines(["A big cat sat.", "A dog ran."])
        report = reconcile_with_report(old, new, [make_annotation("a1", 11, 20)], "d1")
        self.assertEqual(len(report.annotations), 1)
        survivor = report.annotations[0]
        self.assertEqual((survivor.start_offset, survivor.end_offset), (15, 24))
        self.assertEqual(report.shifted_ids, ["a1"])
        self.assertEqual(report.dropped_ids, [])

    def test_annotation_before_changed_line_keeps_offsets(self):
        old = "First line\nSecond line"
        new = "First line\nSecond line, longer"
        annotation = make_annotation("a1", 0, 5)
        report = reconcile_with_report(old, new, [annotation], "d1")
        self.assertEqual(report.annotations, [annotation])
        self.assertEqual(report.kept_ids, ["a1"])
        self.assertEqual(report.shifted_ids, [])

    def test_multi_line_annotation_touching_changed_line_is_dropped(self):
        old = "one\ntwo\nthree"
        new = "one\nTWO!\nthree"
        result = reconcile(old, new, [make_annotation("a1", 0, 5), make_annotation("a2", 6, 11)], "d1")
        self.assertEqual([annotation.id for annotation in result], ["a2"])
        self.assertEqual((result[0].start_offset, result[0].end_offset), (7, 12))

    def test_line_count_change_drops_whole_document(self):
        others = make_annotation("b1", 0, 3, document_id="d2")
        mine = make_annotation("a1", 0, 3)
        with self.assertLogs("anchordiff.reconcile", level="INFO"):
            report = reconcile_with_report("one\ntwo", "one\ntwo\nthree", [mine, others], "d1")
        self.assertTrue(report.structural_mismatch)
        self.assertEqual(report.annotations, [others])
        self.assertEqual(report.dropped_ids, ["a1"])
        self.assertEqual(len(report.warnings), 1)

    def test_other_documents_pass_through_in_order(self):
        first = make_annotation("b1", 0, 3, document_id="d2")
        mine = make_annotation("a1", 3, 6)
        last = make_annotation("c1", 1, 2, document_id="d3")
        result = reconcile("one\ntwo", "ONE!\ntwo", [first, mine, last], "d1")
        self.assertEqual([annotation.id for annotation in result], ["b1", "a1", "c1"])
        self.assertEqual((result[1].start_offset, result[1].end_offset), (4, 7))

    def test_unchanged_content_keeps_everything(self):
        annotations = [make_annotation("a1", 0, 3), make_annotation("a2", 3, 6)]
        self.assertEqual(reconcile("one\ntwo", "one\ntwo", annotations, "d1"), annotations)

    def test_malformed_range_is_dropped(self):
        report = reconcile_with_report("one\ntwo", "one\ntwo", [make_annotation("a1", 4, 2)], "d1")
        self.assertEqual(report.annotations, [])
        self.assertEqual(report.dropped_ids, ["a1"])
        self.assertIn("malformed", report.warnings[0])

    def test_markup_is_compared_on_plain_lines(self):
        labels = [Label(id="L1", name="Theme", color="#ff0000")]
        annotation = make_annotation("a1", 6, 10)
        old = restore(render_lines(["Intro", "Body text"]), [annotation], labels)
        new = render_lines(["Intro!", "Body text"])
        result = reconcile(old, new, [annotation], "d1")
        self.assertEqual([(item.start_offset, item.end_offset) for item in result], [(7, 11)])


class TestCascade(unittest.TestCase):
    def setUp(self):
        self.labels = [
            Label(id="root", name="Root", color="#111111"),
            Label(id="child", name="Child", color="#222222", parent_id="root"),
            Label(id="grandchild", name="Grandchild", color="#333333", parent_id="child"),
            Label(id="other", name="Other", color="#444444"),
        ]
        self.annotations = [
            make_annotation("a1", 0, 1, label_id="root"),
            make_annotation("a2", 1, 2, label_id="grandchild"),
            make_annotation("a3", 2, 3, label_id="other", document_id="d2"),
        ]

    def test_drop_annotations_for_document(self):
        result = drop_annotations_for_document(self.annotations, "d1")
        self.assertEqual([annotation.id for annotation in result], ["a3"])

    def test_descendant_label_ids(self):
        self.assertEqual(descendant_label_ids(self.labels, "root"), {"root", "child", "grandchild"})
        self.assertEqual(descendant_label_ids(self.labels, "other"), {"other"})

    def test_drop_annotations_for_label(self):
        direct = drop_annotations_for_label(self.annotations, "root")
        self.assertEqual([annotation.id for annotation in direct], ["a2", "a3"])
        cascaded = drop_annotations_for_label(
            self.annotations, "root", labels=self.labels, include_descendants=True
        )
        self.assertEqual([annotation.id for annotation in cascaded], ["a3"])


if __name__ == "__main__":
    unittest.main()
