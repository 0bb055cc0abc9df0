from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from rich.console import Console

from .anchor_store import decorate, restore_with_warnings, strip
from .config import load_anchor_config
from .line_diff import diff_is_oversized
from .models import annotation_to_dict, load_annotations, load_labels
from .reconcile import reconcile_with_report
from .review_render import render_review_summary, render_visual_chunks, render_visual_detail, render_warnings
from .review_session import DiffReviewSession


def read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise RuntimeError(f"File not found: {path}") from error


def load_json(path: Path) -> Any:
    try:
        return json.loads(read_text(path))
    except json.JSONDecodeError as error:
        raise RuntimeError(f"Invalid JSON: {error}") from error


def load_record_list(path: Path, key: str) -> list[Any]:
    """Accept either a bare JSON array or an object holding the array under ``key``."""

    data = load_json(path)
    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, list):
        raise RuntimeError(f"{path}: expected a JSON array or an object with `{key}` array.")
    return data


def write_output(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text if text.endswith("\n") else text + "\n", encoding="utf-8")


def parse_review_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Review a revision of a transcript chunk by chunk.")
    parser.add_argument("original", help="Path to the current transcript content.")
    parser.add_argument("modified", help="Path to the proposed transcript content.")
    parser.add_argument("--title", default="", help="Title shown in the summary.")
    parser.add_argument("--config", help="Path to anchordiff TOML config.")
    parser.add_argument(
        "--default-accepted",
        action="store_true",
        help="Start with every change accepted (incoming edits).",
    )
    parser.add_argument("--accept", type=int, action="append", default=[], help="Accept review unit #N (repeatable).")
    parser.add_argument("--reject", type=int, action="append", default=[], help="Reject review unit #N (repeatable).")
    parser.add_argument("--accept-all", action="store_true", help="Accept every change.")
    parser.add_argument("--reject-all", action="store_true", help="Reject every change.")
    parser.add_argument("--detail", type=int, help="Show lines of review unit #N.")
    parser.add_argument("--output", help="Write merged content to this path.")
    parser.add_argument("--plain", action="store_true", help="Write merged text as plain lines instead of markup.")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Print review state as JSON.")
    parser.add_argument("--interactive", action="store_true", help="Open the interactive review app.")
    args = parser.parse_args(argv)
    if args.accept_all and args.reject_all:
        parser.error("--accept-all and --reject-all are mutually exclusive")
    return args


def _review_unit(session: DiffReviewSession, position: int):
    units = [item for item in session.visual if item.kind != "equal"]
    if position < 0 or position >= len(units):
        raise LookupError(f"Review unit not found: {position} (have {len(units)})")
    return units[position]


def _review_payload(session: DiffReviewSession, warnings: list[str]) -> dict[str, Any]:
    units = [item for item in session.visual if item.kind != "equal"]
    return {
        "warnings": warnings,
        "chunks": [{"type": chunk.type, "lines": chunk.lines} for chunk in session.chunks],
        "statuses": {str(index): status for index, status in session.statuses().items()},
        "units": [
            {
                "kind": item.kind,
                "indices": list(item.indices),
                "status": session.visual_status(item),
                "oldLines": list(item.old_lines),
                "newLines": list(item.new_lines),
            }
            for item in units
        ],
        "counts": session.counts(),
        "resolved": session.is_fully_resolved(),
        "merged": session.merged_text(),
    }


def run_review(argv: list[str]) -> int:
    args = parse_review_args(argv)
    console = Console()
    try:
        config = load_anchor_config(Path(args.config) if args.config else None)
        original = read_text(Path(args.original))
        modified = read_text(Path(args.modified))
        session = DiffReviewSession(
            original,
            modified,
            default_accepted=args.default_accepted or config.default_accepted,
            max_lines=config.max_diff_lines,
        )
        warnings: list[str] = []
        if diff_is_oversized(session.original_lines, session.modified_lines, config.max_diff_lines):
            warnings.append(
                f"Input exceeds {config.max_diff_lines} lines; showing a coarse delete-all/insert-all diff."
            )
        if args.accept_all:
            session.accept_all()
        if args.reject_all:
            session.reject_all()
        for position in args.accept:
            session.accept_visual(_review_unit(session, position))
        for position in args.reject:
            session.reject_visual(_review_unit(session, position))
        detail = _review_unit(session, args.detail) if args.detail is not None else None
    except LookupError as error:
        print(f"[error] {error}", file=sys.stderr)
        return 2
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    output_path = Path(args.output) if args.output else None
    if args.interactive:
        from .review_textual import launch_review_app

        return launch_review_app(
            session,
            title=args.title,
            output_path=output_path,
            max_lines=config.max_lines_per_chunk,
            pairing_threshold=config.intraline_pairing_threshold,
        )

    if args.as_json:
        print(json.dumps(_review_payload(session, warnings), ensure_ascii=False, indent=2))
    else:
        render_review_summary(console, session, args.title)
        render_warnings(console, warnings)
        render_visual_chunks(console, session)
        if detail is not None:
            render_visual_detail(
                console,
                session,
                detail,
                max_lines=config.max_lines_per_chunk,
                pairing_threshold=config.intraline_pairing_threshold,
            )

    if output_path is not None:
        try:
            write_output(output_path, session.merged_text() if args.plain else session.merged_content())
        except OSError as error:
            print(f"[error] {error}", file=sys.stderr)
            return 1
        if not args.as_json:
            console.print(f"Wrote: {output_path}")
    return 0


def parse_reconcile_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Prune and shift annotations after a transcript edit.")
    parser.add_argument("old", help="Path to the transcript content before the edit.")
    parser.add_argument("new", help="Path to the transcript content after the edit.")
    parser.add_argument("annotations", help="Path to annotations JSON (array or {annotations: [...]}).")
    parser.add_argument("--document", required=True, help="Id of the edited document.")
    parser.add_argument("--output", help="Write the reconciled annotations JSON to this path.")
    return parser.parse_args(argv)


def run_reconcile(argv: list[str]) -> int:
    args = parse_reconcile_args(argv)
    console = Console(stderr=True)
    try:
        old_content = read_text(Path(args.old))
        new_content = read_text(Path(args.new))
        annotations, warnings = load_annotations(load_record_list(Path(args.annotations), "annotations"))
        report = reconcile_with_report(old_content, new_content, annotations, args.document)
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    warnings.extend(report.warnings)
    records = [annotation_to_dict(annotation) for annotation in report.annotations]
    if args.output:
        try:
            write_output(Path(args.output), json.dumps(records, ensure_ascii=False, indent=2))
        except OSError as error:
            print(f"[error] {error}", file=sys.stderr)
            return 1
        render_warnings(console, warnings)
        console.print(
            f"Kept {len(report.kept_ids)}, shifted {len(report.shifted_ids)}, dropped {len(report.dropped_ids)}."
        )
        console.print(f"Wrote: {args.output}")
        return 0

    payload = {
        "annotations": records,
        "droppedIds": report.dropped_ids,
        "shiftedIds": report.shifted_ids,
        "structuralMismatch": report.structural_mismatch,
        "warnings": warnings,
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def parse_restore_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render annotations as coded-segment markers in transcript content.")
    parser.add_argument("content", help="Path to plain transcript content.")
    parser.add_argument("annotations", help="Path to annotations JSON.")
    parser.add_argument("labels", help="Path to labels JSON.")
    parser.add_argument("--document", help="Only restore annotations of this document id.")
    parser.add_argument("--decorate", action="store_true", help="Add margin summaries and note bubbles.")
    parser.add_argument("--output", help="Write annotated content to this path (default: stdout).")
    return parser.parse_args(argv)


def run_restore(argv: list[str]) -> int:
    args = parse_restore_args(argv)
    console = Console(stderr=True)
    try:
        content = read_text(Path(args.content))
        annotations, warnings = load_annotations(load_record_list(Path(args.annotations), "annotations"))
        labels, label_warnings = load_labels(load_record_list(Path(args.labels), "labels"))
        warnings.extend(label_warnings)
        if args.document:
            annotations = [annotation for annotation in annotations if annotation.document_id == args.document]
        annotated, restore_warnings = restore_with_warnings(strip(content), annotations, labels)
        warnings.extend(restore_warnings)
        if args.decorate:
            annotated = decorate(annotated, annotations, labels)
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1

    render_warnings(console, warnings)
    if args.output:
        try:
            write_output(Path(args.output), annotated)
        except OSError as error:
            print(f"[error] {error}", file=sys.stderr)
            return 1
        console.print(f"Wrote: {args.output}")
    else:
        print(annotated)
    return 0


def parse_strip_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove annotation markers and decorations from transcript content.")
    parser.add_argument("content", help="Path to transcript content.")
    parser.add_argument("--output", help="Write stripped content to this path (default: stdout).")
    return parser.parse_args(argv)


def run_strip(argv: list[str]) -> int:
    args = parse_strip_args(argv)
    try:
        stripped = strip(read_text(Path(args.content)))
    except Exception as error:  # noqa: BLE001
        print(f"[error] {error}", file=sys.stderr)
        return 1
    if args.output:
        try:
            write_output(Path(args.output), stripped)
        except OSError as error:
            print(f"[error] {error}", file=sys.stderr)
            return 1
        print(f"Wrote: {args.output}")
    else:
        print(stripped)
    return 0


def main_review() -> int:
    return run_review(sys.argv[1:])


def main_reconcile() -> int:
    return run_reconcile(sys.argv[1:])


def main_restore() -> int:
    return run_restore(sys.argv[1:])


def main_strip() -> int:
    return run_strip(sys.argv[1:])
