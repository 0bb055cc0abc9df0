from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from .content import MARGIN_ARTIFACT_RE, parse_content, render_lines
from .line_diff import MAX_DIFF_LINES, compute_line_diff, split_lines
from .merge import merge_lines
from .models import DiffChunk, VisualChunk

DECISION_STATUSES = {"accepted", "rejected"}


class ReviewError(LookupError):
    pass


def extract_review_lines(content: str) -> list[str]:
    if not content:
        return []
    document = parse_content(content)
    if not document.structured:
        return document.plain_lines()
    return [MARGIN_ARTIFACT_RE.sub("", line) for line in document.plain_lines()]


def build_visual_chunks(chunks: Sequence[DiffChunk]) -> list[VisualChunk]:
    """Group each delete directly followed by an insert into one replace unit."""

    visual: list[VisualChunk] = []
    index = 0
    while index < len(chunks):
        current = chunks[index]
        following = chunks[index + 1] if index + 1 < len(chunks) else None
        if current.type == "equal":
            visual.append(VisualChunk(kind="equal", old_lines=tuple(current.lines), new_lines=tuple(current.lines)))
        elif current.type == "delete" and following is not None and following.type == "insert":
            visual.append(
                VisualChunk(
                    kind="replace",
                    old_lines=tuple(current.lines),
                    new_lines=tuple(following.lines),
                    delete_index=index,
                    insert_index=index + 1,
                )
            )
            index += 1
        elif current.type == "delete":
            visual.append(VisualChunk(kind="delete", old_lines=tuple(current.lines), delete_index=index))
        else:
            visual.append(VisualChunk(kind="insert", new_lines=tuple(current.lines), insert_index=index))
        index += 1
    return visual


class DiffReviewSession:
    """Accept/reject review of a line diff between two transcript versions.

    Resolution state is kept per diff chunk index.  Every change republishes
    the merged content through ``on_content_change``; ``on_all_resolved`` is
    called once each time the session moves into the fully resolved state.
    """

    def __init__(
        self,
        original_content: str,
        modified_content: str,
        *,
        default_accepted: bool = False,
        on_content_change: Callable[[str], None] | None = None,
        on_all_resolved: Callable[[], None] | None = None,
        max_lines: int = MAX_DIFF_LINES,
    ) -> None:
        self.original_lines = extract_review_lines(original_content)
        self.modified_lines = extract_review_lines(modified_content)
        self.default_accepted = default_accepted
        self.on_content_change = on_content_change
        self.on_all_resolved = on_all_resolved
        self.chunks = compute_line_diff(
            "\n".join(self.original_lines),
            "\n".join(self.modified_lines),
            max_lines=max_lines,
        )
        self.visual = build_visual_chunks(self.chunks)
        initial = "accepted" if default_accepted else "pending"
        self._status: dict[int, str] = {
            index: initial for index, chunk in enumerate(self.chunks) if chunk.type != "equal"
        }
        self._overrides: dict[int, tuple[str, ...]] = {}
        # delete <-> insert indices of each replace unit
        self._halves: dict[int, int] = {}
        for item in self.visual:
            if item.kind == "replace" and item.delete_index is not None and item.insert_index is not None:
                self._halves[item.insert_index] = item.delete_index
                self._halves[item.delete_index] = item.insert_index
        self._resolved = False
        self.merged_lines: list[str] = []
        self.resolved_signal_count = 0
        self._publish()

    def visual_chunks(self) -> list[VisualChunk]:
        return list(self.visual)

    @property
    def change_indices(self) -> list[int]:
        return sorted(self._status)

    def status_of(self, index: int) -> str:
        if index not in self._status:
            raise ReviewError(f"Not a reviewable chunk index: {index}")
        return self._status[index]

    def visual_status(self, chunk: VisualChunk) -> str | None:
        if chunk.kind == "equal":
            return None
        states = {self._status[index] for index in chunk.indices}
        if len(states) == 1:
            return states.pop()
        return "pending"

    def statuses(self) -> dict[int, str]:
        return dict(self._status)

    def counts(self) -> dict[str, int]:
        counts = {"pending": 0, "accepted": 0, "rejected": 0}
        for status in self._status.values():
            counts[status] += 1
        return counts

    def is_fully_resolved(self) -> bool:
        return all(status != "pending" for status in self._status.values())

    def resolve(self, indices: Iterable[int], status: str) -> bool:
        """Set ``status`` on all ``indices`` in a single transition.

        An index that is one half of a replace unit resolves its partner too.
        Returns False when nothing changed.
        """

        if status not in DECISION_STATUSES:
            raise ReviewError(f"Invalid resolution: {status}")
        targets = list(indices)
        for index in targets:
            if index not in self._status:
                raise ReviewError(f"Not a reviewable chunk index: {index}")
        # Both halves of a replace always move together.
        targets.extend(self._halves[index] for index in list(targets) if index in self._halves)
        updated = dict(self._status)
        for index in targets:
            updated[index] = status
        if updated == self._status:
            return False
        self._status = updated
        self._publish()
        return True

    def accept(self, index: int) -> bool:
        return self.resolve([index], "accepted")

    def reject(self, index: int) -> bool:
        return self.resolve([index], "rejected")

    def accept_visual(self, chunk: VisualChunk) -> bool:
        return self.resolve(chunk.indices, "accepted")

    def reject_visual(self, chunk: VisualChunk) -> bool:
        return self.resolve(chunk.indices, "rejected")

    def accept_all(self) -> bool:
        return self.resolve(self.change_indices, "accepted")

    def reject_all(self) -> bool:
        return self.resolve(self.change_indices, "rejected")

    def set_override(self, index: int, lines: str | Sequence[str]) -> None:
        if index not in self._status or self.chunks[index].type != "insert":
            raise ReviewError(f"Overrides apply to insert chunks only: {index}")
        if self._status[index] != "pending":
            raise ReviewError(f"Chunk {index} is already {self._status[index]}.")
        values = split_lines(lines) if isinstance(lines, str) else list(lines)
        self._overrides[index] = tuple(values)
        self._publish()

    def clear_override(self, index: int) -> None:
        if self._overrides.pop(index, None) is not None:
            self._publish()

    def override_for(self, index: int) -> tuple[str, ...] | None:
        return self._overrides.get(index)

    def override_with_original(self, chunk: VisualChunk) -> tuple[str, ...]:
        """Seed a replace unit's override with its new lines followed by the original lines."""

        if chunk.kind != "replace" or chunk.insert_index is None:
            raise ReviewError("Only replace units carry original lines.")
        current = self._overrides.get(chunk.insert_index, chunk.new_lines)
        lines = tuple(current) + chunk.old_lines
        self.set_override(chunk.insert_index, lines)
        return lines

    def accepted_indices(self) -> set[int]:
        return {
            index
            for index, status in self._status.items()
            if status == "accepted" or (status == "pending" and self.default_accepted)
        }

    def _merge_inputs(self) -> tuple[set[int], dict[int, tuple[str, ...]]]:
        accepted = self.accepted_indices()
        overrides: dict[int, tuple[str, ...]] = {}
        for index, lines in self._overrides.items():
            if self._status.get(index) == "rejected":
                continue
            overrides[index] = lines
            accepted.add(index)
            partner = self._halves.get(index)
            # A pending override on a replace stands in for the old lines too.
            if partner is not None and self._status.get(partner) == "pending":
                accepted.add(partner)
        return accepted, overrides

    def merged_text(self) -> str:
        return "\n".join(self.merged_lines)

    def merged_content(self) -> str:
        return render_lines(self.merged_lines)

    def edited_content(self, chunk: VisualChunk, text: str) -> str:
        """Content of the modified side with one insert replaced by ``text``."""

        if chunk.insert_index is None:
            raise ReviewError("Only insert or replace units can be edited.")
        lines: list[str] = []
        for index, diff_chunk in enumerate(self.chunks):
            if index == chunk.insert_index:
                lines.extend(split_lines(text))
            elif diff_chunk.type in {"equal", "insert"}:
                lines.extend(diff_chunk.lines)
        return render_lines(lines)

    def _publish(self) -> None:
        accepted, overrides = self._merge_inputs()
        self.merged_lines = merge_lines(self.chunks, accepted, overrides)
        if self.on_content_change is not None:
            self.on_content_change(self.merged_content())
        resolved = self.is_fully_resolved()
        if resolved and not self._resolved:
            self.resolved_signal_count += 1
            if self.on_all_resolved is not None:
                self.on_all_resolved()
        self._resolved = resolved
