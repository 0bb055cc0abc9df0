from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .line_diff import MAX_DIFF_LINES


@dataclass(frozen=True)
class AnchorConfig:
    max_diff_lines: int = MAX_DIFF_LINES
    default_accepted: bool = False
    intraline_pairing_threshold: float = 0.20
    max_lines_per_chunk: int = 120


DEFAULT_CONFIG = AnchorConfig()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise RuntimeError(f"config section [{name}] must be a table")
    return value


def _positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise RuntimeError(f"config value {key} must be a positive integer")
    return value


def parse_anchor_config(data: dict[str, Any]) -> AnchorConfig:
    diff = _section(data, "diff")
    review = _section(data, "review")
    render = _section(data, "render")

    max_diff_lines = _positive_int(diff.get("max_lines", DEFAULT_CONFIG.max_diff_lines), "diff.max_lines")
    default_accepted = review.get("default_accepted", DEFAULT_CONFIG.default_accepted)
    if not isinstance(default_accepted, bool):
        raise RuntimeError("config value review.default_accepted must be true or false")
    threshold = review.get("intraline_pairing_threshold", DEFAULT_CONFIG.intraline_pairing_threshold)
    try:
        threshold = float(threshold)
    except (TypeError, ValueError) as error:
        raise RuntimeError("config value review.intraline_pairing_threshold must be a number") from error
    if not 0.0 <= threshold <= 1.0:
        raise RuntimeError("config value review.intraline_pairing_threshold must be between 0 and 1")
    max_lines_per_chunk = _positive_int(
        render.get("max_lines_per_chunk", DEFAULT_CONFIG.max_lines_per_chunk),
        "render.max_lines_per_chunk",
    )
    return AnchorConfig(
        max_diff_lines=max_diff_lines,
        default_accepted=default_accepted,
        intraline_pairing_threshold=threshold,
        max_lines_per_chunk=max_lines_per_chunk,
    )


def load_anchor_config(path: Path | None) -> AnchorConfig:
    if path is None:
        return DEFAULT_CONFIG
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise RuntimeError(f"Config file not found: {path}") from error
    except tomllib.TOMLDecodeError as error:
        raise RuntimeError(f"Invalid config TOML: {error}") from error
    return parse_anchor_config(data)
