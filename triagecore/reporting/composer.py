"""
Prompt Composer: renders cached run results into a size-bounded text block.

Layout (most recent run first):

    CLI tool context (most recent runs):
    - Workspace Snapshot [builtin.workspaceSnapshot] - success at <run_at>, exit 0, duration 412ms
      output (json): {...}

The returned text never exceeds max_chars. When the budget runs out inside a
result, the partial text is kept, TRUNCATION_MARKER is appended once, and
every later result is omitted.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable, List, Optional

from triagecore.data.result_store import ResultStore
from triagecore.toolkit.models import OutputType, RunResult

logger = logging.getLogger(__name__)

HEADER = "CLI tool context (most recent runs):\n"
TRUNCATION_MARKER = "\n...[truncated CLI context]\n"


def render_result(result: RunResult) -> str:
    exit_label = "n/a" if result.exit_code is None else result.exit_code
    status = "success" if result.success else "failed"
    lines = [
        f"- {result.title} [{result.id}] - {status} at {result.run_at}, "
        f"exit {exit_label}, duration {result.duration_ms}ms\n"
    ]
    if result.timed_out:
        lines.append("  note: timed out\n")
    if result.stderr:
        lines.append(f"  stderr: {result.stderr}\n")
    if result.parse_error:
        lines.append(f"  parse error: {result.parse_error}\n")

    if (
        result.output_type is OutputType.STRUCTURED
        and result.parse_error is None
        and result.structured is not None
    ):
        lines.append(f"  output (json): {json.dumps(result.structured, indent=2, default=str)}\n")
    elif result.stdout:
        lines.append(f"  output: {result.stdout}\n")
    return "".join(lines)


class PromptComposer:

    def __init__(self, results: ResultStore):
        self.results = results

    def compose(self, max_chars: int = 6000) -> Optional[str]:
        cached = self.results.all()
        if not cached:
            return None
        ordered = sorted(cached, key=lambda r: r.run_at, reverse=True)
        return compose_blocks([HEADER, *(render_result(r) for r in ordered)], max_chars)


def compose_blocks(blocks: Iterable[str], max_chars: int) -> str:
    """Concatenate blocks within max_chars, ending with the marker if anything was cut."""
    if max_chars <= 0:
        return ""

    out: List[str] = []
    used = 0
    for block in blocks:
        if used + len(block) <= max_chars:
            out.append(block)
            used += len(block)
            continue

        # Budget exhausted inside this block: keep what still fits next to the marker.
        room = max_chars - len(TRUNCATION_MARKER)
        if room < 0:
            return TRUNCATION_MARKER[:max_chars]
        text = "".join(out)[:room]
        if len(text) < room:
            text += block[: room - len(text)]
        logger.debug(f"[PromptComposer] Context truncated at {max_chars} chars")
        return text + TRUNCATION_MARKER

    return "".join(out)
