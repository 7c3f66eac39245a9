"""
phase-orchestrator — remediation safeguards

File: src/phase_orchestrator/verification_plane/safeguards.py
Last updated: 2026-10-19

Purpose
- Protect artifacts from automated remediation: user-edit detection by hash,
  diff preview, merge-conflict rendering, and change-scope limits.

Functional requirements
- Protected artifacts are never modified automatically.
- A proposed change touching more than ``MAX_LINES_CHANGED`` lines is
  rejected regardless of any other check.
- When a user edit is detected the caller gets a conflict rendering instead
  of a silent overwrite.
"""

from __future__ import annotations

from dataclasses import dataclass

from phase_orchestrator.constants import MAX_LINES_CHANGED, PROTECTED_ARTIFACTS
from phase_orchestrator.utils.hashing import content_hash


@dataclass(frozen=True, slots=True)
class SafeguardResult:
    approved: bool
    reason: str
    user_edit_detected: bool = False
    lines_changed: int | None = None
    diff: str | None = None
    conflict: str | None = None


def is_protected_artifact(artifact: str) -> bool:
    return artifact in PROTECTED_ARTIFACTS


def detect_user_edit(original: str, current: str, original_hash: str) -> SafeguardResult:
    """Compare the current content hash against the recorded original hash."""

    del original
    current_hash = content_hash(current, label="current content")
    if current_hash == original_hash:
        return SafeguardResult(
            approved=True,
            reason="Content matches original hash - no manual edits detected",
        )
    return SafeguardResult(
        approved=False,
        user_edit_detected=True,
        reason="Content hash differs - manual edit detected. Use conflict markers.",
    )


def generate_diff_preview(artifact: str, old: str, new: str) -> str:
    """Render a positional, unified-style preview of a proposed change."""

    if old == new:
        return f"No changes proposed for {artifact}"

    old_lines = old.split("\n")
    new_lines = new.split("\n")
    lines = [
        f"--- {artifact} (original)",
        f"+++ {artifact} (proposed)",
        f"@@ -1,{len(old_lines)} +1,{len(new_lines)} @@",
    ]
    for index in range(max(len(old_lines), len(new_lines))):
        old_line = old_lines[index] if index < len(old_lines) else None
        new_line = new_lines[index] if index < len(new_lines) else None
        if old_line == new_line:
            lines.append(f"  {old_line or ''}")
            continue
        if old_line is not None:
            lines.append(f"- {old_line}")
        if new_line is not None:
            lines.append(f"+ {new_line}")
    return "\n".join(lines) + "\n"


def create_conflict_markers(user_version: str, auto_version: str, line: int, artifact: str) -> str:
    return (
        "<<<<<<< HEAD (User Edit)\n"
        f"{user_version}\n"
        "=======\n"
        f"{auto_version}\n"
        f">>>>>>> AUTO_REMEDY (Line {line} in {artifact})"
    )


def count_changed_lines(old: str, new: str) -> int:
    """Length delta plus positional mismatches over the old lines."""

    old_lines = old.split("\n")
    new_lines = new.split("\n")
    mismatched = sum(
        1
        for index, line in enumerate(old_lines)
        if index >= len(new_lines) or line != new_lines[index]
    )
    return abs(len(new_lines) - len(old_lines)) + mismatched


def validate_change_scope(artifact: str, old: str, new: str) -> SafeguardResult:
    """Protected check first, then the changed-line limit."""

    if is_protected_artifact(artifact):
        return SafeguardResult(
            approved=False,
            reason=f"{artifact} is a protected artifact - manual review required",
        )
    lines_changed = count_changed_lines(old, new)
    if lines_changed > MAX_LINES_CHANGED:
        return SafeguardResult(
            approved=False,
            lines_changed=lines_changed,
            reason=(
                f"Change scope ({lines_changed} lines) exceeds {MAX_LINES_CHANGED} "
                "line limit - manual review required"
            ),
        )
    return SafeguardResult(
        approved=True,
        lines_changed=lines_changed,
        reason=f"Change scope within limits ({lines_changed} lines)",
        diff=generate_diff_preview(artifact, old, new),
    )


def first_differing_line(old: str, new: str) -> int:
    """1-based line number of the first positional difference."""

    old_lines = old.split("\n")
    new_lines = new.split("\n")
    for index in range(min(len(old_lines), len(new_lines))):
        if old_lines[index] != new_lines[index]:
            return index + 1
    return min(len(old_lines), len(new_lines)) + 1


__all__ = [
    "SafeguardResult",
    "count_changed_lines",
    "create_conflict_markers",
    "detect_user_edit",
    "first_differing_line",
    "generate_diff_preview",
    "is_protected_artifact",
    "validate_change_scope",
]
