"""
phase-orchestrator — artifact change detection

File: src/phase_orchestrator/impact_plane/change_detection.py
Last updated: 2026-10-19

Purpose
- Compare two snapshots of one artifact and describe what changed.

Functional requirements
- Identical content (equal hashes) never reports a change.
- Markdown section headers drive the diff: a header only in the old snapshot
  is ``deleted``, only in the new one ``added``, in both with different body
  text ``modified``.
- Impact is HIGH when any section was added or deleted, otherwise MEDIUM.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final

from phase_orchestrator.utils.hashing import content_hash

EXCERPT_CHARS: Final[int] = 200
PREAMBLE_HEADER: Final[str] = "(preamble)"

_HEADER_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")


class ImpactLevel(StrEnum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ChangeType(StrEnum):
    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"


@dataclass(frozen=True, slots=True)
class ChangedSection:
    header: str
    change_type: ChangeType
    line_number: int
    old_content: str | None = None
    new_content: str | None = None


@dataclass(frozen=True, slots=True)
class ArtifactChange:
    project_id: str
    artifact_name: str
    old_hash: str
    new_hash: str
    has_changes: bool
    impact_level: ImpactLevel
    changed_sections: tuple[ChangedSection, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@dataclass(frozen=True, slots=True)
class Section:
    header: str
    line_number: int
    body: str


def extract_sections(content: str) -> dict[str, Section]:
    """Split markdown into sections keyed by header text (1-based line numbers).

    Text before the first header becomes the preamble section when non-blank.
    A repeated header gets an occurrence suffix so both copies are compared.
    """

    sections: dict[str, Section] = {}
    header = PREAMBLE_HEADER
    start = 1
    body: list[str] = []
    seen: dict[str, int] = {}
    in_fence = False

    def flush() -> None:
        text = "\n".join(body).strip()
        if header == PREAMBLE_HEADER and not text:
            return
        sections[header] = Section(header=header, line_number=start, body=text)

    for number, line in enumerate(content.split("\n"), start=1):
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
        match = None if in_fence else _HEADER_RE.match(line)
        if match is None:
            body.append(line)
            continue
        flush()
        title = match.group(2).strip()
        seen[title] = seen.get(title, 0) + 1
        header = title if seen[title] == 1 else f"{title} #{seen[title]}"
        start = number
        body = []
    flush()
    return sections


def _excerpt(text: str) -> str:
    if len(text) <= EXCERPT_CHARS:
        return text
    return text[:EXCERPT_CHARS] + "..."


def diff_sections(old: str, new: str) -> tuple[ChangedSection, ...]:
    """Compare header sections; the preamble is never added or deleted, only modified."""

    old_sections = extract_sections(old)
    new_sections = extract_sections(new)
    changes: list[ChangedSection] = []
    old_preamble = old_sections.pop(PREAMBLE_HEADER, None)
    new_preamble = new_sections.pop(PREAMBLE_HEADER, None)
    old_lead = old_preamble.body if old_preamble is not None else ""
    new_lead = new_preamble.body if new_preamble is not None else ""
    if old_lead != new_lead:
        changes.append(
            ChangedSection(
                header=PREAMBLE_HEADER,
                change_type=ChangeType.MODIFIED,
                line_number=1,
                old_content=_excerpt(old_lead),
                new_content=_excerpt(new_lead),
            )
        )
    for header, section in old_sections.items():
        if header not in new_sections:
            changes.append(
                ChangedSection(
                    header=header,
                    change_type=ChangeType.DELETED,
                    line_number=section.line_number,
                    old_content=_excerpt(section.body),
                )
            )
    for header, section in new_sections.items():
        previous = old_sections.get(header)
        if previous is None:
            changes.append(
                ChangedSection(
                    header=header,
                    change_type=ChangeType.ADDED,
                    line_number=section.line_number,
                    new_content=_excerpt(section.body),
                )
            )
        elif previous.body != section.body:
            changes.append(
                ChangedSection(
                    header=header,
                    change_type=ChangeType.MODIFIED,
                    line_number=section.line_number,
                    old_content=_excerpt(previous.body),
                    new_content=_excerpt(section.body),
                )
            )
    return tuple(changes)


def impact_for_sections(sections: tuple[ChangedSection, ...]) -> ImpactLevel:
    structural = any(
        section.change_type in (ChangeType.ADDED, ChangeType.DELETED) for section in sections
    )
    return ImpactLevel.HIGH if structural else ImpactLevel.MEDIUM


def detect_change(
    old: str,
    new: str,
    *,
    project_id: str = "",
    artifact_name: str = "",
    clock: Callable[[], datetime] | None = None,
) -> ArtifactChange | None:
    """Return ``None`` when the snapshots hash equal."""

    old_hash = content_hash(old, label="old content")
    new_hash = content_hash(new, label="new content")
    if old_hash == new_hash:
        return None
    sections = diff_sections(old, new)
    return ArtifactChange(
        project_id=project_id,
        artifact_name=artifact_name,
        old_hash=old_hash,
        new_hash=new_hash,
        has_changes=True,
        impact_level=impact_for_sections(sections),
        changed_sections=sections,
        timestamp=clock() if clock is not None else datetime.now(tz=UTC),
    )


__all__ = [
    "ArtifactChange",
    "ChangeType",
    "ChangedSection",
    "ImpactLevel",
    "Section",
    "detect_change",
    "diff_sections",
    "extract_sections",
    "impact_for_sections",
]
