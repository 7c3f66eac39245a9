"""
phase-orchestrator — hashing utilities

File: src/phase_orchestrator/utils/hashing.py
Last updated: 2026-10-19

Purpose
- Deterministic SHA-256 helpers for artifact snapshots, commit ids, and
  user-edit detection.

Functional requirements
- Hex digests are lowercase and 64 characters long.
- Hashing a missing (``None``) snapshot is an error, never an empty digest.
"""

from __future__ import annotations

import hashlib

__all__ = ["content_hash", "sha256_text"]


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return hashlib.sha256(text.encode(encoding)).hexdigest()


def content_hash(content: str | None, *, label: str = "content") -> str:
    """Hash one artifact snapshot; ``None`` raises instead of hashing as empty."""

    if content is None:
        raise ValueError(f"{label} cannot be null")
    if not isinstance(content, str):
        raise TypeError(f"{label} must be a string")
    return sha256_text(content)
