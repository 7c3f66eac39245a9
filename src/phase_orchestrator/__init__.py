"""
phase-orchestrator — package root

File: src/phase_orchestrator/__init__.py
Last updated: 2026-10-19

Purpose
- Phase-based orchestrator for AI-assisted artifact generation: a phase state
  machine, change-impact analysis, rate-limited generation, adversarial
  review, and automated remediation.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
