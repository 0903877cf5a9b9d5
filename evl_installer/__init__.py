"""EVL / Xenomai 4 real-time host installer.

Core design goals:
- Fail-fast, strictly ordered stages
- Idempotent configuration edits (re-running is safe)
- Best-effort tuning of optional kernel knobs
- Post-install verification that always reports every check
- Centralized logging
"""

__all__ = []
