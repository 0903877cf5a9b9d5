from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

GOVERNOR_GLOB = "devices/system/cpu/cpu*/cpufreq/scaling_governor"


@dataclass(frozen=True)
class PathGlob:
    """Paths under `root` matching `pattern`.

    Iteration re-scans the directory every time, so the same object can be
    walked again after the host state changed (e.g. CPUs came online).
    """

    root: str
    pattern: str

    def __iter__(self) -> Iterator[Path]:
        base = Path(self.root)
        if not base.exists():
            return
        yield from sorted(base.glob(self.pattern))


def read_text(path: Path) -> Optional[str]:
    try:
        txt = path.read_text(encoding="utf-8", errors="ignore").strip()
        return txt or None
    except OSError:
        return None


def write_knob(path: Path, value: str, *, dry_run: bool = False) -> bool:
    """Write a control knob; returns False instead of raising when it is absent or refused."""

    if not path.exists():
        logger.warning("Skipping %s (not present on this host)", path)
        return False
    if dry_run:
        logger.info("Would write %r to %s", value, path)
        return True
    try:
        path.write_text(value, encoding="utf-8")
    except OSError as e:
        logger.warning("Unable to write %r to %s: %s", value, path, e)
        return False
    logger.info("Wrote %r to %s", value, path)
    return True
