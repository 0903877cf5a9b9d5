from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .config import GIB, RequirementSpec
from .errors import PrerequisiteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostFacts:
    is_root: bool
    free_disk_bytes: int
    memory_bytes: int
    cpu_count: int
    os_marker_present: bool


def _mem_total_bytes(proc_root: str) -> int:
    try:
        for line in (Path(proc_root) / "meminfo").read_text(encoding="utf-8").splitlines():
            if line.startswith("MemTotal:"):
                return int(line.split()[1]) * 1024
    except (OSError, ValueError, IndexError):
        pass
    return 0


def gather_host_facts(spec: RequirementSpec, *, proc_root: str = "/proc") -> HostFacts:
    """Read live host facts; read-only."""

    try:
        free_disk = shutil.disk_usage(spec.disk_path).free
    except OSError:
        free_disk = 0

    return HostFacts(
        is_root=os.geteuid() == 0,
        free_disk_bytes=free_disk,
        memory_bytes=_mem_total_bytes(proc_root),
        cpu_count=os.cpu_count() or 1,
        os_marker_present=Path(spec.os_marker).exists(),
    )


def _gib(n: int) -> str:
    return f"{n / GIB:.1f}GB"


def check_requirements(spec: RequirementSpec, facts: Optional[HostFacts] = None) -> List[str]:
    """Validate host preconditions before anything is mutated.

    Raises PrerequisiteError listing every fatal problem (privilege, disk
    space, OS family). Low memory is returned as a warning instead.
    """

    logger.info("Checking system requirements...")
    if facts is None:
        facts = gather_host_facts(spec)

    errors: List[str] = []
    warnings: List[str] = []

    if not facts.is_root:
        errors.append("This installer must be run as root (use sudo)")

    if facts.free_disk_bytes < spec.min_disk_bytes:
        errors.append(
            f"insufficient disk space: need at least {_gib(spec.min_disk_bytes)} free "
            f"on {spec.disk_path}, have {_gib(facts.free_disk_bytes)}"
        )

    if facts.memory_bytes < spec.min_memory_bytes:
        msg = (
            f"Low memory detected ({_gib(facts.memory_bytes)}). "
            "Installation may be slow or fail. Recommended: 8GB+"
        )
        logger.warning(msg)
        warnings.append(msg)

    logger.info("Detected %d CPU cores", facts.cpu_count)

    if not facts.os_marker_present:
        errors.append(f"This installer is designed for Debian systems ({spec.os_marker} missing)")

    if errors:
        raise PrerequisiteError("; ".join(errors))

    logger.info("System requirements check passed")
    return warnings
