from __future__ import annotations

import gzip
import logging
import platform
from pathlib import Path
from typing import Sequence

from ..errors import BuildError
from .command import run_cmd

logger = logging.getLogger(__name__)


def running_release() -> str:
    return platform.release()


def seed_config(src: Path, *, proc_root: str, boot_dir: str, dry_run: bool = False) -> str:
    """Seed `src/.config` from the running kernel; returns where it came from."""

    dot_config = src / ".config"
    proc_config = Path(proc_root) / "config.gz"
    boot_config = Path(boot_dir) / f"config-{running_release()}"

    if proc_config.exists():
        logger.info("Using %s for kernel configuration", proc_config)
        if not dry_run:
            with gzip.open(proc_config, mode="rt", encoding="utf-8") as fh:
                dot_config.write_text(fh.read(), encoding="utf-8")
        return str(proc_config)

    if boot_config.exists():
        logger.info("Using %s for kernel configuration", boot_config)
        if not dry_run:
            dot_config.write_text(boot_config.read_text(encoding="utf-8"), encoding="utf-8")
        return str(boot_config)

    logger.info("No existing kernel config found, generating default configuration")
    run_cmd(["make", "defconfig"], cwd=str(src), dry_run=dry_run)
    return "defconfig"


def make(src: Path, targets: Sequence[str], *, jobs: int | None = None, dry_run: bool = False) -> None:
    argv = ["make"]
    if jobs:
        argv.append(f"-j{jobs}")
    argv += list(targets)
    run_cmd(argv, cwd=str(src), capture=False, dry_run=dry_run)


def kernel_release(src: Path, *, dry_run: bool = False) -> str:
    r = run_cmd(["make", "-s", "kernelrelease"], cwd=str(src), dry_run=dry_run)
    release = r.stdout.strip()
    if not release and not dry_run:
        raise BuildError(f"Unable to determine kernel release in {src}")
    return release or "<kernelrelease>"
