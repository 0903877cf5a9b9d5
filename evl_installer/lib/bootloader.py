from __future__ import annotations

import logging

from .command import run_cmd
from .config_file import ConfigAssertion, apply_assertion, merge_cmdline, read_values

logger = logging.getLogger(__name__)

CMDLINE_KEY = "GRUB_CMDLINE_LINUX"


def update_grub(*, dry_run: bool = False) -> None:
    run_cmd(["update-grub"], dry_run=dry_run)
    logger.info("GRUB configuration regenerated")


def create_initramfs(release: str, *, dry_run: bool = False) -> None:
    run_cmd(["update-initramfs", "-c", "-k", release], dry_run=dry_run)


def set_cmdline(grub_default: str, fragments: list[str], *, dry_run: bool = False) -> str:
    """Merge fragments into GRUB_CMDLINE_LINUX; returns the resulting cmdline."""

    merged = merge_cmdline(read_values(grub_default, CMDLINE_KEY, "shell"), fragments)
    apply_assertion(
        ConfigAssertion(key=CMDLINE_KEY, value=merged, target=grub_default, syntax="shell"),
        dry_run=dry_run,
    )
    return merged
