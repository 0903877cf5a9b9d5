from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from ..config import KERNEL_EVL_OPTIONS, KERNEL_REQUIRED_OPTIONS, KERNEL_RT_OPTIONS
from ..errors import BuildError, CommandError
from ..lib.bootloader import create_initramfs, update_grub
from ..lib.config_file import ConfigAssertion, apply_all, assert_present
from ..lib.git import clone_or_reuse
from ..lib.kernel import kernel_release, make, seed_config
from ..pipeline import InstallCtx

logger = logging.getLogger(__name__)


def _kconfig(options: Sequence[Tuple[str, str]], dot_config: str) -> List[ConfigAssertion]:
    return [ConfigAssertion(key=k, value=v, target=dot_config, syntax="kconfig") for k, v in options]


class BuildKernelStage:
    stage_id = "20_build_kernel"
    description = "Build and install the EVL-patched kernel"
    idempotent = False

    def run(self, ctx: InstallCtx) -> None:
        cfg = ctx.cfg
        dry_run = ctx.dry_run

        try:
            src = clone_or_reuse(cfg.kernel_repo, dry_run=dry_run)
            dot_config = str(src / ".config")

            seed_config(src, proc_root=cfg.proc_root, boot_dir=cfg.boot_dir, dry_run=dry_run)
            apply_all(_kconfig(KERNEL_EVL_OPTIONS, dot_config), dry_run=dry_run)
            make(src, ["olddefconfig"], dry_run=dry_run)
            apply_all(_kconfig(KERNEL_RT_OPTIONS, dot_config), dry_run=dry_run)

            # Last gate before a build that can take hours.
            if dry_run:
                logger.info("Would verify %s in %s", [k for k, _ in KERNEL_REQUIRED_OPTIONS], dot_config)
            else:
                assert_present(dot_config, dict(KERNEL_REQUIRED_OPTIONS))

            jobs = ctx.build_jobs
            logger.info("Building kernel with %d parallel jobs (this may take 60-120 minutes)...", jobs)
            make(src, [], jobs=jobs, dry_run=dry_run)
            make(src, ["modules"], jobs=jobs, dry_run=dry_run)
            make(src, ["modules_install"], dry_run=dry_run)
            make(src, ["install"], dry_run=dry_run)

            release = kernel_release(src, dry_run=dry_run)
            create_initramfs(release, dry_run=dry_run)
            update_grub(dry_run=dry_run)
        except CommandError as e:
            raise BuildError(str(e)) from e

        logger.info("EVL-patched kernel %s built and installed", release)
