from __future__ import annotations

import logging

from ..errors import BuildError, CommandError
from ..lib.command import run_cmd
from ..lib.git import clone_or_reuse
from ..pipeline import InstallCtx

logger = logging.getLogger(__name__)


class InstallXenomaiStage:
    stage_id = "40_install_xenomai"
    description = "Build and install Xenomai 4"
    idempotent = False

    def run(self, ctx: InstallCtx) -> None:
        cfg = ctx.cfg
        dry_run = ctx.dry_run
        try:
            src = clone_or_reuse(cfg.xenomai_repo, dry_run=dry_run)
            build = src / "build"
            if not dry_run:
                build.mkdir(parents=True, exist_ok=True)

            run_cmd(["cmake", "-G", "Ninja", *cfg.cmake_options, ".."], cwd=str(build), capture=False, dry_run=dry_run)
            run_cmd(["ninja"], cwd=str(build), capture=False, dry_run=dry_run)
            run_cmd(["ninja", "install"], cwd=str(build), capture=False, dry_run=dry_run)
            run_cmd(["ldconfig"], dry_run=dry_run)
        except CommandError as e:
            raise BuildError(str(e)) from e

        logger.info("Xenomai 4 %s installed", cfg.xenomai_repo.ref)
