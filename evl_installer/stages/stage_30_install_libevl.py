from __future__ import annotations

import logging

from ..errors import BuildError, CommandError
from ..lib.command import run_cmd
from ..lib.git import clone_or_reuse
from ..lib.kernel import make
from ..pipeline import InstallCtx

logger = logging.getLogger(__name__)


class InstallLibevlStage:
    stage_id = "30_install_libevl"
    description = "Build and install libevl"
    idempotent = False

    def run(self, ctx: InstallCtx) -> None:
        prefix = f"PREFIX={ctx.cfg.libevl_prefix}"
        try:
            src = clone_or_reuse(ctx.cfg.libevl_repo, dry_run=ctx.dry_run)
            make(src, [prefix], dry_run=ctx.dry_run)
            make(src, [prefix, "install"], dry_run=ctx.dry_run)
            run_cmd(["ldconfig"], dry_run=ctx.dry_run)
        except CommandError as e:
            raise BuildError(str(e)) from e

        logger.info("libevl installed under %s", ctx.cfg.libevl_prefix)
